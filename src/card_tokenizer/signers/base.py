"""Base interface for transaction signers."""

from abc import ABC, abstractmethod

from card_tokenizer.domain.transaction import SignedTransaction, UnsignedTransaction


class TransactionSigner(ABC):
    """
    Abstract base class for transaction signers.

    A session holds at most one signer. Two implementations exist:
    - LocalSigner: holds an Ed25519 key and signs in-process
    - DelegatedSigner: hands the unsigned envelope to an external wallet
      and waits for the signed envelope
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Ledger address the signer signs for."""

    @property
    def is_delegated(self) -> bool:
        return False

    @abstractmethod
    async def sign(self, transaction: UnsignedTransaction) -> SignedTransaction:
        """
        Sign a transaction.

        Args:
            transaction: Unsigned transaction built by the session

        Returns:
            SignedTransaction carrying the same transaction body

        Raises:
            SigningError: If a signature could not be produced
            UserCancelledError: If the user dismissed a delegated request
            LedgerTimeoutError: If a delegated signer did not answer in time
        """
