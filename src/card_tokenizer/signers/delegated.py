"""Delegated (external wallet) transaction signer."""

from typing import Awaitable, Callable, Optional

import structlog

from card_tokenizer.domain.signing import await_external_signature
from card_tokenizer.domain.transaction import SignedTransaction, UnsignedTransaction
from card_tokenizer.models.exceptions import SigningError
from card_tokenizer.signers.base import TransactionSigner

logger = structlog.get_logger(__name__)

# Async callback: (unsigned envelope, network passphrase) -> signed envelope
TransactionSignCallback = Callable[[str, str], Awaitable[str]]


class DelegatedSigner(TransactionSigner):
    """
    Signs transactions through an external signer (remote or hardware wallet).

    The engine never holds key material for this signer. The callback may
    take seconds to minutes while the user reviews the request. The signed
    envelope it returns is checked to carry the exact transaction that was
    sent out and a valid signature from the session address.
    """

    def __init__(
        self,
        address: str,
        sign_transaction: TransactionSignCallback,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        if not address:
            raise ValueError("address cannot be empty")
        self._address = address
        self._sign_transaction = sign_transaction
        self.timeout_seconds = timeout_seconds

    def __repr__(self) -> str:
        return f"DelegatedSigner(address={self._address!r})"

    @property
    def address(self) -> str:
        return self._address

    @property
    def is_delegated(self) -> bool:
        return True

    async def sign(self, transaction: UnsignedTransaction) -> SignedTransaction:
        function = transaction.operation.function
        logger.info("delegated_signature_requested", address=self._address, function=function)

        signed_envelope = await await_external_signature(
            self._sign_transaction(transaction.to_envelope(), transaction.network_passphrase),
            self.timeout_seconds,
            f"{function} transaction",
        )

        try:
            signed = SignedTransaction.from_envelope(signed_envelope)
        except ValueError as e:
            raise SigningError(f"Delegated signer returned an unreadable envelope: {e}") from e

        if signed.transaction != transaction:
            raise SigningError("Delegated signer altered the transaction body")

        if not signed.is_signed_by(self._address):
            raise SigningError(f"Signed envelope carries no valid signature from {self._address}")

        logger.info("delegated_signature_received", address=self._address, function=function)
        return signed
