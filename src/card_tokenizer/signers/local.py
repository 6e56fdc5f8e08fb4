"""Local Ed25519 keypair signer."""

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from card_tokenizer.domain.transaction import (
    DecoratedSignature,
    SignedTransaction,
    UnsignedTransaction,
)
from card_tokenizer.signers.base import TransactionSigner

logger = structlog.get_logger(__name__)

SEED_LENGTH = 32


def public_address(private_key: Ed25519PrivateKey) -> str:
    """Ledger address for a private key: the hex-encoded raw public key."""
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    ).hex()


class LocalSigner(TransactionSigner):
    """
    Signs transactions in-process with an Ed25519 private key.

    Usage:
        signer = LocalSigner.from_secret("9d61b19deffd5a60ba844af492ec2cc4...")
        signed = await signer.sign(transaction)
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._address = public_address(private_key)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self._address!r})"

    @classmethod
    def from_secret(cls, secret: str) -> "LocalSigner":
        """
        Load a signer from a raw secret.

        Args:
            secret: Hex-encoded 32-byte Ed25519 seed

        Raises:
            ValueError: If the secret is not a 64-character hex string
        """
        try:
            seed = bytes.fromhex(secret)
        except ValueError as e:
            raise ValueError("Secret must be hex-encoded") from e

        if len(seed) != SEED_LENGTH:
            raise ValueError(f"Secret must encode {SEED_LENGTH} bytes, got {len(seed)}")

        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @property
    def address(self) -> str:
        return self._address

    def sign_hash(self, tx_hash: bytes) -> DecoratedSignature:
        return DecoratedSignature(public_key=self._address, signature=self._private_key.sign(tx_hash))

    async def sign(self, transaction: UnsignedTransaction) -> SignedTransaction:
        signature = self.sign_hash(transaction.hash())
        logger.debug("transaction_signed_locally", address=self._address, function=transaction.operation.function)
        return SignedTransaction(transaction=transaction, signatures=(signature,))
