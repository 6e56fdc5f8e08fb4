"""Domain models for card tokens.

A token is the ledger-anchored record of one encrypted card. Tokens are
append-only: once created, only their status changes (revoked, or expired
when the card's expiry passes). They are never deleted.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class TokenStatus(str, Enum):
    """Token lifecycle status."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass
class TokenMetadata:
    """Card token metadata.

    Safe to display: the card data itself is only present as the encrypted
    payload, which can be opened solely with the owner's derived key.

    Attributes:
        user_id: Ledger address of the token owner
        token_hash: Hex-encoded SHA-256 of the plaintext card serialization
        encrypted_payload: IV + ciphertext + auth tag
        last4_digits: Last 4 digits of the card number
        card_network: Card network (e.g., "visa", "rupay")
        status: Lifecycle status
        created_at: Unix timestamp of creation
        expires_at: Unix timestamp derived from the card expiry
        ledger_tx_id: Hash of the transaction that stored or read the token
    """

    user_id: str
    token_hash: str
    encrypted_payload: bytes
    last4_digits: str
    card_network: str
    status: TokenStatus
    created_at: int
    expires_at: int
    ledger_tx_id: Optional[str] = None

    def __post_init__(self):
        """Validate token fields."""
        if not self.user_id:
            raise ValueError("user_id cannot be empty")

        if len(self.token_hash) != 64:
            raise ValueError("token_hash must be a hex-encoded 32-byte digest")

        if not self.encrypted_payload:
            raise ValueError("encrypted_payload cannot be empty")

        if len(self.last4_digits) != 4 or not self.last4_digits.isdigit():
            raise ValueError("last4_digits must be 4 digits")

    def __repr__(self) -> str:
        return (
            f"TokenMetadata(user_id={self.user_id!r}, token_hash={self.token_hash[:12]}..., "
            f"last4_digits={self.last4_digits!r}, card_network={self.card_network!r}, "
            f"status={self.status.value!r}, expires_at={self.expires_at})"
        )

    def is_expired(self, now: Optional[int] = None) -> bool:
        """Check if the card behind this token has expired."""
        now = int(time.time()) if now is None else now
        return now > self.expires_at

    def refresh_expiry(self, now: Optional[int] = None) -> TokenStatus:
        """Mark an active token expired if its expiry has passed.

        Returns:
            The (possibly updated) status
        """
        if self.status == TokenStatus.ACTIVE and self.is_expired(now):
            self.status = TokenStatus.EXPIRED
        return self.status

    def mark_revoked(self) -> None:
        self.status = TokenStatus.REVOKED

    @classmethod
    def from_vault_record(
        cls, record: dict[str, Any], ledger_tx_id: Optional[str] = None
    ) -> "TokenMetadata":
        """Create metadata from a decoded vault token record.

        Args:
            record: Decoded record with keys user, encrypted_payload,
                token_hash, last_4_digits, card_network, status,
                created_at, expires_at
            ledger_tx_id: Transaction that returned the record

        Raises:
            ValueError: If the record is incomplete or malformed
        """
        try:
            token_hash = record["token_hash"]
            if isinstance(token_hash, (bytes, bytearray)):
                token_hash = bytes(token_hash).hex()

            return cls(
                user_id=record["user"],
                token_hash=token_hash,
                encrypted_payload=bytes(record["encrypted_payload"]),
                last4_digits=record["last_4_digits"],
                card_network=record["card_network"],
                status=TokenStatus(record["status"]),
                created_at=int(record["created_at"]),
                expires_at=int(record["expires_at"]),
                ledger_tx_id=ledger_tx_id,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid vault token record: {e}") from e
