"""Result models returned by lifecycle operations."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class TransactionResult:
    """
    Tagged outcome of a ledger transaction.

    Returned by operations that report failure without raising, so callers
    can display the failure reason without unwinding. A success carries the
    transaction hash; a failure carries the error message and whether the
    user cancelled the signing request.
    """

    success: bool
    tx_hash: str = ""
    data: Any = None
    error: Optional[str] = None
    cancelled: bool = False

    def __post_init__(self) -> None:
        """Validate that required fields are present based on outcome."""
        if self.success:
            if not self.tx_hash:
                raise ValueError("tx_hash required for successful result")
        elif not self.error:
            raise ValueError("error required for failed result")

    @classmethod
    def ok(cls, tx_hash: str, data: Any = None) -> "TransactionResult":
        return cls(success=True, tx_hash=tx_hash, data=data)

    @classmethod
    def failed(cls, error: str, cancelled: bool = False) -> "TransactionResult":
        return cls(success=False, error=error, cancelled=cancelled)
