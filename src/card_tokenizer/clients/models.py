"""Pydantic models for ledger JSON-RPC responses."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SendStatus(str, Enum):
    """Status returned by sendTransaction."""

    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


class TransactionStatus(str, Enum):
    """Status returned by getTransaction."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


class AccountInfo(BaseModel):
    """Ledger account as returned by getAccount."""

    id: str = Field(..., description="Account address")
    sequence: int = Field(..., description="Current sequence number")


class SendTransactionResponse(BaseModel):
    """Acknowledgment of a submitted transaction."""

    model_config = ConfigDict(populate_by_name=True)

    status: SendStatus = Field(..., description="Submission status")
    hash: str = Field(..., description="Transaction hash (hex)")
    error_result: Optional[str] = Field(
        None, alias="errorResult", description="Rejection reason when status is ERROR"
    )


class GetTransactionResponse(BaseModel):
    """Transaction status as returned by getTransaction."""

    model_config = ConfigDict(populate_by_name=True)

    status: TransactionStatus = Field(..., description="Transaction status")
    hash: Optional[str] = Field(None, description="Transaction hash (hex)")
    ledger: Optional[int] = Field(None, description="Ledger sequence the transaction closed in")
    return_value: Any = Field(
        None, alias="returnValue", description="Typed contract return value"
    )
    error: Optional[str] = Field(None, description="Failure reason when status is FAILED")


class SimulationResult(BaseModel):
    """Single invocation result from simulateTransaction."""

    retval: Any = Field(None, description="Typed contract return value")


class SimulateTransactionResponse(BaseModel):
    """Outcome of a read-only transaction simulation."""

    model_config = ConfigDict(populate_by_name=True)

    results: list[SimulationResult] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Simulation failure reason")
    latest_ledger: Optional[int] = Field(None, alias="latestLedger")
