"""Error taxonomy and result models for the card tokenizer."""

from card_tokenizer.models.exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    CapabilityError,
    ConfigurationError,
    ContractNotFoundError,
    CryptoError,
    InvalidCardError,
    KeyLengthError,
    LedgerTimeoutError,
    NoKeyMaterialError,
    NotInitializedError,
    SigningError,
    SubmissionError,
    TokenAlreadyExistsError,
    TokenizerError,
    TransactionFailedError,
    UserCancelledError,
)
from card_tokenizer.models.results import TransactionResult

__all__ = [
    "TransactionResult",
    "TokenizerError",
    "InvalidCardError",
    "NotInitializedError",
    "CapabilityError",
    "NoKeyMaterialError",
    "ConfigurationError",
    "CryptoError",
    "KeyLengthError",
    "AuthenticationError",
    "UserCancelledError",
    "SubmissionError",
    "LedgerTimeoutError",
    "SigningError",
    "TransactionFailedError",
    "TokenAlreadyExistsError",
    "AccountNotFoundError",
    "ContractNotFoundError",
]
