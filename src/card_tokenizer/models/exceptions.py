"""Custom exceptions for the card tokenization engine."""

from typing import Optional


class TokenizerError(Exception):
    """Base exception for all card tokenizer errors."""

    pass


class InvalidCardError(TokenizerError):
    """
    Raised when card input fails validation (Luhn check, expiry, format).

    This is a TERMINAL error. The input is malformed and must be corrected
    by the caller; it is never retried.
    """

    pass


class NotInitializedError(TokenizerError):
    """Raised when an operation runs on a session with no identity bound."""

    pass


class CapabilityError(TokenizerError):
    """
    Raised when the session lacks a capability the operation needs.

    Signing requires initialize() with a raw secret or initialize_delegated()
    with a transaction-signing callback. Encryption additionally requires the
    raw secret or a message-signing callback.
    """

    pass


class NoKeyMaterialError(CapabilityError):
    """Raised when neither a raw secret nor a message-signing callback is available."""

    pass


class ConfigurationError(TokenizerError):
    """
    Raised when a feature is not enabled for the session.

    Always raised before any network call is attempted.
    """

    pass


class CryptoError(TokenizerError):
    """Base exception for cipher errors."""

    pass


class KeyLengthError(CryptoError):
    """Raised when an encryption key is not exactly 32 bytes."""

    pass


class AuthenticationError(CryptoError):
    """
    Raised when the GCM authentication tag does not verify.

    Either the key is wrong or the payload was corrupted. Always fatal to
    the decrypt call.
    """

    pass


class UserCancelledError(TokenizerError):
    """
    Raised when the user dismisses a delegated signing request.

    Distinct from submission errors: callers may offer a retry for
    cancellation, but not for authentication failures.
    """

    pass


class SubmissionError(TokenizerError):
    """
    Raised when the ledger or the network rejects a transaction.

    This is a TRANSIENT error. Idempotent reads may be retried by the caller.
    Store and revoke are never retried automatically.
    """

    pass


class LedgerTimeoutError(SubmissionError):
    """Raised when a ledger call, confirmation poll or signer wait times out."""

    pass


class SigningError(SubmissionError):
    """Raised when a signer fails to produce a signed transaction."""

    pass


class TransactionFailedError(SubmissionError):
    """
    Raised when a submitted transaction reaches a FAILED terminal status.

    Attributes:
        tx_hash: Hash of the failed transaction, if one was assigned
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class TokenAlreadyExistsError(TransactionFailedError):
    """Raised when the vault rejects a store because a live token exists."""

    pass


class AccountNotFoundError(SubmissionError):
    """Raised when the ledger has no account for the session address."""

    pass


class ContractNotFoundError(SubmissionError):
    """Raised when the configured vault contract does not exist on the ledger."""

    pass
