"""Helpers for waiting on external (delegated) signers."""

import asyncio
from typing import Awaitable, Optional, TypeVar

import structlog

from card_tokenizer.models.exceptions import (
    LedgerTimeoutError,
    SigningError,
    TokenizerError,
    UserCancelledError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Wallets report a dismissed prompt through the error message only
USER_REJECTION_MARKERS = ("user rejected", "user declined", "user denied", "cancelled", "canceled")


def is_user_rejection(error: BaseException) -> bool:
    """Check whether a signer error means the user dismissed the request."""
    if isinstance(error, UserCancelledError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in USER_REJECTION_MARKERS)


async def await_external_signature(
    pending: Awaitable[T],
    timeout_seconds: Optional[float],
    operation: str,
) -> T:
    """Wait for a delegated signer, mapping its failures to typed errors.

    Args:
        pending: Awaitable returned by the signer callback
        timeout_seconds: Upper bound on the wait (None waits indefinitely)
        operation: What is being signed, for logs and messages

    Returns:
        The signer's result

    Raises:
        UserCancelledError: If the user dismissed the request
        LedgerTimeoutError: If the signer did not answer in time
        SigningError: For any other signer failure
    """
    try:
        return await asyncio.wait_for(pending, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.warning("delegated_signer_timeout", operation=operation, timeout_seconds=timeout_seconds)
        raise LedgerTimeoutError(f"Timed out waiting for {operation} signature") from e
    except TokenizerError as e:
        if isinstance(e, UserCancelledError):
            logger.info("delegated_signer_cancelled", operation=operation)
        raise
    except Exception as e:
        if is_user_rejection(e):
            logger.info("delegated_signer_cancelled", operation=operation)
            raise UserCancelledError(f"{operation.capitalize()} signature cancelled by user") from e
        logger.error("delegated_signer_failed", operation=operation, error_type=type(e).__name__)
        raise SigningError(f"Delegated signer failed during {operation}: {e}") from e
