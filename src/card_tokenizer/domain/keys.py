"""Encryption key derivation for card tokenization sessions.

A session derives its 256-bit AES key from one of two credential shapes:

- Direct path: the session holds a raw secret.
  ``key = SHA-256(secret)``
- Delegated path: the session holds only a public identity and a callback
  that signs arbitrary messages (a remote or hardware wallet). A fixed,
  versioned, user-scoped challenge is signed and
  ``key = SHA-256(signature)``.

Both paths are deterministic. The key is computed at most once per session
and held only in memory.
"""

import asyncio
import hashlib
from typing import Awaitable, Callable, Optional, Union

import structlog

from card_tokenizer.domain.signing import await_external_signature
from card_tokenizer.models.exceptions import NoKeyMaterialError

logger = structlog.get_logger(__name__)

CHALLENGE_VERSION = "v1"

# Async callback that signs a message and returns the signature
MessageSigner = Callable[[str], Awaitable[Union[bytes, str]]]


def derive_key_from_secret(secret: str) -> bytes:
    """Derive a 32-byte key from a raw secret (UTF-8 encoded, SHA-256)."""
    if not secret:
        raise ValueError("secret cannot be empty")
    return hashlib.sha256(secret.encode("utf-8")).digest()


def build_challenge(namespace: str, user_id: str) -> str:
    """Build the versioned, user-scoped key-derivation challenge."""
    if not user_id:
        raise ValueError("user_id cannot be empty")
    return f"{namespace}:{user_id}:{CHALLENGE_VERSION}"


def derive_key_from_signature(signature: Union[bytes, str]) -> bytes:
    """Derive a 32-byte key from a signed challenge."""
    if isinstance(signature, str):
        signature = signature.encode("utf-8")
    if not signature:
        raise ValueError("signature cannot be empty")
    return hashlib.sha256(signature).digest()


class KeyDeriver:
    """Session-scoped, memoized encryption key derivation.

    Concurrent get_key() calls share a single in-flight derivation, so a
    delegated signer is never prompted twice at once for the same session.
    A failed derivation is not cached.

    Example:
        >>> deriver = KeyDeriver("GABC...", secret="S...")
        >>> key = await deriver.get_key()
        >>> len(key)
        32
    """

    def __init__(
        self,
        user_id: str,
        *,
        secret: Optional[str] = None,
        sign_message: Optional[MessageSigner] = None,
        namespace: str = "card-tokenizer",
        signer_timeout_seconds: Optional[float] = None,
    ) -> None:
        self.user_id = user_id
        self.namespace = namespace
        self.signer_timeout_seconds = signer_timeout_seconds
        self._secret = secret
        self._sign_message = sign_message
        self._key: Optional[bytearray] = None
        self._pending: Optional[asyncio.Future] = None

    def __repr__(self) -> str:
        return f"KeyDeriver(user_id={self.user_id!r}, cached={self.has_cached_key})"

    @property
    def can_derive(self) -> bool:
        return bool(self._secret) or self._sign_message is not None

    @property
    def has_cached_key(self) -> bool:
        return self._key is not None

    async def get_key(self) -> bytes:
        """Return the session key, deriving it on first use.

        Raises:
            NoKeyMaterialError: If the session has no secret and no message signer
            UserCancelledError: If the user dismissed the challenge signature
            LedgerTimeoutError: If the signer did not answer in time
            SigningError: If the signer failed
        """
        if self._key is not None:
            return bytes(self._key)

        if not self.can_derive:
            raise NoKeyMaterialError(
                "No key material: initialize with a raw secret or provide a "
                "message-signing callback to enable encryption"
            )

        # A finished derivation never serves a later call
        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(self._derive())
            self._pending.add_done_callback(self._derivation_done)

        # A cancelled caller must not cancel the shared derivation
        return await asyncio.shield(self._pending)

    def _derivation_done(self, task: asyncio.Future) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled() and task.exception() is not None:
            logger.info(
                "encryption_key_derivation_failed",
                user_id=self.user_id,
                error_type=type(task.exception()).__name__,
            )

    async def _derive(self) -> bytes:
        if self._secret:
            key = derive_key_from_secret(self._secret)
            path = "direct"
        else:
            challenge = build_challenge(self.namespace, self.user_id)
            logger.info("key_challenge_requested", user_id=self.user_id)
            signature = await await_external_signature(
                self._sign_message(challenge),
                self.signer_timeout_seconds,
                "key derivation",
            )
            key = derive_key_from_signature(signature)
            path = "delegated"

        self._key = bytearray(key)
        logger.info("encryption_key_derived", user_id=self.user_id, path=path)
        return key

    def clear(self) -> None:
        """Zero the cached key and abandon any in-flight derivation."""
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
            self._key = None
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self._secret = None
        self._sign_message = None
