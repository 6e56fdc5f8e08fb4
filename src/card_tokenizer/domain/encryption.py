"""AES-256-GCM cipher and card payload serialization.

This module implements the encrypted token wire format shared with the
vault's verifier:

    EncryptedPayload = IV (12 bytes) || ciphertext || auth tag (16 bytes)

and the token hash, a SHA-256 digest of the canonical plaintext card
serialization. The layout is a cross-runtime contract: IV length, tag
length and algorithm must not change.
"""

import hashlib
import json
import os
from typing import NamedTuple

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from card_tokenizer.domain.card import CardData, CardNetwork, clean_card_number
from card_tokenizer.models.exceptions import AuthenticationError, CryptoError, KeyLengthError

logger = structlog.get_logger(__name__)

ALGORITHM = "AES-256-GCM"
IV_LENGTH = 12
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32


class EncryptedCard(NamedTuple):
    """Output of card encryption."""

    encrypted_payload: bytes
    token_hash: bytes  # SHA-256 of the plaintext serialization
    last4_digits: str


def _check_key(key: bytes) -> None:
    if len(key) != KEY_LENGTH:
        raise KeyLengthError(f"Encryption key must be {KEY_LENGTH} bytes, got {len(key)}")


def encrypt(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt data using AES-256-GCM.

    Args:
        plaintext: Data to encrypt
        key: 32-byte AES-256 encryption key

    Returns:
        IV (12 bytes) + ciphertext + auth tag (16 bytes)

    Raises:
        KeyLengthError: If key is not 32 bytes

    Security notes:
        - IV is freshly random for every call, never reused with a key
        - No associated data
    """
    _check_key(key)

    iv = os.urandom(IV_LENGTH)
    # cryptography appends the 16-byte tag to the ciphertext
    sealed = AESGCM(bytes(key)).encrypt(iv, plaintext, None)

    logger.debug("payload_encrypted", plaintext_length=len(plaintext), payload_length=len(sealed) + IV_LENGTH)
    return iv + sealed


def decrypt(payload: bytes, key: bytes) -> bytes:
    """Decrypt an AES-256-GCM payload produced by encrypt().

    Args:
        payload: IV + ciphertext + auth tag
        key: 32-byte AES-256 key (same as encryption key)

    Returns:
        Decrypted plaintext bytes

    Raises:
        KeyLengthError: If key is not 32 bytes
        AuthenticationError: If the payload is truncated, tampered with,
            or was encrypted under a different key
    """
    _check_key(key)

    if len(payload) < IV_LENGTH + AUTH_TAG_LENGTH:
        raise AuthenticationError("Encrypted payload is too short")

    iv = payload[:IV_LENGTH]
    ciphertext = payload[IV_LENGTH:-AUTH_TAG_LENGTH]
    tag = payload[-AUTH_TAG_LENGTH:]

    try:
        plaintext = AESGCM(bytes(key)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        # Don't expose detailed error messages for security
        logger.warning("payload_authentication_failed", payload_length=len(payload))
        raise AuthenticationError(
            "Failed to decrypt payload - invalid key or corrupted data"
        ) from e

    return plaintext


def hash_data(data: bytes) -> bytes:
    """SHA-256 digest used for token indexing."""
    return hashlib.sha256(data).digest()


def serialize_card(card: CardData) -> bytes:
    """Serialize card data to its canonical plaintext form.

    Format: compact JSON with keys in the fixed order pan, cvv, expiryMonth,
    expiryYear, cardholderName, network. The PAN is cleaned of spaces and
    dashes so the same card always yields the same token hash.
    """
    network = card.network or CardNetwork.UNKNOWN
    document = {
        "pan": clean_card_number(card.pan),
        "cvv": card.cvv,
        "expiryMonth": card.expiry_month,
        "expiryYear": card.expiry_year,
        "cardholderName": card.cardholder_name,
        "network": network.value,
    }
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def deserialize_card(data: bytes) -> CardData:
    """Parse a canonical card serialization.

    Raises:
        ValueError: If data format is invalid
    """
    try:
        document = json.loads(data.decode("utf-8"))
        return CardData(
            pan=document["pan"],
            cvv=document["cvv"],
            expiry_month=document["expiryMonth"],
            expiry_year=document["expiryYear"],
            cardholder_name=document["cardholderName"],
            network=CardNetwork(document["network"]),
        )
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid card payload format: {type(e).__name__}") from e


def encrypt_card(card: CardData, key: bytes) -> EncryptedCard:
    """Encrypt a card and compute its token hash.

    The hash is computed over the plaintext serialization, so encrypting the
    same card twice yields different payloads but the same token hash.
    """
    plaintext = serialize_card(card)
    return EncryptedCard(
        encrypted_payload=encrypt(plaintext, key),
        token_hash=hash_data(plaintext),
        last4_digits=card.last4,
    )


def decrypt_card(payload: bytes, key: bytes) -> CardData:
    """Decrypt a payload back into card data.

    Raises:
        KeyLengthError: If key is not 32 bytes
        AuthenticationError: If the tag does not verify
        CryptoError: If the payload authenticates but is not a card record
    """
    plaintext = decrypt(payload, key)
    try:
        return deserialize_card(plaintext)
    except ValueError as e:
        raise CryptoError("Decrypted payload is not a card record") from e
