"""Card tokenizer domain layer.

This package contains the card model and validators, the AES-256-GCM
cipher, key derivation, token metadata and transaction envelopes.
"""

from card_tokenizer.domain.card import (
    CardData,
    CardNetwork,
    card_expiry_timestamp,
    detect_network,
    mask_card_number,
    validate_card,
    validate_card_number,
    validate_expiry,
)
from card_tokenizer.domain.encryption import (
    EncryptedCard,
    decrypt,
    decrypt_card,
    encrypt,
    encrypt_card,
    hash_data,
)
from card_tokenizer.domain.keys import KeyDeriver, MessageSigner, build_challenge
from card_tokenizer.domain.token import TokenMetadata, TokenStatus
from card_tokenizer.domain.transaction import (
    ContractCall,
    DecoratedSignature,
    SignedTransaction,
    UnsignedTransaction,
)

__all__ = [
    # Card
    "CardData",
    "CardNetwork",
    "validate_card_number",
    "validate_card",
    "validate_expiry",
    "detect_network",
    "mask_card_number",
    "card_expiry_timestamp",
    # Cipher
    "EncryptedCard",
    "encrypt",
    "decrypt",
    "hash_data",
    "encrypt_card",
    "decrypt_card",
    # Keys
    "KeyDeriver",
    "MessageSigner",
    "build_challenge",
    # Tokens
    "TokenMetadata",
    "TokenStatus",
    # Transactions
    "ContractCall",
    "UnsignedTransaction",
    "SignedTransaction",
    "DecoratedSignature",
]
