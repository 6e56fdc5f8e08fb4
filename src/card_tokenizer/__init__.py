"""Card tokenization engine.

Encrypts payment cards client-side under a key derived from the user's
identity and anchors the resulting tokens in a ledger vault contract.
"""

from card_tokenizer.domain.card import CardData, CardNetwork
from card_tokenizer.domain.token import TokenMetadata, TokenStatus
from card_tokenizer.models.results import TransactionResult
from card_tokenizer.services.access_mode import AccessMode
from card_tokenizer.services.session import TokenizerSession

__version__ = "0.1.0"

__all__ = [
    "TokenizerSession",
    "CardData",
    "CardNetwork",
    "TokenMetadata",
    "TokenStatus",
    "TransactionResult",
    "AccessMode",
]
