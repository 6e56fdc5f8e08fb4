"""Card data model and validation functions.

This module holds the transient card representation and the pure validation
helpers used before a card is tokenized: Luhn check, network detection,
display masking and expiry handling. Nothing here has side effects.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from card_tokenizer.models.exceptions import InvalidCardError

MIN_PAN_LENGTH = 13
MAX_PAN_LENGTH = 19


class CardNetwork(str, Enum):
    """Card network (scheme)."""

    VISA = "visa"
    MASTERCARD = "mastercard"
    RUPAY = "rupay"
    AMEX = "amex"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CardData:
    """Raw payment card data (highly sensitive - never persisted unencrypted).

    Exists only in memory while a card is being tokenized or right after a
    successful local decryption.

    Attributes:
        pan: Primary account number, digits with optional spaces/dashes
        cvv: Card verification value (3 or 4 digits)
        expiry_month: Expiration month (MM format, e.g., "01")
        expiry_year: Expiration year (YY format, e.g., "27")
        cardholder_name: Name as it appears on the card
        network: Card network; None means detect from the PAN
    """

    pan: str
    cvv: str
    expiry_month: str
    expiry_year: str
    cardholder_name: str
    network: Optional[CardNetwork] = None

    def __repr__(self) -> str:
        network = self.network.value if self.network else None
        return (
            f"CardData(pan={mask_card_number(self.pan)!r}, cvv='***', "
            f"expiry_month={self.expiry_month!r}, expiry_year={self.expiry_year!r}, "
            f"network={network!r})"
        )

    __str__ = __repr__

    @property
    def last4(self) -> str:
        return clean_card_number(self.pan)[-4:]

    @property
    def expires_at(self) -> int:
        """Unix timestamp of the first moment after the card's expiry month."""
        return card_expiry_timestamp(self.expiry_month, self.expiry_year)


def clean_card_number(pan: str) -> str:
    """Strip spaces and dashes from a card number."""
    return pan.replace(" ", "").replace("-", "")


def validate_card_number(pan: str) -> bool:
    """Validate a card number with the Luhn checksum.

    Args:
        pan: Card number, spaces and dashes allowed

    Returns:
        True if the cleaned number is 13-19 digits and passes Luhn
    """
    cleaned = clean_card_number(pan)

    if not cleaned.isascii() or not cleaned.isdigit():
        return False

    if len(cleaned) < MIN_PAN_LENGTH or len(cleaned) > MAX_PAN_LENGTH:
        return False

    total = 0
    for position, char in enumerate(reversed(cleaned)):
        digit = int(char)
        if position % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit

    return total % 10 == 0


def detect_network(pan: str) -> CardNetwork:
    """Detect card network from the card number prefix.

    Rules are checked in order and the first match wins:
    Visa 4; Mastercard 51-55 or 2221-2720; RuPay 60, 6521, 6522;
    Amex 34, 37.

    Args:
        pan: Card number

    Returns:
        Detected CardNetwork, UNKNOWN if no rule matches
    """
    cleaned = clean_card_number(pan)

    if not cleaned.isascii() or not cleaned.isdigit():
        return CardNetwork.UNKNOWN

    if cleaned.startswith("4"):
        return CardNetwork.VISA

    if cleaned.startswith(("51", "52", "53", "54", "55")):
        return CardNetwork.MASTERCARD
    if len(cleaned) >= 4 and 2221 <= int(cleaned[:4]) <= 2720:
        return CardNetwork.MASTERCARD

    if cleaned.startswith(("60", "6521", "6522")):
        return CardNetwork.RUPAY

    if cleaned.startswith(("34", "37")):
        return CardNetwork.AMEX

    return CardNetwork.UNKNOWN


def mask_card_number(pan: str) -> str:
    """Mask all but the last four digits of a card number for display."""
    cleaned = clean_card_number(pan)
    if len(cleaned) < 4:
        return "*" * len(cleaned)
    return "*" * (len(cleaned) - 4) + cleaned[-4:]


def card_expiry_timestamp(expiry_month: str, expiry_year: str) -> int:
    """Compute the first instant (UTC) after the end of the expiry month.

    Args:
        expiry_month: Two-digit month ("01"-"12")
        expiry_year: Two-digit year, interpreted as 20YY

    Returns:
        Unix timestamp in seconds

    Raises:
        InvalidCardError: If month or year is malformed
    """
    if not expiry_month.isdigit() or len(expiry_month) != 2:
        raise InvalidCardError("expiry_month must be 2-digit numeric (MM)")
    if not expiry_year.isdigit() or len(expiry_year) != 2:
        raise InvalidCardError("expiry_year must be 2-digit numeric (YY)")

    month = int(expiry_month)
    if month < 1 or month > 12:
        raise InvalidCardError("expiry_month must be between 01 and 12")

    year = 2000 + int(expiry_year)
    if month == 12:
        boundary = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        boundary = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return int(boundary.timestamp())


def validate_card(card: CardData, now: Optional[datetime] = None) -> None:
    """Validate a card before tokenization.

    Args:
        card: Card to validate
        now: Reference time for the expiry check (defaults to current UTC time)

    Raises:
        InvalidCardError: On the first failed rule
    """
    if not validate_card_number(card.pan):
        raise InvalidCardError("Invalid card number (failed Luhn check)")

    if not card.cvv.isdigit() or len(card.cvv) not in (3, 4):
        raise InvalidCardError("cvv must be 3 or 4 digits")

    if not card.cardholder_name or not card.cardholder_name.strip():
        raise InvalidCardError("cardholder_name cannot be empty")

    validate_expiry(card.expiry_month, card.expiry_year, now)


def validate_expiry(expiry_month: str, expiry_year: str, now: Optional[datetime] = None) -> int:
    """Check that a card expiry is well formed and not in the past.

    Returns:
        The expiry timestamp (see card_expiry_timestamp)

    Raises:
        InvalidCardError: If the expiry is malformed or has passed
    """
    expires_at = card_expiry_timestamp(expiry_month, expiry_year)
    now = now or datetime.now(timezone.utc)
    if expires_at <= int(now.timestamp()):
        raise InvalidCardError("Card has expired")
    return expires_at
