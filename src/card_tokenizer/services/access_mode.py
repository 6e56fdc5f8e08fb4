"""Account-abstraction access modes.

When an account-abstraction contract is configured, an identity can run in
one of several access modes. Without one, every identity is in standard
mode and the mode cannot be changed.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any, Union

import structlog

from card_tokenizer.domain.transaction import address_val, enum_val
from card_tokenizer.models.exceptions import ConfigurationError, SubmissionError
from card_tokenizer.models.results import TransactionResult

if TYPE_CHECKING:
    from card_tokenizer.services.session import TokenizerSession

logger = structlog.get_logger(__name__)


class AccessMode(str, Enum):
    """Access mode of an identity on the account-abstraction contract."""

    STANDARD = "standard"
    SPONSORED = "sponsored"
    SESSION_KEY = "sessionKey"
    MULTISIG = "multisig"

    @property
    def contract_variant(self) -> str:
        """Enum variant name used by the account-abstraction contract."""
        return _CONTRACT_VARIANTS[self]

    @classmethod
    def from_contract(cls, value: Any) -> "AccessMode":
        """
        Parse a mode returned by the contract (variant name or mode value).

        Raises:
            ValueError: If the value names no known mode
        """
        text = str(value)
        for mode, variant in _CONTRACT_VARIANTS.items():
            if text == variant or text == mode.value:
                return mode
        raise ValueError(f"Unknown access mode: {text!r}")


_CONTRACT_VARIANTS = {
    AccessMode.STANDARD: "Standard",
    AccessMode.SPONSORED: "Sponsored",
    AccessMode.SESSION_KEY: "SessionKey",
    AccessMode.MULTISIG: "MultiSig",
}


class AccessModeController:
    """
    Reads and changes the access mode of a session's identity.

    The mode is read from the contract on every call and never cached.
    """

    def __init__(self, session: "TokenizerSession") -> None:
        self._session = session

    async def get_mode(self) -> AccessMode:
        """
        Read the current access mode.

        Returns STANDARD without any network call when account abstraction
        is not configured.
        """
        vault = self._session.config.vault
        if not vault.account_abstraction_enabled:
            return AccessMode.STANDARD

        address = self._session.address
        value = await self._session.simulate_contract(
            vault.account_abstraction_address, "get_mode", address_val(address)
        )
        if value is None:
            return AccessMode.STANDARD

        try:
            return AccessMode.from_contract(value)
        except ValueError as e:
            raise SubmissionError(str(e)) from e

    async def set_mode(self, mode: Union[AccessMode, str]) -> TransactionResult:
        """
        Change the access mode.

        Raises:
            ConfigurationError: If account abstraction is not configured
            ValueError: If mode names no known access mode
            CapabilityError: If the session cannot sign
            SubmissionError: If signing, submission or confirmation fails
            UserCancelledError: If the user dismissed a delegated signature
        """
        vault = self._session.config.vault
        if not vault.account_abstraction_enabled:
            raise ConfigurationError("Account abstraction not enabled")

        mode = AccessMode(mode)
        address = self._session.address

        response = await self._session.invoke_contract(
            vault.account_abstraction_address,
            "set_mode",
            address_val(address),
            enum_val(mode.contract_variant),
        )

        logger.info("access_mode_changed", address=address, mode=mode.value, tx_hash=response.hash)
        return TransactionResult.ok(response.hash, data=mode)
