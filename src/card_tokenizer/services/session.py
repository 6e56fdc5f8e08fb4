"""Token lifecycle orchestration.

A TokenizerSession binds one user identity to a signer, a key deriver and a
ledger client, and implements the card lifecycle on top of the vault
contract:

1. store_card: validate, encrypt locally, sign and submit store_token
2. retrieve_card: sign and submit retrieve_token, parse the record
3. revoke_card: sign and submit revoke_token, report a TransactionResult
4. decrypt_card: open an encrypted payload locally

Plaintext card data and the derived key never leave the process. Nothing
here retries a submission.
"""

import time
from dataclasses import replace
from typing import Any, Optional, Union

import structlog

from card_tokenizer.clients.ledger_client import LedgerClient
from card_tokenizer.clients.models import GetTransactionResponse
from card_tokenizer.config import Settings, settings as default_settings
from card_tokenizer.domain.card import CardData, CardNetwork, detect_network, mask_card_number, validate_card
from card_tokenizer.domain.encryption import decrypt_card, encrypt_card
from card_tokenizer.domain.keys import KeyDeriver, MessageSigner
from card_tokenizer.domain.token import TokenMetadata, TokenStatus
from card_tokenizer.domain.transaction import (
    ContractCall,
    UnsignedTransaction,
    address_val,
    bytes_val,
    string_val,
    u64_val,
)
from card_tokenizer.models.exceptions import (
    AccountNotFoundError,
    CapabilityError,
    ConfigurationError,
    ContractNotFoundError,
    NoKeyMaterialError,
    NotInitializedError,
    SubmissionError,
    TokenAlreadyExistsError,
    TokenizerError,
    TransactionFailedError,
    UserCancelledError,
)
from card_tokenizer.models.results import TransactionResult
from card_tokenizer.services.access_mode import AccessMode, AccessModeController
from card_tokenizer.signers.base import TransactionSigner
from card_tokenizer.signers.delegated import DelegatedSigner, TransactionSignCallback
from card_tokenizer.signers.local import LocalSigner

logger = structlog.get_logger(__name__)


class TokenizerSession:
    """
    Card tokenization session for a single user identity.

    A session is bound through one of three credential shapes:

    - initialize(secret): local keypair; can sign and encrypt
    - initialize_delegated(address, sign_transaction, sign_message=None):
      external wallet; can sign, and can encrypt only with sign_message
    - initialize_read_only(address): can read token status only

    Usage:
        async with TokenizerSession.from_secret(secret) as session:
            token = await session.store_card(card)
            card = await session.decrypt_card(token.encrypted_payload)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        ledger_client: Optional[LedgerClient] = None,
    ) -> None:
        """
        Create an unbound session.

        Args:
            config: Settings to use (default: module-level settings)
            ledger_client: Optional preconfigured ledger client. When omitted
                the session creates one and closes it on close().
        """
        self.config = config or default_settings
        self._owns_client = ledger_client is None
        self.ledger = ledger_client or LedgerClient(
            rpc_url=self.config.ledger.rpc_url,
            timeout_seconds=self.config.ledger.request_timeout_seconds,
            poll_interval_seconds=self.config.ledger.poll_interval_seconds,
            confirmation_timeout_seconds=self.config.ledger.confirmation_timeout_seconds,
        )
        self.access_mode = AccessModeController(self)

        self._address: Optional[str] = None
        self._signer: Optional[TransactionSigner] = None
        self._key_deriver: Optional[KeyDeriver] = None

    def __repr__(self) -> str:
        return (
            f"TokenizerSession(address={self._address!r}, "
            f"can_sign={self.can_sign()}, can_encrypt={self.can_encrypt()})"
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------------------------------------------------
    # Construction and binding
    # ------------------------------------------------------------------

    @classmethod
    def from_secret(
        cls,
        secret: str,
        config: Optional[Settings] = None,
        ledger_client: Optional[LedgerClient] = None,
    ) -> "TokenizerSession":
        session = cls(config=config, ledger_client=ledger_client)
        session.initialize(secret)
        return session

    @classmethod
    def from_delegated(
        cls,
        address: str,
        sign_transaction: TransactionSignCallback,
        sign_message: Optional[MessageSigner] = None,
        config: Optional[Settings] = None,
        ledger_client: Optional[LedgerClient] = None,
    ) -> "TokenizerSession":
        session = cls(config=config, ledger_client=ledger_client)
        session.initialize_delegated(address, sign_transaction, sign_message)
        return session

    @classmethod
    def read_only(
        cls,
        address: str,
        config: Optional[Settings] = None,
        ledger_client: Optional[LedgerClient] = None,
    ) -> "TokenizerSession":
        session = cls(config=config, ledger_client=ledger_client)
        session.initialize_read_only(address)
        return session

    def initialize(self, secret: str) -> str:
        """
        Bind the session to a raw secret.

        Args:
            secret: Hex-encoded 32-byte Ed25519 seed

        Returns:
            The session address

        Raises:
            ValueError: If the secret is malformed
        """
        signer = LocalSigner.from_secret(secret)
        deriver = KeyDeriver(
            signer.address,
            secret=secret,
            namespace=self.config.session.key_namespace,
        )
        self._bind(signer.address, signer, deriver)
        logger.info("session_initialized", address=signer.address, mode="local")
        return signer.address

    def initialize_delegated(
        self,
        address: str,
        sign_transaction: TransactionSignCallback,
        sign_message: Optional[MessageSigner] = None,
    ) -> str:
        """
        Bind the session to an external signer.

        Without sign_message the session can submit transactions but cannot
        encrypt or decrypt card data.
        """
        timeout = self.config.session.signer_timeout_seconds
        signer = DelegatedSigner(address, sign_transaction, timeout_seconds=timeout)
        deriver = KeyDeriver(
            address,
            sign_message=sign_message,
            namespace=self.config.session.key_namespace,
            signer_timeout_seconds=timeout,
        )
        self._bind(address, signer, deriver)
        logger.info(
            "session_initialized",
            address=address,
            mode="delegated",
            can_encrypt=sign_message is not None,
        )
        return address

    def initialize_read_only(self, address: str) -> str:
        if not address:
            raise ValueError("address cannot be empty")
        self._bind(address, None, None)
        logger.info("session_initialized", address=address, mode="read_only")
        return address

    def _bind(
        self,
        address: str,
        signer: Optional[TransactionSigner],
        deriver: Optional[KeyDeriver],
    ) -> None:
        # A cached key belongs to exactly one identity
        if (
            self._key_deriver is not None
            and self._key_deriver.has_cached_key
            and address != self._address
        ):
            raise ConfigurationError(
                "Session holds an encryption key for another identity; close() it before rebinding"
            )
        if self._key_deriver is not None:
            self._key_deriver.clear()
        self._address = address
        self._signer = signer
        self._key_deriver = deriver

    @property
    def is_initialized(self) -> bool:
        return self._address is not None

    @property
    def address(self) -> str:
        """
        Address of the bound identity.

        Raises:
            NotInitializedError: If the session has not been initialized
        """
        if self._address is None:
            raise NotInitializedError(
                "Session not initialized: call initialize(), "
                "initialize_delegated() or initialize_read_only() first"
            )
        return self._address

    def can_sign(self) -> bool:
        return self._signer is not None

    def can_encrypt(self) -> bool:
        return self._key_deriver is not None and self._key_deriver.can_derive

    def _require_signer(self, action: str) -> TransactionSigner:
        self.address  # raises NotInitializedError when unbound
        if self._signer is None:
            raise CapabilityError(
                f"Cannot {action}: session is read-only. Initialize with a raw "
                "secret or a transaction-signing callback"
            )
        return self._signer

    def _require_encryption(self, action: str) -> KeyDeriver:
        self.address  # raises NotInitializedError when unbound
        if self._key_deriver is None or not self._key_deriver.can_derive:
            raise NoKeyMaterialError(
                f"Cannot {action}: no key material. Initialize with a raw secret "
                "or provide a message-signing callback"
            )
        return self._key_deriver

    def _vault_address(self) -> str:
        contract_id = self.config.vault.token_vault_address
        if not contract_id:
            raise ConfigurationError("Token vault contract address is not configured")
        return contract_id

    async def close(self) -> None:
        """Zero the cached key, unbind the identity and release the ledger client."""
        if self._key_deriver is not None:
            self._key_deriver.clear()
        self._key_deriver = None
        self._signer = None
        if self._address is not None:
            logger.info("session_closed", address=self._address)
        self._address = None
        if self._owns_client:
            await self.ledger.close()

    # ------------------------------------------------------------------
    # Ledger plumbing
    # ------------------------------------------------------------------

    async def invoke_contract(
        self, contract_id: str, function: str, *args: dict[str, Any]
    ) -> GetTransactionResponse:
        """
        Build, sign and submit a contract call, then wait for confirmation.

        Raises:
            CapabilityError: If the session cannot sign
            SubmissionError: If signing, submission or confirmation fails
            UserCancelledError: If the user dismissed a delegated signature
        """
        signer = self._require_signer(f"call {function}")
        account = await self.ledger.get_account(signer.address)

        transaction = UnsignedTransaction(
            source=signer.address,
            sequence=account.sequence + 1,
            fee=self.config.ledger.base_fee,
            network_passphrase=self.config.ledger.passphrase,
            max_time=int(time.time()) + self.config.ledger.tx_validity_seconds,
            operation=ContractCall(contract_id=contract_id, function=function, args=tuple(args)),
        )

        signed = await signer.sign(transaction)
        return await self.ledger.submit_and_wait(signed)

    async def simulate_contract(self, contract_id: str, function: str, *args: dict[str, Any]) -> Any:
        """Run a read-only contract call; no signature is required."""
        transaction = UnsignedTransaction(
            source=self.address,
            sequence=0,
            fee=self.config.ledger.base_fee,
            network_passphrase=self.config.ledger.passphrase,
            max_time=int(time.time()) + self.config.ledger.tx_validity_seconds,
            operation=ContractCall(contract_id=contract_id, function=function, args=tuple(args)),
        )
        return await self.ledger.simulate(transaction)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def store_card(self, card: CardData) -> TokenMetadata:
        """
        Tokenize a card and anchor the token in the vault.

        Steps:
        1. Validate the card (Luhn, expiry, CVV, holder name)
        2. Detect the network when it is unset or unknown
        3. Derive (or reuse) the session key and encrypt the card
        4. Sign and submit store_token, wait for confirmation

        Returns:
            Metadata of the stored token, status active

        Raises:
            InvalidCardError: If the card fails validation
            CapabilityError: If the session cannot sign or encrypt
            ConfigurationError: If no vault contract is configured
            TokenAlreadyExistsError: If the vault holds a non-revoked token
            SubmissionError: If signing, submission or confirmation fails
            UserCancelledError: If the user dismissed a delegated signature
        """
        address = self.address

        # Step 1: Validate before anything touches a key or the network
        validate_card(card)

        # Step 2: Detect network
        if card.network is None or card.network == CardNetwork.UNKNOWN:
            card = replace(card, network=detect_network(card.pan))

        # Step 3: Capability checks, then key and encryption
        self._require_signer("store a card")
        deriver = self._require_encryption("store a card")
        contract_id = self._vault_address()

        logger.info(
            "store_card_started",
            address=address,
            card=mask_card_number(card.pan),
            network=card.network.value,
        )

        key = await deriver.get_key()
        encrypted = encrypt_card(card, key)
        del key
        expires_at = card.expires_at

        # Step 4: Submit
        try:
            response = await self.invoke_contract(
                contract_id,
                "store_token",
                address_val(address),
                bytes_val(encrypted.encrypted_payload),
                bytes_val(encrypted.token_hash),
                string_val(encrypted.last4_digits),
                string_val(card.network.value),
                u64_val(expires_at),
            )
        except TransactionFailedError as e:
            if "already exists" in str(e).lower():
                logger.warning("store_card_token_exists", address=address, tx_hash=e.tx_hash)
                raise TokenAlreadyExistsError(
                    "A non-revoked token already exists for this address; revoke it first",
                    tx_hash=e.tx_hash,
                ) from e
            raise

        created_at = int(time.time())
        if isinstance(response.return_value, dict) and "created_at" in response.return_value:
            created_at = int(response.return_value["created_at"])

        token = TokenMetadata(
            user_id=address,
            token_hash=encrypted.token_hash.hex(),
            encrypted_payload=encrypted.encrypted_payload,
            last4_digits=encrypted.last4_digits,
            card_network=card.network.value,
            status=TokenStatus.ACTIVE,
            created_at=created_at,
            expires_at=expires_at,
            ledger_tx_id=response.hash,
        )

        logger.info(
            "store_card_completed",
            address=address,
            tx_hash=response.hash,
            last4=token.last4_digits,
        )
        return token

    async def retrieve_card(self) -> Optional[TokenMetadata]:
        """
        Fetch the caller's token record from the vault.

        Returns:
            Token metadata with its status refreshed against the current
            time, or None when the vault holds no token for the address

        Raises:
            CapabilityError: If the session cannot sign
            SubmissionError: For network and ledger failures. A missing
                account or contract also raises when
                session.treat_missing_account_as_empty is disabled.
        """
        address = self.address
        self._require_signer("retrieve a card")
        contract_id = self._vault_address()

        try:
            response = await self.invoke_contract(contract_id, "retrieve_token", address_val(address))
        except AccountNotFoundError:
            if not self.config.session.treat_missing_account_as_empty:
                raise
            logger.info("retrieve_account_not_found", address=address)
            return None
        except ContractNotFoundError:
            if not self.config.session.treat_missing_account_as_empty:
                raise
            logger.warning("retrieve_contract_not_found", address=address, contract_id=contract_id)
            return None

        record = response.return_value
        if record is None:
            logger.info("retrieve_token_absent", address=address, tx_hash=response.hash)
            return None

        if not isinstance(record, dict):
            raise SubmissionError(f"Vault returned an unexpected record type: {type(record).__name__}")

        try:
            token = TokenMetadata.from_vault_record(record, ledger_tx_id=response.hash)
        except ValueError as e:
            raise SubmissionError(f"Vault returned a malformed token record: {e}") from e

        token.refresh_expiry()
        logger.info(
            "retrieve_card_completed",
            address=address,
            tx_hash=response.hash,
            status=token.status.value,
        )
        return token

    async def revoke_card(self, token: Optional[TokenMetadata] = None) -> TransactionResult:
        """
        Revoke the caller's active token.

        Never raises for engine errors: a failure is reported in the result,
        with cancelled set when the user dismissed the signing request.

        Args:
            token: Metadata the caller holds for the token; marked revoked
                once the revocation is confirmed
        """
        try:
            address = self.address
            self._require_signer("revoke a card")
            response = await self.invoke_contract(self._vault_address(), "revoke_token", address_val(address))
        except UserCancelledError as e:
            logger.info("revoke_card_cancelled", address=self._address)
            return TransactionResult.failed(str(e), cancelled=True)
        except TokenizerError as e:
            logger.warning(
                "revoke_card_failed",
                address=self._address,
                error_type=type(e).__name__,
                error=str(e),
            )
            return TransactionResult.failed(str(e))

        if response.return_value is False:
            logger.info("revoke_card_no_active_token", address=address, tx_hash=response.hash)
            return TransactionResult.failed("No active token to revoke")

        if token is not None:
            token.mark_revoked()

        logger.info("revoke_card_completed", address=address, tx_hash=response.hash)
        return TransactionResult.ok(response.hash, data=response.return_value)

    async def decrypt_card(self, encrypted_payload: bytes) -> CardData:
        """
        Decrypt a token payload locally with the session key.

        Raises:
            CapabilityError: If the session has no key material
            AuthenticationError: If the payload was tampered with or was
                encrypted under another key
            CryptoError: If the payload authenticates but is not a card record
        """
        deriver = self._require_encryption("decrypt a card")
        key = await deriver.get_key()
        try:
            card = decrypt_card(encrypted_payload, key)
        finally:
            del key
        logger.debug("decrypt_card_completed", address=self._address, last4=card.last4)
        return card

    async def get_token_status(self) -> Optional[TokenStatus]:
        """
        Read the token status for the session address.

        Read-only: works for every session shape, no signature required.
        """
        address = self.address
        contract_id = self._vault_address()

        try:
            value = await self.simulate_contract(contract_id, "get_token_status", address_val(address))
        except ContractNotFoundError:
            if not self.config.session.treat_missing_account_as_empty:
                raise
            logger.warning("token_status_contract_not_found", address=address, contract_id=contract_id)
            return None

        if value is None:
            return None

        try:
            return TokenStatus(str(value).lower())
        except ValueError as e:
            raise SubmissionError(f"Vault returned an unknown token status: {value!r}") from e

    async def get_mode(self) -> AccessMode:
        return await self.access_mode.get_mode()

    async def set_mode(self, mode: Union[AccessMode, str]) -> TransactionResult:
        return await self.access_mode.set_mode(mode)
