"""Configuration management for the card tokenizer."""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

NETWORK_PASSPHRASES = {
    "testnet": "Test SDF Network ; September 2015",
    "mainnet": "Public Global Stellar Network ; September 2015",
}


class LedgerSettings(BaseSettings):
    """Ledger RPC endpoint and transaction settings."""

    rpc_url: str = Field(
        default="https://soroban-testnet.stellar.org",
        description="JSON-RPC endpoint of the ledger",
    )
    network: Literal["testnet", "mainnet"] = Field(
        default="testnet", description="Ledger network the vault is deployed on"
    )
    network_passphrase: Optional[str] = Field(
        default=None,
        description="Override for the network passphrase (defaults per network)",
    )
    request_timeout_seconds: float = Field(default=10.0, description="Per-request HTTP timeout")
    poll_interval_seconds: float = Field(default=1.0, description="Confirmation poll interval")
    confirmation_timeout_seconds: float = Field(
        default=60.0, description="Upper bound on waiting for a terminal transaction status"
    )
    base_fee: int = Field(default=100, description="Fee per operation in stroops")
    tx_validity_seconds: int = Field(default=30, description="Transaction time-bound window")

    @property
    def passphrase(self) -> str:
        return self.network_passphrase or NETWORK_PASSPHRASES[self.network]


class VaultSettings(BaseSettings):
    """Contract addresses for the token vault and account abstraction."""

    token_vault_address: str = Field(default="", description="Token vault contract id")
    account_abstraction_address: Optional[str] = Field(
        default=None, description="Account abstraction contract id"
    )
    use_account_abstraction: bool = Field(
        default=False, description="Enable access-mode reads and transitions"
    )

    @property
    def account_abstraction_enabled(self) -> bool:
        return self.use_account_abstraction and bool(self.account_abstraction_address)


class SessionSettings(BaseSettings):
    """Per-session behavior."""

    key_namespace: str = Field(
        default="card-tokenizer", description="Namespace of the key-derivation challenge"
    )
    signer_timeout_seconds: float = Field(
        default=300.0, description="Upper bound on waiting for a delegated signer"
    )
    treat_missing_account_as_empty: bool = Field(
        default=True,
        description="Return no token from retrieve when the account or contract is missing",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    vault: VaultSettings = Field(default_factory=VaultSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)

    model_config = SettingsConfigDict(
        env_prefix="CARD_TOKENIZER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
    )


# Global settings instance
settings = Settings()
