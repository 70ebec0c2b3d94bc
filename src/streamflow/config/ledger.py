"""Ledger connectivity and x402 settlement settings."""

from __future__ import annotations

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from streamflow.retry import RetryPolicy

DEFAULT_NETWORK = "movement-testnet"
DEFAULT_ASSET = "0x1::aptos_coin::AptosCoin"
DEFAULT_RPC_URL = "https://testnet.movementnetwork.xyz/v1"
DEFAULT_CONTRACT_ADDRESS = "0x00bc9b0ecb6722865cd483e18184957d8043bf6283c56aa9b8a2c1b433d6b31d"
DEFAULT_FACILITATOR_URL = "https://facilitator.stableyard.fi"


class LedgerSettings(BaseSettings):
    """Network, asset and verification configuration for settlements."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    network: str = Field(default=DEFAULT_NETWORK, alias="MOVEMENT_NETWORK")
    asset: str = Field(default=DEFAULT_ASSET, alias="MOVEMENT_ASSET")
    pay_to: str = Field(default="", alias="MOVEMENT_PAY_TO")
    rpc_url: str = Field(default=DEFAULT_RPC_URL, alias="MOVEMENT_RPC_URL")
    contract_address: str = Field(default=DEFAULT_CONTRACT_ADDRESS, alias="MOVEMENT_CONTRACT_ADDRESS")
    facilitator_url: str = Field(default=DEFAULT_FACILITATOR_URL, alias="MOVEMENT_FACILITATOR_URL")
    platform_private_key: SecretStr | None = Field(default=None, alias="PLATFORM_PRIVATE_KEY")
    accept_demo_payments: bool = Field(default=False, alias="X402_ACCEPT_DEMO_PAYMENTS")
    verify_recipient: bool = Field(default=False, alias="X402_VERIFY_RECIPIENT")
    max_timeout_seconds: int = Field(default=600, alias="X402_MAX_TIMEOUT_SECONDS", ge=1)
    finality_timeout_seconds: float = Field(default=30.0, alias="LEDGER_FINALITY_TIMEOUT_SECONDS", gt=0)
    request_timeout_seconds: float = Field(default=10.0, alias="LEDGER_REQUEST_TIMEOUT_SECONDS", gt=0)

    @field_validator("platform_private_key", mode="before")
    @classmethod
    def _blank_key_is_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("pay_to", "rpc_url", "contract_address", "facilitator_url", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def facilitator_url_value(self) -> str | None:
        """Blank disables the facilitator fallback."""
        return self.facilitator_url or None

    @property
    def production_mode(self) -> bool:
        """Real verification needs a payee and the signing key; demo payments force simulation."""
        return bool(self.pay_to) and self.platform_private_key is not None and not self.accept_demo_payments


class LedgerClientSettings(BaseSettings):
    """How the service talks to the fullnode: backoff on 429/5xx and receipt polling."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    retry_attempts: int = Field(default=4, ge=1)
    retry_initial_ms: int = Field(default=250, ge=0)
    retry_max_ms: int = Field(default=4000, ge=0)
    retry_jitter: float = Field(default=0.2, ge=0.0, le=1.0)
    poll_interval_seconds: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _backoff_bounds(self) -> LedgerClientSettings:
        if self.retry_max_ms < self.retry_initial_ms:
            raise ValueError("LEDGER_RETRY_MAX_MS must not be below LEDGER_RETRY_INITIAL_MS")
        return self

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            attempts=self.retry_attempts,
            initial_ms=self.retry_initial_ms,
            max_ms=self.retry_max_ms,
            jitter=self.retry_jitter,
        )


__all__ = ["LedgerClientSettings", "LedgerSettings"]
