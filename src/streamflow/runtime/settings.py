"""Configuration helpers for service runtime wiring."""

from __future__ import annotations

import logging

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from streamflow.config.ledger import LedgerClientSettings, LedgerSettings
from streamflow.config.observability import ObservabilitySettings


class Settings(BaseSettings):
    """Service configuration resolved from the environment.

    Protocol constants (scheme, mime type, base units per token) live in the
    domain modules and are not configurable.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    # --- Server ---
    host: str = Field(default="0.0.0.0", alias="STREAMFLOW_HOST")  # noqa: S104
    port: int = Field(default=5000, alias="STREAMFLOW_PORT")
    # Unset keeps sessions in process memory.
    database_url: SecretStr | None = Field(default=None, alias="STREAMFLOW_DATABASE_URL")

    # --- Component settings ---
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    ledger_client: LedgerClientSettings = Field(default_factory=LedgerClientSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def database_url_value(self) -> str | None:
        if self.database_url is None:
            return None
        return self.database_url.get_secret_value().strip() or None

    @property
    def production_mode(self) -> bool:
        return self.ledger.production_mode

    # --- Loader ---
    @classmethod
    def load(cls) -> Settings:
        instance = cls()
        logger = logging.getLogger("streamflow.settings")
        logger.info("streamflow settings loaded: %r", instance)
        return instance


__all__ = ["Settings"]
