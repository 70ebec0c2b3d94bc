"""Observability configuration for the service."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ObservabilitySettings(BaseSettings):
    """Flags controlling log format and trace export."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Unset means JSON lines only under Cloud Run or Kubernetes.
    log_json: bool | None = Field(default=None, alias="LOG_JSON")
    service_name: str = Field(default="streamflow", alias="OTEL_SERVICE_NAME")


__all__ = ["ObservabilitySettings"]
