from __future__ import annotations

import pytest

from streamflow.runtime.settings import Settings

_LEDGER_ENV = (
    "MOVEMENT_PAY_TO",
    "PLATFORM_PRIVATE_KEY",
    "X402_ACCEPT_DEMO_PAYMENTS",
    "X402_VERIFY_RECIPIENT",
    "MOVEMENT_NETWORK",
    "STREAMFLOW_DATABASE_URL",
    "MOVEMENT_FACILITATOR_URL",
    "LEDGER_RETRY_ATTEMPTS",
    "LEDGER_RETRY_INITIAL_MS",
    "LEDGER_RETRY_MAX_MS",
    "LEDGER_POLL_INTERVAL_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in _LEDGER_ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults_run_in_simulation() -> None:
    settings = Settings.load()

    assert settings.ledger.network == "movement-testnet"
    assert settings.ledger.asset == "0x1::aptos_coin::AptosCoin"
    assert settings.ledger.max_timeout_seconds == 600
    assert settings.ledger.finality_timeout_seconds == 30.0
    assert settings.database_url_value is None
    assert not settings.production_mode


def test_production_mode_requires_pay_to_and_signing_key(monkeypatch) -> None:
    monkeypatch.setenv("MOVEMENT_PAY_TO", "0x" + "c2" * 32)
    assert not Settings.load().production_mode

    monkeypatch.setenv("PLATFORM_PRIVATE_KEY", "ed25519-priv-0xabc")
    assert Settings.load().production_mode

    monkeypatch.setenv("X402_ACCEPT_DEMO_PAYMENTS", "true")
    assert not Settings.load().production_mode


def test_blank_private_key_counts_as_missing(monkeypatch) -> None:
    monkeypatch.setenv("MOVEMENT_PAY_TO", "0x" + "c2" * 32)
    monkeypatch.setenv("PLATFORM_PRIVATE_KEY", "   ")

    assert not Settings.load().production_mode


def test_secrets_are_not_rendered(monkeypatch) -> None:
    monkeypatch.setenv("PLATFORM_PRIVATE_KEY", "super-secret-key")
    monkeypatch.setenv("STREAMFLOW_DATABASE_URL", "postgresql://user:hunter2@db/streamflow")

    settings = Settings.load()

    assert "super-secret-key" not in repr(settings)
    assert "hunter2" not in repr(settings)
    assert settings.database_url_value == "postgresql://user:hunter2@db/streamflow"


def test_facilitator_url_defaults_and_blank_disables(monkeypatch) -> None:
    assert Settings.load().ledger.facilitator_url_value == "https://facilitator.stableyard.fi"

    monkeypatch.setenv("MOVEMENT_FACILITATOR_URL", "  ")
    assert Settings.load().ledger.facilitator_url_value is None


def test_ledger_client_retry_and_polling_from_env(monkeypatch) -> None:
    monkeypatch.setenv("LEDGER_RETRY_ATTEMPTS", "6")
    monkeypatch.setenv("LEDGER_RETRY_INITIAL_MS", "100")
    monkeypatch.setenv("LEDGER_RETRY_MAX_MS", "800")
    monkeypatch.setenv("LEDGER_POLL_INTERVAL_SECONDS", "0.5")

    client = Settings.load().ledger_client

    assert client.retry_policy.attempts == 6
    assert client.retry_policy.initial_ms == 100
    assert client.retry_policy.max_ms == 800
    assert client.poll_interval_seconds == 0.5


def test_ledger_client_rejects_inverted_backoff_bounds(monkeypatch) -> None:
    monkeypatch.setenv("LEDGER_RETRY_INITIAL_MS", "5000")
    monkeypatch.setenv("LEDGER_RETRY_MAX_MS", "100")

    with pytest.raises(ValueError, match="LEDGER_RETRY_MAX_MS"):
        Settings.load()
