"""Runtime wiring for the settlement service."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from streamflow.application.dto.session import ChallengeTerms
from streamflow.application.ports.ledger import LedgerClientPort
from streamflow.application.ports.session_store import SessionStorePort
from streamflow.application.ports.verifier import SettlementVerifierPort
from streamflow.application.session_controller import Clock, SessionController
from streamflow.domain.pricing import PricingEngine
from streamflow.infrastructure.http.routes import SessionRouteDeps
from streamflow.infrastructure.ledger.facilitator_client import HttpFacilitatorClient
from streamflow.infrastructure.ledger.http_client import HttpLedgerClient
from streamflow.infrastructure.settlement.ledger_verifier import (
    LedgerSettlementVerifier,
    require_recipient_match,
    settlement_event_type,
)
from streamflow.infrastructure.settlement.simulated_verifier import SimulatedSettlementVerifier
from streamflow.infrastructure.state.session_store import InMemorySessionStore
from streamflow.infrastructure.state.sql_session_store import SqlSessionStore
from streamflow.runtime.settings import Settings

logger = logging.getLogger("streamflow.runtime")


@dataclass(frozen=True, slots=True)
class RuntimeContext:
    """Aggregated runtime components for the settlement service."""

    settings: Settings
    store: SessionStorePort
    ledger_client: LedgerClientPort | None
    verifier: SettlementVerifierPort
    controller: SessionController
    route_deps_provider: Callable[[], SessionRouteDeps]


def build_runtime(
    settings: Settings | None = None,
    *,
    clock: Clock | None = None,
    ledger_transport: httpx.BaseTransport | None = None,
) -> RuntimeContext:
    """Construct the runtime context shared by the server entrypoint."""
    resolved = settings or Settings.load()
    store = _build_store(resolved)
    ledger_client, verifier = _build_verification(resolved, ledger_transport)

    ledger = resolved.ledger
    controller = SessionController(
        store,
        verifier,
        pricing=PricingEngine(),
        terms=ChallengeTerms(
            network=ledger.network,
            asset=ledger.asset,
            max_timeout_seconds=ledger.max_timeout_seconds,
        ),
        clock=clock,
    )
    route_deps = SessionRouteDeps(
        controller=controller,
        network=ledger.network,
        asset=ledger.asset,
        production_mode=not verifier.simulated,
        verify_recipient=ledger.verify_recipient,
        max_timeout_seconds=ledger.max_timeout_seconds,
        facilitator_url=ledger.facilitator_url_value,
    )

    logger.info(
        "runtime_built",
        extra={
            "data": {
                "store": type(store).__name__,
                "verifier": type(verifier).__name__,
                "production_mode": not verifier.simulated,
                "network": ledger.network,
            }
        },
    )
    return RuntimeContext(
        settings=resolved,
        store=store,
        ledger_client=ledger_client,
        verifier=verifier,
        controller=controller,
        route_deps_provider=lambda: route_deps,
    )


def _build_store(settings: Settings) -> SessionStorePort:
    database_url = settings.database_url_value
    if database_url is None:
        return InMemorySessionStore()
    return SqlSessionStore.from_url(database_url)


def _build_verification(
    settings: Settings,
    transport: httpx.BaseTransport | None,
) -> tuple[LedgerClientPort | None, SettlementVerifierPort]:
    ledger = settings.ledger
    if not ledger.production_mode:
        logger.warning(
            "simulated_settlement_enabled",
            extra={
                "data": {
                    "pay_to_configured": bool(ledger.pay_to),
                    "private_key_configured": ledger.platform_private_key is not None,
                    "accept_demo_payments": ledger.accept_demo_payments,
                }
            },
        )
        return None, SimulatedSettlementVerifier()

    client = HttpLedgerClient(
        base_url=ledger.rpc_url,
        timeout_seconds=ledger.request_timeout_seconds,
        retry_policy=settings.ledger_client.retry_policy,
        poll_interval_seconds=settings.ledger_client.poll_interval_seconds,
        transport=transport,
    )
    facilitator: HttpFacilitatorClient | None = None
    if ledger.facilitator_url_value is not None:
        facilitator = HttpFacilitatorClient(
            base_url=ledger.facilitator_url_value,
            asset=ledger.asset,
            network=ledger.network,
            timeout_seconds=ledger.request_timeout_seconds,
            transport=transport,
        )
    verifier = LedgerSettlementVerifier(
        client,
        event_type=settlement_event_type(ledger.contract_address),
        finality_timeout_seconds=ledger.finality_timeout_seconds,
        recipient_check=require_recipient_match if ledger.verify_recipient else None,
        facilitator=facilitator,
    )
    return client, verifier


__all__ = ["RuntimeContext", "build_runtime"]
