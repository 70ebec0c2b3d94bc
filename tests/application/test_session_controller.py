from __future__ import annotations

from decimal import Decimal

import pytest

from streamflow.application.dto.session import ChallengeTerms, StartSessionRequest
from streamflow.application.payment_artifact import SimulatedArtifact
from streamflow.application.session_controller import SessionController
from streamflow.domain.pricing import CostSnapshot, PricingEngine
from streamflow.domain.session import SessionStatus
from streamflow.errors import (
    AlreadySettledError,
    AmountMismatchError,
    DuplicateSessionError,
    PaymentRequiredError,
    SessionNotFoundError,
    ValidationError,
)
from streamflow.infrastructure.settlement.simulated_verifier import SimulatedSettlementVerifier
from streamflow.infrastructure.state.session_store import InMemorySessionStore
from tests.fixtures.fakes import CREATOR, TX_HASH, VIEWER, FakeClock, FakeVerifier, RacingSessionStore

RESOURCE = "/sessions/x/settle"


def make_controller(
    verifier: FakeVerifier | SimulatedSettlementVerifier | None = None,
    clock: FakeClock | None = None,
    store: InMemorySessionStore | None = None,
) -> tuple[SessionController, InMemorySessionStore, FakeClock]:
    if store is None:
        store = InMemorySessionStore()
    resolved_clock = clock or FakeClock()
    controller = SessionController(
        store,
        verifier or FakeVerifier(),
        pricing=PricingEngine(),
        terms=ChallengeTerms(network="movement-testnet", asset="0x1::aptos_coin::AptosCoin"),
        clock=resolved_clock,
    )
    return controller, store, resolved_clock


def make_request(rate: Decimal | float | str = Decimal("0.001")) -> StartSessionRequest:
    return StartSessionRequest(viewer_address=VIEWER, creator_address=CREATOR, rate_per_second=rate)


def test_start_creates_active_session_with_normalized_addresses() -> None:
    controller, store, clock = make_controller()

    session = controller.start(
        StartSessionRequest(
            viewer_address="0x" + "A1" * 20,
            creator_address=CREATOR,
            rate_per_second="0.001",
        )
    )

    assert session.status is SessionStatus.ACTIVE
    assert session.viewer_address == "0x" + "0" * 24 + "a1" * 20
    assert session.rate_per_second == Decimal("0.001")
    assert session.started_at_ms == clock.now_ms
    assert store.get(session.session_id) == session


@pytest.mark.parametrize("rate", [0, -1, "abc", "NaN", True])
def test_start_rejects_invalid_rates(rate: object) -> None:
    controller, _, _ = make_controller()

    with pytest.raises(ValidationError):
        controller.start(make_request(rate))  # type: ignore[arg-type]


def test_start_rejects_invalid_or_identical_addresses() -> None:
    controller, _, _ = make_controller()

    with pytest.raises(ValidationError):
        controller.start(StartSessionRequest("0x123", CREATOR, Decimal(1)))
    with pytest.raises(ValidationError):
        controller.start(StartSessionRequest(VIEWER, VIEWER.upper().replace("0X", "0x"), Decimal(1)))


def test_duplicate_active_session_for_pair_is_rejected() -> None:
    controller, _, _ = make_controller()
    first = controller.start(make_request())

    with pytest.raises(DuplicateSessionError) as excinfo:
        controller.start(make_request())

    assert excinfo.value.session_id == first.session_id


def test_pair_may_start_again_after_stop() -> None:
    controller, _, _ = make_controller()
    first = controller.start(make_request())
    controller.stop(first.session_id)

    second = controller.start(make_request())

    assert second.session_id != first.session_id
    assert second.ledger_session_id > first.ledger_session_id


def test_stop_is_idempotent() -> None:
    controller, _, clock = make_controller()
    session = controller.start(make_request())
    clock.advance(seconds=30.7)

    first = controller.stop(session.session_id)
    clock.advance(seconds=60)
    second = controller.stop(session.session_id)

    assert first.total_seconds == 30
    assert first.total_paid == Decimal("0.030")
    assert second == first


def test_stop_unknown_session_raises_not_found() -> None:
    controller, _, _ = make_controller()

    with pytest.raises(SessionNotFoundError):
        controller.stop("sf_missing")


def test_live_cost_tracks_clock_until_stop() -> None:
    controller, _, clock = make_controller()
    session = controller.start(make_request())

    clock.advance(seconds=10)
    assert controller.current_cost(session.session_id).seconds == 10

    controller.stop(session.session_id)
    clock.advance(seconds=100)
    view = controller.get(session.session_id)
    assert view.current_cost.seconds == 10
    assert view.current_cost.amount == Decimal("0.010")


def test_settle_without_header_issues_challenge_and_stops_active_session() -> None:
    controller, store, clock = make_controller()
    session = controller.start(make_request())
    clock.advance(seconds=120)

    with pytest.raises(PaymentRequiredError) as excinfo:
        controller.settle(session.session_id, None, resource_url=RESOURCE)

    payload = excinfo.value.challenge.to_payload()
    assert payload["maxAmountRequired"] == "12000000"
    assert payload["payTo"] == CREATOR
    assert payload["scheme"] == "exact"
    assert payload["mimeType"] == "application/json"
    assert payload["maxTimeoutSeconds"] == 600
    assert payload["description"] == "StreamFlow payment for 120s of streaming"
    assert payload["extra"]["ledgerSessionId"] == str(session.ledger_session_id)
    stored = store.get(session.session_id)
    assert stored is not None
    assert stored.status is SessionStatus.STOPPED


def test_end_to_end_simulated_settlement() -> None:
    controller, store, clock = make_controller(verifier=SimulatedSettlementVerifier())
    session = controller.start(make_request(Decimal("0.001")))
    clock.advance(seconds=120)

    stopped = controller.stop(session.session_id)
    assert stopped.total_seconds == 120
    assert stopped.total_paid == Decimal("0.12")

    with pytest.raises(PaymentRequiredError):
        controller.settle(session.session_id, "", resource_url=RESOURCE)

    confirmed = controller.settle(session.session_id, "demo_tx_1", resource_url=RESOURCE)

    assert confirmed.simulated
    assert confirmed.settled_amount == Decimal("0.12")
    assert confirmed.settled_base_units == 12_000_000
    assert confirmed.tx_reference.startswith("demo_")
    stored = store.get(session.session_id)
    assert stored is not None
    assert stored.status is SessionStatus.SETTLED
    assert stored.tx_reference == confirmed.tx_reference


def test_settled_session_rejects_further_settlement() -> None:
    controller, _, clock = make_controller()
    session = controller.start(make_request())
    clock.advance(seconds=5)
    confirmed = controller.settle(session.session_id, "demo_first", resource_url=RESOURCE)

    with pytest.raises(AlreadySettledError) as excinfo:
        controller.settle(session.session_id, "demo_second", resource_url=RESOURCE)

    assert excinfo.value.tx_reference == confirmed.tx_reference
    assert controller.stop(session.session_id).is_settled


def test_failed_verification_leaves_session_stopped() -> None:
    verifier = FakeVerifier(failure=AmountMismatchError(expected=500, actual=100))
    controller, store, clock = make_controller(verifier=verifier)
    session = controller.start(make_request())
    clock.advance(seconds=5)

    with pytest.raises(AmountMismatchError):
        controller.settle(session.session_id, "demo_short", resource_url=RESOURCE)

    stored = store.get(session.session_id)
    assert stored is not None
    assert stored.status is SessionStatus.STOPPED
    assert stored.tx_reference is None


def test_verifier_receives_obligation_in_base_units() -> None:
    verifier = FakeVerifier()
    controller, _, clock = make_controller(verifier=verifier)
    session = controller.start(make_request(Decimal("0.25")))
    clock.advance(seconds=3)

    controller.settle(session.session_id, "demo_ok", resource_url=RESOURCE)

    artifact, obligation = verifier.calls[0]
    assert artifact == SimulatedArtifact(value="demo_ok")
    assert obligation.amount == 75_000_000
    assert obligation.ledger_session_id == session.ledger_session_id
    assert obligation.recipient == CREATOR


def test_list_filters_and_reports_stats() -> None:
    controller, _, clock = make_controller()
    other_creator = "0x" + "d3" * 32
    first = controller.start(make_request(Decimal("0.5")))
    clock.advance(seconds=1)
    second = controller.start(StartSessionRequest(VIEWER, other_creator, Decimal("0.1")))
    clock.advance(seconds=10)
    controller.stop(first.session_id)
    controller.settle(first.session_id, "demo_paid", resource_url=RESOURCE)

    listed = controller.list(viewer_address=VIEWER)
    assert [view.session.session_id for view in listed] == [second.session_id, first.session_id]
    active = controller.list(status=SessionStatus.ACTIVE)
    assert [view.session.session_id for view in active] == [second.session_id]
    assert active[0].current_cost.seconds == 10

    stats = controller.stats()
    assert stats.total_sessions == 2
    assert stats.active_sessions == 1
    assert stats.settled_sessions == 1
    assert stats.settled_revenue == Decimal("5.5")
    assert stats.total_revenue == Decimal("5.5")


def test_start_rejects_whitespace_padded_non_hex_address() -> None:
    controller, store, _ = make_controller()

    with pytest.raises(ValidationError, match="viewer"):
        controller.start(StartSessionRequest(" 0xZZZZ", CREATOR, Decimal(1)))
    with pytest.raises(ValidationError, match="creator"):
        controller.start(StartSessionRequest(VIEWER, "0xZZZZ ", Decimal(1)))

    assert store.list() == ()


def test_settle_retry_with_corrected_payment_succeeds() -> None:
    verifier = FakeVerifier(failure=AmountMismatchError(expected=5_000_000, actual=100))
    controller, store, clock = make_controller(verifier=verifier)
    session = controller.start(make_request())
    clock.advance(seconds=5)

    with pytest.raises(AmountMismatchError):
        controller.settle(session.session_id, "demo_short", resource_url=RESOURCE)

    verifier.failure = None
    clock.advance(seconds=60)
    confirmed = controller.settle(session.session_id, "demo_full", resource_url=RESOURCE)

    assert confirmed.tx_reference == "demo_full"
    assert confirmed.settled_base_units == 500_000
    stored = store.get(session.session_id)
    assert stored is not None
    assert stored.status is SessionStatus.SETTLED
    assert stored.total_seconds == 5
    assert [obligation.amount for _, obligation in verifier.calls] == [500_000, 500_000]


def test_stop_losing_race_returns_winning_record() -> None:
    store = RacingSessionStore()
    controller, _, clock = make_controller(store=store)
    session = controller.start(make_request())
    clock.advance(seconds=10)

    def competing_stop(session_id: str) -> None:
        store.update(
            session_id,
            lambda current: current.mark_stopped(
                current.started_at_ms + 4_000, CostSnapshot(seconds=4, amount=Decimal("0.004"))
            ),
            expected_status=SessionStatus.ACTIVE,
        )

    store.race_next_update(competing_stop)
    stopped = controller.stop(session.session_id)

    assert stopped.status is SessionStatus.STOPPED
    assert stopped.total_seconds == 4
    assert stopped == store.get(session.session_id)


def test_settle_losing_race_reports_winning_reference() -> None:
    store = RacingSessionStore()
    verifier = FakeVerifier()
    controller, _, clock = make_controller(verifier=verifier, store=store)
    session = controller.start(make_request())
    clock.advance(seconds=10)
    controller.stop(session.session_id)

    def competing_settle(session_id: str) -> None:
        store.update(
            session_id,
            lambda current: current.mark_settled(TX_HASH, clock()),
            expected_status=SessionStatus.STOPPED,
        )

    store.race_next_update(competing_settle)
    with pytest.raises(AlreadySettledError) as excinfo:
        controller.settle(session.session_id, "demo_loser", resource_url=RESOURCE)

    assert excinfo.value.tx_reference == TX_HASH
    assert len(verifier.calls) == 1
    stored = store.get(session.session_id)
    assert stored is not None
    assert stored.tx_reference == TX_HASH
