"""Session protocol use case: start, stop and the 402 settlement exchange."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from decimal import Decimal, InvalidOperation

from streamflow.application.dto.session import (
    ChallengeTerms,
    SessionStats,
    SessionView,
    SettlementConfirmed,
    StartSessionRequest,
)
from streamflow.application.payment_artifact import parse_payment_header
from streamflow.application.ports.session_store import SessionStorePort
from streamflow.application.ports.verifier import SettlementVerifierPort
from streamflow.domain.addresses import is_valid_address, normalize_address
from streamflow.domain.pricing import CostSnapshot, PricingEngine
from streamflow.domain.session import Session, SessionStatus
from streamflow.domain.settlement import PaymentChallenge, SettlementObligation
from streamflow.errors import (
    AlreadySettledError,
    DuplicateSessionError,
    PaymentRequiredError,
    SessionNotFoundError,
    StaleSessionError,
    ValidationError,
)

logger = logging.getLogger("streamflow.sessions")

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class SessionController:
    """Drives the ``active -> stopped -> settled`` state machine.

    Every transition goes through a status-guarded store update, so at most
    one stop and one settle succeed per session even with several controller
    processes. Verification runs before the settle update and holds no lock.
    """

    def __init__(
        self,
        store: SessionStorePort,
        verifier: SettlementVerifierPort,
        *,
        pricing: PricingEngine,
        terms: ChallengeTerms,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._verifier = verifier
        self._pricing = pricing
        self._terms = terms
        self._clock = clock or wall_clock_ms

    @property
    def simulated(self) -> bool:
        return self._verifier.simulated

    # ------------------------------------------------------------------
    # lifecycle

    def start(self, request: StartSessionRequest) -> Session:
        """Open an active session for a viewer/creator pair."""
        viewer, creator = _validated_pair(request.viewer_address, request.creator_address)
        rate = _validated_rate(request.rate_per_second)

        existing = self._store.list(
            viewer_address=viewer,
            creator_address=creator,
            status=SessionStatus.ACTIVE,
        )
        if existing:
            raise DuplicateSessionError(existing[0].session_id)

        session = self._store.create(
            viewer_address=viewer,
            creator_address=creator,
            rate_per_second=rate,
            started_at_ms=self._clock(),
        )
        logger.info(
            "session_started",
            extra={
                "data": {
                    "session_id": session.session_id,
                    "ledger_session_id": session.ledger_session_id,
                    "viewer": viewer,
                    "creator": creator,
                    "rate_per_second": str(rate),
                }
            },
        )
        return session

    def stop(self, session_id: str) -> Session:
        """Freeze duration and amount; a no-op once stopped or settled."""
        session = self._require(session_id)
        if not session.is_active:
            return session

        ended_at_ms = self._clock()
        try:
            stopped = self._store.update(
                session_id,
                lambda current: current.mark_stopped(
                    ended_at_ms,
                    self._pricing.final_cost(
                        current.started_at_ms, ended_at_ms, current.rate_per_second
                    ),
                ),
                expected_status=SessionStatus.ACTIVE,
            )
        except StaleSessionError as exc:
            logger.info(
                "session_stop_lost_race",
                extra={"data": {"session_id": session_id, "status": exc.current.status.value}},
            )
            return exc.current
        if stopped is None:
            raise SessionNotFoundError(session_id)

        logger.info(
            "session_stopped",
            extra={
                "data": {
                    "session_id": session_id,
                    "total_seconds": stopped.total_seconds,
                    "total_paid": str(stopped.total_paid),
                }
            },
        )
        return stopped

    def settle(
        self,
        session_id: str,
        payment_header: str | None,
        *,
        resource_url: str,
    ) -> SettlementConfirmed:
        """Run one leg of the 402 exchange.

        Without a payment header the frozen obligation is returned as a
        ``PaymentRequiredError``. With one, the artifact is verified and the
        session moves to ``settled``; verification failures leave it stopped.
        """
        session = self._require(session_id)
        if session.is_settled:
            raise AlreadySettledError(session.session_id, session.tx_reference)
        if session.is_active:
            session = self.stop(session_id)
            if session.is_settled:
                raise AlreadySettledError(session.session_id, session.tx_reference)

        obligation = self._obligation(session)
        if payment_header is None or not payment_header.strip():
            challenge = self._challenge(session, obligation, resource_url)
            logger.info(
                "settlement_challenge_issued",
                extra={
                    "data": {
                        "session_id": session_id,
                        "max_amount_required": str(obligation.amount),
                        "pay_to": obligation.recipient,
                    }
                },
            )
            raise PaymentRequiredError(challenge)

        artifact = parse_payment_header(payment_header, network=self._terms.network)
        payment = self._verifier.verify(artifact, obligation)

        settled_at_ms = self._clock()
        try:
            settled = self._store.update(
                session_id,
                lambda current: current.mark_settled(payment.tx_reference, settled_at_ms),
                expected_status=SessionStatus.STOPPED,
            )
        except StaleSessionError as exc:
            raise AlreadySettledError(exc.current.session_id, exc.current.tx_reference) from exc
        if settled is None:
            raise SessionNotFoundError(session_id)

        logger.info(
            "session_settled",
            extra={
                "data": {
                    "session_id": session_id,
                    "tx_reference": payment.tx_reference,
                    "amount": str(obligation.amount),
                    "simulated": payment.simulated,
                }
            },
        )
        return SettlementConfirmed(
            session=settled,
            tx_reference=payment.tx_reference,
            settled_amount=settled.total_paid,
            settled_base_units=obligation.amount,
            simulated=payment.simulated,
        )

    # ------------------------------------------------------------------
    # reads

    def get(self, session_id: str) -> SessionView:
        session = self._require(session_id)
        return SessionView(session=session, current_cost=self._cost_of(session))

    def current_cost(self, session_id: str) -> CostSnapshot:
        return self._cost_of(self._require(session_id))

    def list(
        self,
        *,
        viewer_address: str | None = None,
        creator_address: str | None = None,
        status: SessionStatus | None = None,
    ) -> tuple[SessionView, ...]:
        sessions = self._store.list(
            viewer_address=_optional_normalized(viewer_address),
            creator_address=_optional_normalized(creator_address),
            status=status,
        )
        now_ms = self._clock()
        return tuple(
            SessionView(session=session, current_cost=session.current_cost(now_ms, self._pricing))
            for session in sessions
        )

    def stats(self) -> SessionStats:
        sessions = self._store.list()
        counts = {status: 0 for status in SessionStatus}
        total_revenue = Decimal(0)
        settled_revenue = Decimal(0)
        for session in sessions:
            counts[session.status] += 1
            total_revenue += session.total_paid
            if session.is_settled:
                settled_revenue += session.total_paid
        return SessionStats(
            total_sessions=len(sessions),
            active_sessions=counts[SessionStatus.ACTIVE],
            stopped_sessions=counts[SessionStatus.STOPPED],
            settled_sessions=counts[SessionStatus.SETTLED],
            total_revenue=total_revenue,
            settled_revenue=settled_revenue,
        )

    # ------------------------------------------------------------------
    # helpers

    def _require(self, session_id: str) -> Session:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _cost_of(self, session: Session) -> CostSnapshot:
        return session.current_cost(self._clock(), self._pricing)

    def _obligation(self, session: Session) -> SettlementObligation:
        return SettlementObligation(
            session_id=session.session_id,
            ledger_session_id=session.ledger_session_id,
            amount=session.amount_base_units(self._pricing),
            recipient=session.creator_address,
        )

    def _challenge(
        self,
        session: Session,
        obligation: SettlementObligation,
        resource_url: str,
    ) -> PaymentChallenge:
        return PaymentChallenge(
            network=self._terms.network,
            max_amount_required=obligation.amount,
            resource=resource_url,
            description=self._terms.description_template.format(seconds=session.total_seconds),
            pay_to=obligation.recipient,
            max_timeout_seconds=self._terms.max_timeout_seconds,
            asset=self._terms.asset,
            session_id=session.session_id,
            ledger_session_id=session.ledger_session_id,
            total_seconds=session.total_seconds,
        )


def _validated_pair(viewer_address: str, creator_address: str) -> tuple[str, str]:
    if not is_valid_address(viewer_address):
        raise ValidationError("invalid viewer wallet address")
    if not is_valid_address(creator_address):
        raise ValidationError("invalid creator wallet address")
    viewer = normalize_address(viewer_address)
    creator = normalize_address(creator_address)
    if viewer == creator:
        raise ValidationError("viewer and creator addresses must differ")
    return viewer, creator


def _validated_rate(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("rate_per_second must be a number")
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError("rate_per_second must be a number") from exc
    if not rate.is_finite() or rate <= 0:
        raise ValidationError("rate_per_second must be positive")
    return rate


def _optional_normalized(address: str | None) -> str | None:
    if address is None or not address.strip():
        return None
    return normalize_address(address)


__all__ = ["Clock", "SessionController", "wall_clock_ms"]
