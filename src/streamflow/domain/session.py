"""Session lifecycle record for pay-per-second streaming."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from streamflow.domain.pricing import CostSnapshot, PricingEngine


class SessionStatus(str, Enum):
    """Lifecycle states; transitions only move forward."""

    ACTIVE = "active"
    STOPPED = "stopped"
    SETTLED = "settled"


@dataclass(frozen=True, slots=True)
class Session:
    """Billable viewer/creator pairing with a time-based rate."""

    session_id: str
    ledger_session_id: int
    viewer_address: str
    creator_address: str
    rate_per_second: Decimal
    started_at_ms: int
    ended_at_ms: int | None = None
    total_seconds: int = 0
    total_paid: Decimal = Decimal(0)
    status: SessionStatus = SessionStatus.ACTIVE
    tx_reference: str | None = None
    settled_at_ms: int | None = None

    def __post_init__(self) -> None:
        if not self.session_id.strip():
            raise ValueError("session_id must not be empty")
        if self.ledger_session_id <= 0:
            raise ValueError("ledger_session_id must be positive")
        if self.rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if self.ended_at_ms is not None and self.ended_at_ms < self.started_at_ms:
            raise ValueError("ended_at_ms must not precede started_at_ms")
        if self.total_seconds < 0:
            raise ValueError("total_seconds must be non-negative")
        if self.status is not SessionStatus.ACTIVE:
            if self.ended_at_ms is None:
                raise ValueError("stopped sessions must carry ended_at_ms")
            if self.total_paid != self.total_seconds * self.rate_per_second:
                raise ValueError("total_paid must equal total_seconds * rate_per_second")
        if self.status is SessionStatus.SETTLED and not self.tx_reference:
            raise ValueError("settled sessions must carry a tx_reference")

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @property
    def is_settled(self) -> bool:
        return self.status is SessionStatus.SETTLED

    def frozen_cost(self) -> CostSnapshot:
        """Return the values stored at stop time."""
        return CostSnapshot(seconds=self.total_seconds, amount=self.total_paid)

    def current_cost(self, now_ms: int, pricing: PricingEngine) -> CostSnapshot:
        """Return live cost while active, the frozen values afterwards."""
        if self.is_active:
            return pricing.cost(self.started_at_ms, now_ms, self.rate_per_second)
        return self.frozen_cost()

    def amount_base_units(self, pricing: PricingEngine) -> int:
        """Frozen amount in ledger base units; active sessions have no settled amount yet."""
        if self.is_active:
            raise ValueError("an active session has no frozen amount")
        return pricing.to_base_units(self.total_paid)

    def mark_stopped(self, ended_at_ms: int, final: CostSnapshot) -> Session:
        """Freeze end time, duration and amount."""
        if not self.is_active:
            raise ValueError(f"cannot stop a {self.status.value} session")
        return replace(
            self,
            ended_at_ms=max(ended_at_ms, self.started_at_ms),
            total_seconds=final.seconds,
            total_paid=final.amount,
            status=SessionStatus.STOPPED,
        )

    def mark_settled(self, tx_reference: str, settled_at_ms: int) -> Session:
        """Record the verified settlement reference."""
        if self.status is not SessionStatus.STOPPED:
            raise ValueError(f"cannot settle a {self.status.value} session")
        return replace(
            self,
            status=SessionStatus.SETTLED,
            tx_reference=tx_reference,
            settled_at_ms=settled_at_ms,
        )


__all__ = ["Session", "SessionStatus"]
