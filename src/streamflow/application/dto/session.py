"""DTOs for the session protocol use cases."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from streamflow.domain.pricing import CostSnapshot
from streamflow.domain.session import Session


@dataclass(frozen=True)
class StartSessionRequest:
    """Input payload for opening a session."""

    viewer_address: str
    creator_address: str
    rate_per_second: Decimal


@dataclass(frozen=True)
class SessionView:
    """Session plus its cost as of the read."""

    session: Session
    current_cost: CostSnapshot


@dataclass(frozen=True)
class SettlementConfirmed:
    """Result of a verified settlement."""

    session: Session
    tx_reference: str
    settled_amount: Decimal
    settled_base_units: int
    simulated: bool


@dataclass(frozen=True)
class ChallengeTerms:
    """Deployment terms advertised in every 402 challenge."""

    network: str
    asset: str
    max_timeout_seconds: int = 600
    description_template: str = "StreamFlow payment for {seconds}s of streaming"


@dataclass(frozen=True)
class SessionStats:
    total_sessions: int
    active_sessions: int
    stopped_sessions: int
    settled_sessions: int
    total_revenue: Decimal
    settled_revenue: Decimal


__all__ = [
    "ChallengeTerms",
    "SessionStats",
    "SessionView",
    "SettlementConfirmed",
    "StartSessionRequest",
]
