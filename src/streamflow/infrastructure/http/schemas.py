"""Pydantic request and response shapes for the session API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from streamflow.application.dto.session import SessionStats, SessionView, SettlementConfirmed
from streamflow.domain.pricing import CostSnapshot
from streamflow.domain.session import Session


class CamelModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class StartSessionBody(CamelModel):
    viewer_address: str = Field(min_length=1)
    creator_address: str = Field(min_length=1)
    # Strings are accepted so decimal rates survive without float rounding.
    rate_per_second: float | str

    @field_validator("rate_per_second", mode="before")
    @classmethod
    def _reject_bool(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("ratePerSecond must be a number")
        return value


class SessionModel(CamelModel):
    session_id: str
    ledger_session_id: str
    viewer_address: str
    creator_address: str
    rate_per_second: float
    start_time: int
    end_time: int | None = None
    total_seconds: int
    total_paid: float
    status: str
    tx_hash: str | None = None
    settled_at: int | None = None


class CostModel(CamelModel):
    seconds: int
    cost: float


class StartSessionResponse(CamelModel):
    session_id: str
    session: SessionModel
    message: str


class SessionDetailResponse(CamelModel):
    session: SessionModel
    current_cost: CostModel


class SessionCostResponse(CamelModel):
    session_id: str
    seconds: int
    cost: float


class StopSessionResponse(CamelModel):
    session_id: str
    session: SessionModel
    total_seconds: int
    total_paid: float
    message: str


class SettleSessionResponse(CamelModel):
    success: bool
    tx_hash: str
    settled_amount: float
    session_id: str
    simulated: bool
    message: str


class SessionListItem(SessionModel):
    current_cost: CostModel | None = None


class SessionListResponse(CamelModel):
    sessions: list[SessionListItem]
    count: int


class StatsResponse(CamelModel):
    total_sessions: int
    active_sessions: int
    stopped_sessions: int
    settled_sessions: int
    total_revenue: float
    settled_revenue: float


class X402ConfigResponse(CamelModel):
    network: str
    asset: str
    is_production_mode: bool
    verify_recipient: bool
    max_timeout_seconds: int
    facilitator_url: str | None = None


def session_model(session: Session) -> SessionModel:
    return SessionModel(**_session_fields(session))


def cost_model(cost: CostSnapshot) -> CostModel:
    return CostModel(seconds=cost.seconds, cost=float(cost.amount))


def session_list_item(view: SessionView) -> SessionListItem:
    live_cost = cost_model(view.current_cost) if view.session.is_active else None
    return SessionListItem(**_session_fields(view.session), current_cost=live_cost)


def settle_response(result: SettlementConfirmed) -> SettleSessionResponse:
    return SettleSessionResponse(
        success=True,
        tx_hash=result.tx_reference,
        settled_amount=float(result.settled_amount),
        session_id=result.session.session_id,
        simulated=result.simulated,
        message="Payment settled successfully",
    )


def stats_response(stats: SessionStats) -> StatsResponse:
    return StatsResponse(
        total_sessions=stats.total_sessions,
        active_sessions=stats.active_sessions,
        stopped_sessions=stats.stopped_sessions,
        settled_sessions=stats.settled_sessions,
        total_revenue=float(stats.total_revenue),
        settled_revenue=float(stats.settled_revenue),
    )


def _session_fields(session: Session) -> dict[str, object]:
    return {
        "session_id": session.session_id,
        "ledger_session_id": str(session.ledger_session_id),
        "viewer_address": session.viewer_address,
        "creator_address": session.creator_address,
        "rate_per_second": float(session.rate_per_second),
        "start_time": session.started_at_ms,
        "end_time": session.ended_at_ms,
        "total_seconds": session.total_seconds,
        "total_paid": float(session.total_paid),
        "status": session.status.value,
        "tx_hash": session.tx_reference,
        "settled_at": session.settled_at_ms,
    }


__all__ = [
    "CostModel",
    "SessionCostResponse",
    "SessionDetailResponse",
    "SessionListItem",
    "SessionListResponse",
    "SessionModel",
    "SettleSessionResponse",
    "StartSessionBody",
    "StartSessionResponse",
    "StatsResponse",
    "StopSessionResponse",
    "X402ConfigResponse",
    "cost_model",
    "session_list_item",
    "session_model",
    "settle_response",
    "stats_response",
]
