"""HTTP route definitions for the session API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from streamflow.application.dto.session import StartSessionRequest
from streamflow.application.session_controller import SessionController
from streamflow.domain.session import SessionStatus
from streamflow.errors import (
    AlreadySettledError,
    ConflictError,
    PaymentRequiredError,
    SessionNotFoundError,
    StreamflowError,
    ValidationError,
    VerificationFailure,
)
from streamflow.infrastructure.http.schemas import (
    SessionCostResponse,
    SessionDetailResponse,
    SessionListResponse,
    SettleSessionResponse,
    StartSessionBody,
    StartSessionResponse,
    StatsResponse,
    StopSessionResponse,
    X402ConfigResponse,
    cost_model,
    session_list_item,
    session_model,
    settle_response,
    stats_response,
)

logger = logging.getLogger("streamflow.http")


@dataclass(frozen=True)
class SessionRouteDeps:
    controller: SessionController
    network: str
    asset: str
    production_mode: bool
    verify_recipient: bool
    max_timeout_seconds: int
    facilitator_url: str | None = None


def add_session_routes(app: FastAPI, dependency_provider: Callable[[], SessionRouteDeps]) -> None:
    def get_dependencies() -> SessionRouteDeps:
        return dependency_provider()

    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.post(
        "/sessions/start",
        status_code=201,
        response_model=StartSessionResponse,
        description="Open a per-second billing session for a viewer and creator.",
    )
    def start_session(
        payload: StartSessionBody,
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> StartSessionResponse:
        request = StartSessionRequest(
            viewer_address=payload.viewer_address,
            creator_address=payload.creator_address,
            rate_per_second=payload.rate_per_second,
        )
        try:
            session = deps.controller.start(request)
        except StreamflowError as exc:
            raise _http_error(exc) from exc
        return StartSessionResponse(
            session_id=session.session_id,
            session=session_model(session),
            message="Session started successfully",
        )

    @app.get(
        "/sessions",
        response_model=SessionListResponse,
        description="List sessions, newest first; active sessions carry their live cost.",
    )
    def list_sessions(
        viewer_address: str | None = Query(default=None, alias="viewerAddress"),
        creator_address: str | None = Query(default=None, alias="creatorAddress"),
        status: str | None = Query(default=None),
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> SessionListResponse:
        try:
            status_filter = SessionStatus(status) if status else None
        except ValueError as exc:
            raise HTTPException(
                status_code=400,
                detail={"error": f"invalid status: {status}", "code": ValidationError.code},
            ) from exc
        views = deps.controller.list(
            viewer_address=viewer_address,
            creator_address=creator_address,
            status=status_filter,
        )
        return SessionListResponse(sessions=[session_list_item(view) for view in views], count=len(views))

    @app.get(
        "/sessions/{session_id}",
        response_model=SessionDetailResponse,
        description="Return a session and its cost as of now.",
    )
    def get_session(
        session_id: str,
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> SessionDetailResponse:
        try:
            view = deps.controller.get(session_id)
        except StreamflowError as exc:
            raise _http_error(exc) from exc
        return SessionDetailResponse(
            session=session_model(view.session),
            current_cost=cost_model(view.current_cost),
        )

    @app.get(
        "/sessions/{session_id}/cost",
        response_model=SessionCostResponse,
        description="Return billed seconds and amount as of now.",
    )
    def get_session_cost(
        session_id: str,
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> SessionCostResponse:
        try:
            cost = deps.controller.current_cost(session_id)
        except StreamflowError as exc:
            raise _http_error(exc) from exc
        return SessionCostResponse(session_id=session_id, seconds=cost.seconds, cost=float(cost.amount))

    @app.post(
        "/sessions/{session_id}/stop",
        response_model=StopSessionResponse,
        description="Freeze a session's duration and amount; repeated calls return the frozen record.",
    )
    def stop_session(
        session_id: str,
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> StopSessionResponse:
        try:
            session = deps.controller.stop(session_id)
        except StreamflowError as exc:
            raise _http_error(exc) from exc
        return StopSessionResponse(
            session_id=session.session_id,
            session=session_model(session),
            total_seconds=session.total_seconds,
            total_paid=float(session.total_paid),
            message="Session stopped successfully",
        )

    @app.post(
        "/sessions/{session_id}/settle",
        response_model=SettleSessionResponse,
        responses={402: {"description": "Payment required or payment verification failed."}},
        description="Issue a 402 payment challenge, or verify the X-PAYMENT artifact and settle.",
    )
    def settle_session(
        session_id: str,
        request: Request,
        x_payment: str | None = Header(default=None, alias="X-PAYMENT"),
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> Any:
        try:
            result = deps.controller.settle(
                session_id,
                x_payment,
                resource_url=request.url.path,
            )
        except PaymentRequiredError as exc:
            return JSONResponse(status_code=402, content=exc.challenge.to_payload())
        except StreamflowError as exc:
            raise _http_error(exc) from exc
        return settle_response(result)

    @app.get("/stats", response_model=StatsResponse, description="Aggregate session counts and revenue.")
    def get_stats(
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> StatsResponse:
        return stats_response(deps.controller.stats())

    @app.get(
        "/x402/config",
        response_model=X402ConfigResponse,
        description="Payment network settings and whether real verification is enabled.",
    )
    def get_x402_config(
        deps: SessionRouteDeps = Depends(get_dependencies),  # noqa: B008
    ) -> X402ConfigResponse:
        return X402ConfigResponse(
            network=deps.network,
            asset=deps.asset,
            is_production_mode=deps.production_mode,
            verify_recipient=deps.verify_recipient,
            max_timeout_seconds=deps.max_timeout_seconds,
            facilitator_url=deps.facilitator_url,
        )


def _http_error(exc: StreamflowError) -> HTTPException:
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail={"error": "Session not found", "code": exc.code})
    if isinstance(exc, VerificationFailure):
        logger.info(
            "settlement_rejected",
            extra={"data": {"code": exc.code, "retryable": exc.retryable, "reason": exc.message}},
        )
        return HTTPException(
            status_code=402,
            detail={
                "error": "Payment verification failed",
                "code": exc.code,
                "message": exc.message,
                "retryable": exc.retryable,
                "details": exc.details(),
            },
        )
    if isinstance(exc, (ValidationError, AlreadySettledError)):
        return HTTPException(
            status_code=400,
            detail={"error": exc.message, "code": exc.code} | exc.details(),
        )
    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=409,
            detail={"error": exc.message, "code": exc.code} | exc.details(),
        )
    logger.error("unmapped_error", extra={"data": {"code": exc.code, "reason": exc.message}})
    return HTTPException(status_code=500, detail={"error": exc.message, "code": exc.code})


async def _validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "error": "Validation failed",
                "code": ValidationError.code,
                "details": jsonable_encoder(errors),
            }
        },
    )


__all__ = ["SessionRouteDeps", "add_session_routes"]
