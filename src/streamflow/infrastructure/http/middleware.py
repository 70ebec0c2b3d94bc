from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

from fastapi import Request

logger = logging.getLogger("streamflow.http")

REQUEST_ID_HEADER = "x-request-id"
PAYMENT_HEADER = "x-payment"


async def request_logging_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Any]],
) -> Any:
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    query_params = list(request.query_params.multi_items())
    base = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "query_params": query_params,
    }

    body_bytes = await request.body()
    logger.info(
        "request_received",
        extra={
            "data": base
            | {
                "body": _truncate_body(body_bytes),
                "has_payment": PAYMENT_HEADER in request.headers,
            }
        },
    )

    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed", extra={"data": base})
        raise

    duration = time.perf_counter() - start
    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "request_completed",
        extra={
            "data": base
            | {
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
            }
        },
    )
    return response


def _truncate_body(body: bytes, limit: int = 1024) -> str:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return f"<binary data: {len(body)} bytes>"
    if len(text) <= limit:
        return text
    return text[:limit] + "... (truncated)"


__all__ = ["REQUEST_ID_HEADER", "request_logging_middleware"]
