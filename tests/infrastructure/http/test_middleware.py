from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamflow.infrastructure.http.middleware import request_logging_middleware


def test_request_logging_middleware_logs_request_and_completion(caplog) -> None:
    app = FastAPI()
    app.middleware("http")(request_logging_middleware)

    @app.post("/sessions/start")
    async def start() -> dict[str, bool]:
        return {"ok": True}

    target_logger = logging.getLogger("streamflow.http")
    original_propagate = target_logger.propagate
    target_logger.propagate = False
    target_logger.addHandler(caplog.handler)
    target_logger.setLevel(logging.INFO)
    caplog.set_level(logging.INFO)

    body = "y" * 2000
    try:
        client = TestClient(app)
        response = client.post(
            "/sessions/start",
            params=[("q", "1"), ("q", "2")],
            content=body,
            headers={"X-Request-ID": "req-42", "X-PAYMENT": "demo_1"},
        )
    finally:
        target_logger.removeHandler(caplog.handler)
        target_logger.propagate = original_propagate

    assert response.status_code == 200
    assert response.headers["x-request-id"] == "req-42"

    records = [record for record in caplog.records if record.name == "streamflow.http"]
    received = next(record for record in records if record.msg == "request_received")
    completed = next(record for record in records if record.msg == "request_completed")

    assert received.data["request_id"] == "req-42"
    assert received.data["method"] == "POST"
    assert received.data["path"] == "/sessions/start"
    assert received.data["query_params"] == [("q", "1"), ("q", "2")]
    assert received.data["has_payment"] is True
    assert received.data["body"].startswith("y" * 1024)
    assert received.data["body"].endswith("... (truncated)")

    assert completed.data["status_code"] == 200
    assert completed.data["duration_ms"] >= 0
