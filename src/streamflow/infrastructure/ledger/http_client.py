"""HTTPX client for an Aptos-style fullnode REST API."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx
from opentelemetry import trace
from opentelemetry.trace import SpanKind

from streamflow.application.ports.ledger import LedgerClientPort
from streamflow.domain.settlement import LedgerEvent, LedgerReceipt
from streamflow.errors import BlockchainError, TransactionFailedError
from streamflow.retry import RetryPolicy, backoff_ms, is_retryable_status

logger = logging.getLogger("streamflow.ledger")

BCS_SIGNED_TRANSACTION = "application/x.aptos.signed_transaction+bcs"
PENDING_TRANSACTION = "pending_transaction"
UNSUBMITTED_REFERENCE = "unsubmitted"

DEFAULT_RETRY_POLICY = RetryPolicy(attempts=4, initial_ms=250, max_ms=4000, jitter=0.2)


class HttpLedgerClient(LedgerClientPort):
    """Implementation of LedgerClientPort backed by HTTPX.

    Transport errors, 429 and 5xx responses are retried with exponential
    backoff. Anything still failing afterwards surfaces as ``BlockchainError``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 10.0,
        retry_policy: RetryPolicy | None = None,
        poll_interval_seconds: float = 1.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if not base_url:
            raise ValueError("ledger base_url must not be empty")
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._retry_policy = retry_policy or DEFAULT_RETRY_POLICY
        self._poll_interval_seconds = poll_interval_seconds
        self._transport = transport
        self._sleep = sleep
        self._monotonic = monotonic

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )

    def submit(self, signed_transaction: bytes) -> str:
        tracer = trace.get_tracer("streamflow.ledger")
        with tracer.start_as_current_span(
            "ledger.submit",
            kind=SpanKind.CLIENT,
            attributes={"ledger.payload_bytes": len(signed_transaction)},
        ) as span:
            response = self._request(
                "POST",
                "/transactions",
                content=signed_transaction,
                headers={"Content-Type": BCS_SIGNED_TRANSACTION, "Accept": "application/json"},
            )
            if response.status_code >= 400:
                message = _error_message(response)
                logger.warning(
                    "ledger_submit_rejected",
                    extra={"data": {"status_code": response.status_code, "message": message}},
                )
                raise TransactionFailedError(UNSUBMITTED_REFERENCE, vm_status=message)
            reference = _json_object(response).get("hash")
            if not isinstance(reference, str) or not reference:
                raise BlockchainError("ledger accepted the transaction but returned no hash")
            span.set_attribute("ledger.tx_reference", reference)
        logger.info("ledger_transaction_submitted", extra={"data": {"tx_reference": reference}})
        return reference

    def fetch_receipt(self, reference: str) -> LedgerReceipt | None:
        response = self._request(
            "GET",
            f"/transactions/by_hash/{reference}",
            headers={"Accept": "application/json"},
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            raise BlockchainError(
                f"ledger returned {response.status_code} for transaction {reference}"
            )
        return parse_receipt(reference, _json_object(response))

    def wait_for_finality(self, reference: str, timeout_seconds: float) -> LedgerReceipt | None:
        tracer = trace.get_tracer("streamflow.ledger")
        with tracer.start_as_current_span(
            "ledger.wait_for_finality",
            kind=SpanKind.CLIENT,
            attributes={"ledger.tx_reference": reference, "ledger.timeout_seconds": timeout_seconds},
        ) as span:
            deadline = self._monotonic() + timeout_seconds
            polls = 0
            while True:
                polls += 1
                receipt = self.fetch_receipt(reference)
                if receipt is not None and receipt.committed:
                    span.set_attributes({"ledger.polls": polls, "ledger.success": receipt.success})
                    return receipt
                remaining = deadline - self._monotonic()
                if remaining <= 0:
                    break
                self._sleep(min(self._poll_interval_seconds, remaining))

            span.set_attribute("ledger.polls", polls)
            if receipt is None:
                logger.info(
                    "ledger_transaction_unknown",
                    extra={"data": {"tx_reference": reference, "timeout_seconds": timeout_seconds}},
                )
                return None
            raise BlockchainError(
                f"transaction {reference} not committed within {timeout_seconds}s"
            )

    # ------------------------------------------------------------------
    # internal

    def _request(
        self,
        method: str,
        path: str,
        *,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        last_error = "no attempts made"
        for attempt in range(self._retry_policy.attempts):
            try:
                with self._client() as client:
                    response = client.request(method, path, content=content, headers=headers)
            except httpx.TransportError as exc:
                last_error = repr(exc)
            else:
                if not is_retryable_status(response.status_code):
                    return response
                last_error = f"status {response.status_code}"

            if attempt + 1 < self._retry_policy.attempts:
                delay_ms = backoff_ms(attempt, self._retry_policy)
                logger.debug(
                    "ledger_request_retry",
                    extra={
                        "data": {
                            "method": method,
                            "path": path,
                            "attempt": attempt + 1,
                            "reason": last_error,
                            "delay_ms": delay_ms,
                        }
                    },
                )
                self._sleep(delay_ms / 1000)

        logger.warning(
            "ledger_request_failed",
            extra={
                "data": {
                    "method": method,
                    "path": path,
                    "attempts": self._retry_policy.attempts,
                    "reason": last_error,
                }
            },
        )
        raise BlockchainError(f"ledger {method} {path} failed: {last_error}")


def parse_receipt(reference: str, payload: Mapping[str, Any]) -> LedgerReceipt:
    """Build a receipt from a fullnode transaction document."""
    committed = payload.get("type") != PENDING_TRANSACTION
    raw_events = payload.get("events") or ()
    events = tuple(
        LedgerEvent(type=str(event.get("type", "")), data=dict(event.get("data") or {}))
        for event in raw_events
        if isinstance(event, Mapping)
    )
    vm_status = payload.get("vm_status")
    return LedgerReceipt(
        reference=str(payload.get("hash") or reference),
        success=bool(payload.get("success", False)) if committed else False,
        committed=committed,
        events=events,
        vm_status=str(vm_status) if vm_status is not None else None,
    )


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise BlockchainError("ledger returned a non-JSON response") from exc
    if not isinstance(payload, dict):
        raise BlockchainError("ledger returned an unexpected payload")
    return payload


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text[:200]


__all__ = ["HttpLedgerClient", "parse_receipt"]
