"""HTTPX client for an x402 settlement facilitator."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from opentelemetry import trace
from opentelemetry.trace import SpanKind

from streamflow.application.payment_artifact import SignedTransactionEnvelope
from streamflow.application.ports.facilitator import SettlementFacilitatorPort
from streamflow.domain.settlement import SettlementObligation
from streamflow.errors import BlockchainError, TransactionFailedError
from streamflow.infrastructure.ledger.http_client import UNSUBMITTED_REFERENCE
from streamflow.retry import is_retryable_status

logger = logging.getLogger("streamflow.ledger")


class HttpFacilitatorClient(SettlementFacilitatorPort):
    """POSTs the original payment header to ``{base_url}/settle``.

    A single attempt is made: settlement is not idempotent on the facilitator
    side, so a failed call is reported as retryable and left to the client.
    """

    def __init__(
        self,
        *,
        base_url: str,
        asset: str,
        network: str,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("facilitator base_url must not be empty")
        self._base_url = base_url.rstrip("/")
        self._asset = asset
        self._network = network
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    def settle(self, envelope: SignedTransactionEnvelope, obligation: SettlementObligation) -> str:
        if not envelope.header:
            raise TransactionFailedError(UNSUBMITTED_REFERENCE, vm_status="no payment header to forward")
        body = {
            "paymentHeader": envelope.header,
            "sessionId": str(obligation.ledger_session_id),
            "expectedAmount": str(obligation.amount),
            "asset": self._asset,
            "network": self._network,
        }
        tracer = trace.get_tracer("streamflow.ledger")
        with tracer.start_as_current_span(
            "facilitator.settle",
            kind=SpanKind.CLIENT,
            attributes={
                "facilitator.url": self._base_url,
                "settlement.ledger_session_id": obligation.ledger_session_id,
            },
        ) as span:
            try:
                with httpx.Client(
                    base_url=self._base_url,
                    timeout=self._timeout_seconds,
                    transport=self._transport,
                ) as client:
                    response = client.post("/settle", json=body)
            except httpx.TransportError as exc:
                logger.warning(
                    "facilitator_unreachable",
                    extra={"data": {"url": self._base_url, "reason": repr(exc)}},
                )
                raise BlockchainError(f"facilitator unreachable: {exc!r}") from exc

            span.set_attribute("http.status_code", response.status_code)
            if is_retryable_status(response.status_code):
                raise BlockchainError(f"facilitator returned {response.status_code}")
            payload = _json_object(response)
            reference = payload.get("txHash")
            accepted = response.status_code < 400 and bool(payload.get("success"))
            if not accepted or not isinstance(reference, str) or not reference:
                reason = str(
                    payload.get("error") or payload.get("message") or f"status {response.status_code}"
                )
                logger.warning(
                    "facilitator_declined",
                    extra={"data": {"status_code": response.status_code, "reason": reason}},
                )
                raise TransactionFailedError(UNSUBMITTED_REFERENCE, vm_status=f"facilitator: {reason}")
            span.set_attribute("ledger.tx_reference", reference)

        logger.info(
            "facilitator_settled",
            extra={"data": {"tx_reference": reference, "ledger_session_id": obligation.ledger_session_id}},
        )
        return reference


def _json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


__all__ = ["HttpFacilitatorClient"]
