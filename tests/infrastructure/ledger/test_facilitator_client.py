from __future__ import annotations

import json

import httpx
import pytest

from streamflow.application.payment_artifact import SignedTransactionEnvelope
from streamflow.domain.settlement import SettlementObligation
from streamflow.errors import BlockchainError, TransactionFailedError
from streamflow.infrastructure.ledger.facilitator_client import HttpFacilitatorClient
from tests.fixtures.fakes import CREATOR, TX_HASH

HEADER = "eyJ4NDAyVmVyc2lvbiI6MX0="

ENVELOPE = SignedTransactionEnvelope(
    x402_version=1,
    scheme="exact",
    network="movement-testnet",
    transaction=b"raw",
    signature=b"sig",
    header=HEADER,
)

OBLIGATION = SettlementObligation(
    session_id="sf_current",
    ledger_session_id=2000,
    amount=12_000_000,
    recipient=CREATOR,
)


def make_client(handler) -> HttpFacilitatorClient:
    return HttpFacilitatorClient(
        base_url="https://facilitator.mock/",
        asset="0x1::aptos_coin::AptosCoin",
        network="movement-testnet",
        transport=httpx.MockTransport(handler),
    )


def test_settle_forwards_header_and_returns_reference() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "txHash": TX_HASH})

    reference = make_client(handler).settle(ENVELOPE, OBLIGATION)

    assert reference == TX_HASH
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/settle"
    assert json.loads(seen[0].content) == {
        "paymentHeader": HEADER,
        "sessionId": "2000",
        "expectedAmount": "12000000",
        "asset": "0x1::aptos_coin::AptosCoin",
        "network": "movement-testnet",
    }


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"success": False, "error": "insufficient balance"}),
        httpx.Response(200, json={"success": True}),
        httpx.Response(400, json={"success": True, "txHash": TX_HASH}),
        httpx.Response(200, text="ok"),
    ],
)
def test_declined_settlement_is_a_failed_transaction(response: httpx.Response) -> None:
    with pytest.raises(TransactionFailedError) as excinfo:
        make_client(lambda request: response).settle(ENVELOPE, OBLIGATION)

    assert excinfo.value.reference == "unsubmitted"
    assert excinfo.value.vm_status is not None
    assert excinfo.value.vm_status.startswith("facilitator:")


def test_unavailable_facilitator_is_retryable_and_called_once() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(BlockchainError) as excinfo:
        make_client(handler).settle(ENVELOPE, OBLIGATION)

    assert excinfo.value.retryable
    assert len(calls) == 1


def test_transport_error_is_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BlockchainError):
        make_client(handler).settle(ENVELOPE, OBLIGATION)


def test_envelope_without_original_header_is_not_forwarded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("facilitator must not be called")

    envelope = SignedTransactionEnvelope(
        x402_version=1,
        scheme="exact",
        network="movement-testnet",
        transaction=b"raw",
        signature=b"sig",
    )

    with pytest.raises(TransactionFailedError):
        make_client(handler).settle(envelope, OBLIGATION)
