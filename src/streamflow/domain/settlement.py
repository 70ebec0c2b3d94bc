"""Ledger receipts, settlement events and the 402 payment challenge."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

PAYMENT_SCHEME = "exact"
PAYMENT_MIME_TYPE = "application/json"


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """A raw event emitted by a committed transaction."""

    type: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LedgerReceipt:
    """Ledger view of a transaction: outcome plus emitted events."""

    reference: str
    success: bool
    committed: bool = True
    events: tuple[LedgerEvent, ...] = ()
    vm_status: str | None = None

    def find_event(self, event_type: str) -> LedgerEvent | None:
        return next((event for event in self.events if event.type == event_type), None)


@dataclass(frozen=True, slots=True)
class SettlementEvent:
    """Typed settlement event emitted by the transfer contract."""

    session_id: str
    recipient: str | None
    amount: int
    sender: str | None = None
    timestamp: int | None = None

    @classmethod
    def from_ledger_event(cls, event: LedgerEvent) -> SettlementEvent:
        """Parse event data; amounts arrive as decimal strings and may exceed 2**53."""
        data = event.data
        session_id = data.get("session_id")
        amount = data.get("amount")
        if session_id is None or amount is None:
            raise ValueError("settlement event missing session_id or amount")
        if isinstance(amount, bool) or isinstance(amount, float):
            raise ValueError("settlement event amount must be an integer")
        parsed_amount = int(str(amount), 10)
        timestamp = data.get("timestamp")
        return cls(
            session_id=str(session_id),
            recipient=_optional_str(data.get("recipient")),
            amount=parsed_amount,
            sender=_optional_str(data.get("sender")),
            timestamp=int(str(timestamp), 10) if timestamp is not None else None,
        )


@dataclass(frozen=True, slots=True)
class SettlementObligation:
    """What a payment must satisfy: session, amount in base units and recipient."""

    session_id: str
    ledger_session_id: int
    amount: int
    recipient: str

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("amount must be non-negative")


@dataclass(frozen=True, slots=True)
class VerifiedPayment:
    """Result of a successful verification."""

    tx_reference: str
    amount: int
    recipient: str | None
    session_id: str
    simulated: bool = False


@dataclass(frozen=True, slots=True)
class PaymentChallenge:
    """Body of a 402 response; rebuilt from the session and never persisted."""

    network: str
    max_amount_required: int
    resource: str
    description: str
    pay_to: str
    max_timeout_seconds: int
    asset: str
    session_id: str
    ledger_session_id: int
    total_seconds: int
    scheme: str = PAYMENT_SCHEME
    mime_type: str = PAYMENT_MIME_TYPE

    def to_payload(self) -> dict[str, Any]:
        return {
            "scheme": self.scheme,
            "network": self.network,
            "maxAmountRequired": str(self.max_amount_required),
            "resource": self.resource,
            "description": self.description,
            "mimeType": self.mime_type,
            "payTo": self.pay_to,
            "maxTimeoutSeconds": self.max_timeout_seconds,
            "asset": self.asset,
            "extra": {
                "sessionId": self.session_id,
                "ledgerSessionId": str(self.ledger_session_id),
                "totalSeconds": self.total_seconds,
            },
        }


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


__all__ = [
    "LedgerEvent",
    "LedgerReceipt",
    "PAYMENT_MIME_TYPE",
    "PAYMENT_SCHEME",
    "PaymentChallenge",
    "SettlementEvent",
    "SettlementObligation",
    "VerifiedPayment",
]
