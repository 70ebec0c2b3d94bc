"""Production settlement verification against the ledger."""

from __future__ import annotations

import logging
from collections.abc import Callable

from opentelemetry import trace
from opentelemetry.trace import SpanKind

from streamflow.application.payment_artifact import (
    PaymentArtifact,
    SignedTransactionEnvelope,
    SimulatedArtifact,
    TransactionReference,
)
from streamflow.application.ports.facilitator import SettlementFacilitatorPort
from streamflow.application.ports.ledger import LedgerClientPort
from streamflow.application.ports.verifier import SettlementVerifierPort
from streamflow.domain.addresses import same_address
from streamflow.domain.settlement import (
    LedgerReceipt,
    SettlementEvent,
    SettlementObligation,
    VerifiedPayment,
)
from streamflow.errors import (
    AmountMismatchError,
    BlockchainError,
    EventNotFoundError,
    RecipientMismatchError,
    SessionIdMismatchError,
    TransactionFailedError,
    TransactionNotFoundError,
    ValidationError,
    VerificationFailure,
)

logger = logging.getLogger("streamflow.settlement")

RecipientCheck = Callable[[SettlementEvent, SettlementObligation], None]


def settlement_event_type(contract_address: str) -> str:
    return f"{contract_address}::settlement::SettlementEvent"


def require_recipient_match(event: SettlementEvent, obligation: SettlementObligation) -> None:
    """Reject events whose recipient is not the obligation's creator."""
    if event.recipient is None or not same_address(event.recipient, obligation.recipient):
        raise RecipientMismatchError(obligation.recipient, event.recipient)


class LedgerSettlementVerifier(SettlementVerifierPort):
    """Checks a committed transaction against a session obligation.

    The checks run in a fixed order: receipt present, transaction succeeded,
    settlement event present, session id equal, amount sufficient, then the
    optional recipient check. The first failure wins. When direct submission
    of an envelope fails and a facilitator is configured, the envelope is
    handed to it and the reference it reports is checked the same way.
    """

    simulated = False

    def __init__(
        self,
        ledger: LedgerClientPort,
        *,
        event_type: str,
        finality_timeout_seconds: float = 30.0,
        recipient_check: RecipientCheck | None = None,
        facilitator: SettlementFacilitatorPort | None = None,
    ) -> None:
        self._ledger = ledger
        self._facilitator = facilitator
        self._event_type = event_type
        self._finality_timeout_seconds = finality_timeout_seconds
        self._recipient_check = recipient_check

    @property
    def event_type(self) -> str:
        return self._event_type

    def verify(self, artifact: PaymentArtifact, obligation: SettlementObligation) -> VerifiedPayment:
        tracer = trace.get_tracer("streamflow.settlement")
        with tracer.start_as_current_span(
            "settlement.verify",
            kind=SpanKind.CLIENT,
            attributes={
                "settlement.session_id": obligation.session_id,
                "settlement.ledger_session_id": obligation.ledger_session_id,
                "settlement.artifact": type(artifact).__name__,
            },
        ) as span:
            try:
                reference = self._resolve_reference(artifact, obligation)
                span.set_attribute("settlement.tx_reference", reference)
                payment = self._verify_reference(reference, obligation)
            except VerificationFailure as exc:
                span.set_attribute("settlement.failure", exc.code)
                logger.warning(
                    "settlement_verification_failed",
                    extra={
                        "data": {
                            "session_id": obligation.session_id,
                            "code": exc.code,
                            "retryable": exc.retryable,
                            "reason": exc.message,
                        }
                    },
                )
                raise
        logger.info(
            "settlement_verified",
            extra={
                "data": {
                    "session_id": obligation.session_id,
                    "tx_reference": payment.tx_reference,
                    "amount": str(payment.amount),
                }
            },
        )
        return payment

    def _resolve_reference(self, artifact: PaymentArtifact, obligation: SettlementObligation) -> str:
        if isinstance(artifact, SimulatedArtifact):
            raise ValidationError("simulated payments are not accepted in production mode")
        if isinstance(artifact, SignedTransactionEnvelope):
            return self._submit(artifact, obligation)
        if isinstance(artifact, TransactionReference):
            return artifact.value
        raise ValidationError(f"unsupported payment artifact: {type(artifact).__name__}")

    def _submit(self, envelope: SignedTransactionEnvelope, obligation: SettlementObligation) -> str:
        facilitator = self._facilitator
        try:
            return self._ledger.submit(envelope.signed_bytes)
        except VerificationFailure as exc:
            if facilitator is None:
                raise
            logger.warning(
                "ledger_submit_failed_trying_facilitator",
                extra={
                    "data": {
                        "session_id": obligation.session_id,
                        "code": exc.code,
                        "reason": exc.message,
                    }
                },
            )
            # the reported reference goes through the same ledger checks as any other
            return facilitator.settle(envelope, obligation)

    def _verify_reference(self, reference: str, obligation: SettlementObligation) -> VerifiedPayment:
        finalized = self._ledger.wait_for_finality(reference, self._finality_timeout_seconds)
        if finalized is None:
            raise TransactionNotFoundError(reference)
        receipt = self._ledger.fetch_receipt(reference) or finalized
        _require_committed(receipt)
        if not receipt.success:
            raise TransactionFailedError(reference, receipt.vm_status)

        raw_event = receipt.find_event(self._event_type)
        if raw_event is None:
            raise EventNotFoundError(reference, self._event_type)
        try:
            event = SettlementEvent.from_ledger_event(raw_event)
        except ValueError as exc:
            raise EventNotFoundError(reference, self._event_type) from exc

        expected_session_id = str(obligation.ledger_session_id)
        if event.session_id != expected_session_id:
            raise SessionIdMismatchError(expected_session_id, event.session_id)
        if event.amount < obligation.amount:
            raise AmountMismatchError(obligation.amount, event.amount)
        if self._recipient_check is not None:
            self._recipient_check(event, obligation)

        return VerifiedPayment(
            tx_reference=receipt.reference,
            amount=event.amount,
            recipient=event.recipient,
            session_id=obligation.session_id,
        )


def _require_committed(receipt: LedgerReceipt) -> None:
    if not receipt.committed:
        raise BlockchainError(f"transaction {receipt.reference} is still pending")


__all__ = [
    "LedgerSettlementVerifier",
    "RecipientCheck",
    "require_recipient_match",
    "settlement_event_type",
]
