"""Error taxonomy shared by the session controller, verifiers and HTTP layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from streamflow.domain.session import Session
    from streamflow.domain.settlement import PaymentChallenge


class StreamflowError(Exception):
    """Base class for settlement service failures."""

    code = "streamflow_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def details(self) -> dict[str, Any]:
        """Return extra fields surfaced to API callers."""
        return {}


class ValidationError(StreamflowError, ValueError):
    """Raised for malformed or missing client input."""

    code = "invalid_input"


class SessionNotFoundError(StreamflowError, LookupError):
    """Raised when a session identifier is unknown."""

    code = "session_not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"session {session_id} not found")
        self.session_id = session_id


class ConflictError(StreamflowError):
    """Raised when a session is in the wrong lifecycle state for an operation."""

    code = "conflict"


class DuplicateSessionError(ConflictError):
    """Raised when an active session already exists for a viewer/creator pair."""

    code = "duplicate_session"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"active session {session_id} already exists for this viewer and creator")
        self.session_id = session_id

    def details(self) -> dict[str, Any]:
        return {"sessionId": self.session_id}


class AlreadySettledError(ConflictError):
    """Raised when settlement is requested for a settled session."""

    code = "already_settled"

    def __init__(self, session_id: str, tx_reference: str | None) -> None:
        super().__init__(f"session {session_id} already settled")
        self.session_id = session_id
        self.tx_reference = tx_reference

    def details(self) -> dict[str, Any]:
        return {"sessionId": self.session_id, "txHash": self.tx_reference}


class StaleSessionError(ConflictError):
    """Raised when a status-guarded update loses to a concurrent transition."""

    code = "stale_session"

    def __init__(self, current: Session) -> None:
        super().__init__(
            f"session {current.session_id} changed concurrently (now {current.status.value})"
        )
        self.current = current


class PaymentRequiredError(StreamflowError):
    """First leg of settlement: the caller must pay the attached challenge."""

    code = "payment_required"

    def __init__(self, challenge: PaymentChallenge) -> None:
        super().__init__(f"payment required for {challenge.resource}")
        self.challenge = challenge


class VerificationFailure(StreamflowError):
    """Raised when a payment artifact does not satisfy a session obligation."""

    code = "verification_failed"
    retryable = False


class TransactionNotFoundError(VerificationFailure):
    code = "transaction_not_found"

    def __init__(self, reference: str, message: str | None = None) -> None:
        super().__init__(message or f"transaction {reference} not found")
        self.reference = reference

    def details(self) -> dict[str, Any]:
        return {"txHash": self.reference}


class TransactionFailedError(VerificationFailure):
    code = "transaction_failed"

    def __init__(self, reference: str, vm_status: str | None = None) -> None:
        suffix = f" ({vm_status})" if vm_status else ""
        super().__init__(f"transaction {reference} did not succeed{suffix}")
        self.reference = reference
        self.vm_status = vm_status

    def details(self) -> dict[str, Any]:
        return {"txHash": self.reference, "vmStatus": self.vm_status}


class EventNotFoundError(VerificationFailure):
    code = "event_not_found"

    def __init__(self, reference: str, event_type: str) -> None:
        super().__init__(f"expected settlement event not found in {reference}; looked for {event_type}")
        self.reference = reference
        self.event_type = event_type

    def details(self) -> dict[str, Any]:
        return {"txHash": self.reference, "eventType": self.event_type}


class SessionIdMismatchError(VerificationFailure):
    """Replay rejection: the receipt settles a different session."""

    code = "session_id_mismatch"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"session id mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual

    def details(self) -> dict[str, Any]:
        return {"expected": self.expected, "actual": self.actual}


class AmountMismatchError(VerificationFailure):
    """Underpayment: the transferred amount is below the obligation."""

    code = "amount_mismatch"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"amount mismatch: expected at least {expected}, got {actual}")
        self.expected = expected
        self.actual = actual

    def details(self) -> dict[str, Any]:
        return {"expected": str(self.expected), "actual": str(self.actual)}


class RecipientMismatchError(VerificationFailure):
    code = "recipient_mismatch"

    def __init__(self, expected: str, actual: str | None) -> None:
        super().__init__(f"recipient mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual

    def details(self) -> dict[str, Any]:
        return {"expected": self.expected, "actual": self.actual}


class BlockchainError(VerificationFailure):
    """Ledger unreachable or finality not reached; safe to retry with the same artifact."""

    code = "blockchain_unavailable"
    retryable = True


__all__ = [
    "AlreadySettledError",
    "AmountMismatchError",
    "BlockchainError",
    "ConflictError",
    "DuplicateSessionError",
    "EventNotFoundError",
    "PaymentRequiredError",
    "RecipientMismatchError",
    "SessionIdMismatchError",
    "SessionNotFoundError",
    "StaleSessionError",
    "StreamflowError",
    "TransactionFailedError",
    "TransactionNotFoundError",
    "ValidationError",
    "VerificationFailure",
]
