"""Port describing settlement verification backends."""

from __future__ import annotations

from typing import Protocol

from streamflow.application.payment_artifact import PaymentArtifact
from streamflow.domain.settlement import SettlementObligation, VerifiedPayment


class SettlementVerifierPort(Protocol):
    """Decides whether a payment artifact satisfies an obligation.

    Implementations never mutate session state.
    """

    simulated: bool

    def verify(self, artifact: PaymentArtifact, obligation: SettlementObligation) -> VerifiedPayment:
        """Return the verified payment or raise a ``VerificationFailure`` subtype."""


__all__ = ["SettlementVerifierPort"]
