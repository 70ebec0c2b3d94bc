"""Demo-mode verifier that never contacts a ledger."""

from __future__ import annotations

import logging
from uuid import uuid4

from streamflow.application.payment_artifact import (
    SIMULATED_ARTIFACT_PREFIX,
    PaymentArtifact,
    SimulatedArtifact,
)
from streamflow.application.ports.verifier import SettlementVerifierPort
from streamflow.domain.settlement import SettlementObligation, VerifiedPayment
from streamflow.errors import TransactionNotFoundError

logger = logging.getLogger("streamflow.settlement")


class SimulatedSettlementVerifier(SettlementVerifierPort):
    """Accepts ``demo_`` artifacts and reports the obligation as paid."""

    simulated = True

    def verify(self, artifact: PaymentArtifact, obligation: SettlementObligation) -> VerifiedPayment:
        if not isinstance(artifact, SimulatedArtifact):
            reference = getattr(artifact, "value", type(artifact).__name__)
            raise TransactionNotFoundError(
                reference,
                "simulated mode only accepts demo payments",
            )
        tx_reference = f"{SIMULATED_ARTIFACT_PREFIX}{uuid4().hex}"
        logger.info(
            "simulated_settlement_accepted",
            extra={
                "data": {
                    "session_id": obligation.session_id,
                    "artifact": artifact.value,
                    "tx_reference": tx_reference,
                    "amount": str(obligation.amount),
                }
            },
        )
        return VerifiedPayment(
            tx_reference=tx_reference,
            amount=obligation.amount,
            recipient=obligation.recipient,
            session_id=obligation.session_id,
            simulated=True,
        )


__all__ = ["SimulatedSettlementVerifier"]
