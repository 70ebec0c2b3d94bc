"""Port describing a third-party x402 settlement facilitator."""

from __future__ import annotations

from typing import Protocol

from streamflow.application.payment_artifact import SignedTransactionEnvelope
from streamflow.domain.settlement import SettlementObligation


class SettlementFacilitatorPort(Protocol):
    """Submits a signed envelope on the service's behalf when direct submission fails."""

    def settle(self, envelope: SignedTransactionEnvelope, obligation: SettlementObligation) -> str:
        """Return the transaction reference the facilitator reports.

        The reference is unverified; callers must check it on the ledger.
        """


__all__ = ["SettlementFacilitatorPort"]
