"""Port describing the blockchain client used for settlement."""

from __future__ import annotations

from typing import Protocol

from streamflow.domain.settlement import LedgerReceipt


class LedgerClientPort(Protocol):
    """Opaque ledger service: submit, wait for finality, read receipts."""

    def submit(self, signed_transaction: bytes) -> str:
        """Submit signed transaction bytes and return the transaction reference."""

    def wait_for_finality(self, reference: str, timeout_seconds: float) -> LedgerReceipt | None:
        """Block until the transaction is committed.

        Returns ``None`` when the ledger never saw the reference and raises
        ``BlockchainError`` when the ledger is unreachable or the deadline passes.
        """

    def fetch_receipt(self, reference: str) -> LedgerReceipt | None:
        """Return the receipt for ``reference`` if the ledger knows it."""


__all__ = ["LedgerClientPort"]
