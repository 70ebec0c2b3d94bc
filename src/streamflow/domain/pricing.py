"""Linear per-second pricing: pure functions over elapsed time and rate."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

BASE_UNITS_PER_TOKEN = 10**8
MILLISECONDS_PER_SECOND = 1000


@dataclass(frozen=True, slots=True)
class CostSnapshot:
    """Elapsed whole seconds and the amount owed for them."""

    seconds: int
    amount: Decimal

    def __post_init__(self) -> None:
        if self.seconds < 0:
            raise ValueError("seconds must be non-negative")
        if self.amount < 0:
            raise ValueError("amount must be non-negative")


def elapsed_seconds(start_ms: int, end_ms: int) -> int:
    """Whole seconds between two epoch-millisecond timestamps, floored and clamped at zero."""
    return max(0, (end_ms - start_ms) // MILLISECONDS_PER_SECOND)


class PricingEngine:
    """Converts elapsed time and a per-second rate into an owed amount.

    Seconds are truncated, never rounded, so ``amount == seconds * rate``
    holds exactly. Rates and amounts are ``Decimal`` and base units are
    arbitrary-precision ``int``.
    """

    def __init__(self, base_units_per_token: int = BASE_UNITS_PER_TOKEN) -> None:
        if base_units_per_token <= 0:
            raise ValueError("base_units_per_token must be positive")
        self._base_units = base_units_per_token

    @property
    def base_units_per_token(self) -> int:
        return self._base_units

    def cost(self, start_ms: int, now_ms: int, rate: Decimal) -> CostSnapshot:
        """Return the live cost of a running session."""
        seconds = elapsed_seconds(start_ms, now_ms)
        return CostSnapshot(seconds=seconds, amount=seconds * rate)

    def final_cost(self, start_ms: int, end_ms: int, rate: Decimal) -> CostSnapshot:
        """Return the authoritative cost frozen when a session stops."""
        return self.cost(start_ms, end_ms, rate)

    def to_base_units(self, amount: Decimal) -> int:
        """Convert a token amount to the ledger's smallest unit (floor)."""
        scaled = (amount * self._base_units).to_integral_value(rounding=ROUND_FLOOR)
        return int(scaled)

    def from_base_units(self, units: int) -> Decimal:
        return Decimal(units) / self._base_units


__all__ = [
    "BASE_UNITS_PER_TOKEN",
    "CostSnapshot",
    "PricingEngine",
    "elapsed_seconds",
]
