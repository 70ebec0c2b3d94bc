"""Backoff policy for outbound ledger requests."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

TOO_MANY_REQUESTS = 429


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int
    initial_ms: int
    max_ms: int
    jitter: float  # fraction of backoff to add/subtract

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("retry attempts must be at least 1")
        if self.initial_ms < 0 or self.max_ms < self.initial_ms:
            raise ValueError("retry backoff bounds must satisfy 0 <= initial_ms <= max_ms")
        if not 0 <= self.jitter <= 1:
            raise ValueError("retry jitter must be within [0, 1]")


def backoff_ms(attempt: int, policy: RetryPolicy) -> int:
    """Delay before retrying after the zero-based ``attempt`` failed."""
    capped = min(policy.initial_ms * math.pow(2, attempt), policy.max_ms)
    spread = capped * policy.jitter
    return int(max(0, capped + random.uniform(-spread, spread)))  # noqa: S311 - non-crypto backoff jitter


def is_retryable_status(status_code: int) -> bool:
    """Throttling and server-side failures are worth another attempt."""
    return status_code == TOO_MANY_REQUESTS or status_code >= 500


__all__ = ["RetryPolicy", "backoff_ms", "is_retryable_status"]
