from __future__ import annotations

import pytest

from streamflow.retry import RetryPolicy, backoff_ms, is_retryable_status


def test_backoff_doubles_until_capped() -> None:
    policy = RetryPolicy(attempts=5, initial_ms=250, max_ms=1000, jitter=0.0)

    assert [backoff_ms(attempt, policy) for attempt in range(5)] == [250, 500, 1000, 1000, 1000]


def test_backoff_jitter_stays_within_span() -> None:
    policy = RetryPolicy(attempts=3, initial_ms=1000, max_ms=1000, jitter=0.2)

    for _ in range(50):
        assert 800 <= backoff_ms(0, policy) <= 1200


@pytest.mark.parametrize(
    ("status_code", "expected"),
    [(200, False), (404, False), (400, False), (429, True), (500, True), (503, True)],
)
def test_retryable_statuses(status_code: int, expected: bool) -> None:
    assert is_retryable_status(status_code) is expected


def test_policy_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError, match="backoff bounds"):
        RetryPolicy(attempts=3, initial_ms=500, max_ms=100, jitter=0.0)
    with pytest.raises(ValueError, match="attempts"):
        RetryPolicy(attempts=0, initial_ms=100, max_ms=100, jitter=0.0)
