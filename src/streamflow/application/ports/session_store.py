"""Port describing durable session storage."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Protocol

from streamflow.domain.session import Session, SessionStatus

SessionMutation = Callable[[Session], Session]


class SessionStorePort(Protocol):
    """Single source of truth for session lifecycle state.

    Records are never deleted. ``update`` is a compare-and-swap on the stored
    status so concurrent controllers cannot both win the same transition.
    """

    def create(
        self,
        *,
        viewer_address: str,
        creator_address: str,
        rate_per_second: Decimal,
        started_at_ms: int,
    ) -> Session:
        """Persist a new active session.

        Raises ``DuplicateSessionError`` if the pair already has an active session.
        """

    def get(self, session_id: str) -> Session | None:
        """Return the session identified by ``session_id``."""

    def list(
        self,
        *,
        viewer_address: str | None = None,
        creator_address: str | None = None,
        status: SessionStatus | None = None,
    ) -> tuple[Session, ...]:
        """Return matching sessions, newest first."""

    def update(
        self,
        session_id: str,
        mutate: SessionMutation,
        *,
        expected_status: SessionStatus,
    ) -> Session | None:
        """Apply ``mutate`` if the stored status equals ``expected_status``.

        Returns ``None`` for unknown ids and raises ``StaleSessionError`` when
        the status no longer matches.
        """


__all__ = ["SessionMutation", "SessionStorePort"]
