"""In-memory session store implementation."""

from __future__ import annotations

import itertools
from decimal import Decimal
from threading import Lock
from uuid import uuid4

from streamflow.application.ports.session_store import SessionMutation, SessionStorePort
from streamflow.domain.session import Session, SessionStatus
from streamflow.errors import DuplicateSessionError, StaleSessionError


def new_session_id() -> str:
    return f"sf_{uuid4().hex}"


class InMemorySessionStore(SessionStorePort):
    """Stores session snapshots in memory for a single process."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._ledger_ids = itertools.count(1)
        self._lock = Lock()

    def create(
        self,
        *,
        viewer_address: str,
        creator_address: str,
        rate_per_second: Decimal,
        started_at_ms: int,
    ) -> Session:
        with self._lock:
            for existing in self._sessions.values():
                if (
                    existing.is_active
                    and existing.viewer_address == viewer_address
                    and existing.creator_address == creator_address
                ):
                    raise DuplicateSessionError(existing.session_id)
            session = Session(
                session_id=new_session_id(),
                ledger_session_id=next(self._ledger_ids),
                viewer_address=viewer_address,
                creator_address=creator_address,
                rate_per_second=rate_per_second,
                started_at_ms=started_at_ms,
            )
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
        return session

    def list(
        self,
        *,
        viewer_address: str | None = None,
        creator_address: str | None = None,
        status: SessionStatus | None = None,
    ) -> tuple[Session, ...]:
        with self._lock:
            sessions = tuple(self._sessions.values())
        matches = [
            session
            for session in sessions
            if (viewer_address is None or session.viewer_address == viewer_address)
            and (creator_address is None or session.creator_address == creator_address)
            and (status is None or session.status is status)
        ]
        matches.sort(key=lambda session: (session.started_at_ms, session.ledger_session_id), reverse=True)
        return tuple(matches)

    def update(
        self,
        session_id: str,
        mutate: SessionMutation,
        *,
        expected_status: SessionStatus,
    ) -> Session | None:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            if current.status is not expected_status:
                raise StaleSessionError(current)
            updated = mutate(current)
            self._sessions[session_id] = updated
        return updated


__all__ = ["InMemorySessionStore", "new_session_id"]
