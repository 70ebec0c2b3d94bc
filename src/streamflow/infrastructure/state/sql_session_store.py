"""SQLAlchemy-backed session store shared by multiple controller processes."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import BigInteger, Index, Integer, String, Text, create_engine, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from streamflow.application.ports.session_store import SessionMutation, SessionStorePort
from streamflow.domain.session import Session, SessionStatus
from streamflow.errors import DuplicateSessionError, StaleSessionError
from streamflow.infrastructure.state.session_store import new_session_id

logger = logging.getLogger("streamflow.store")

_ACTIVE_ONLY = text("status = 'active'")


class Base(DeclarativeBase):
    pass


class SessionRow(Base):
    """Durable session record; rows are never deleted."""

    __tablename__ = "sessions"
    __table_args__ = (
        # At most one active session per viewer/creator pair.
        Index(
            "uq_sessions_active_pair",
            "viewer_address",
            "creator_address",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    # Doubles as the ledger session id carried by on-chain settlement events.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    viewer_address: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    creator_address: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # Decimal strings; SQLite has no exact numeric type.
    rate_per_second: Mapped[str] = mapped_column(Text, nullable=False)
    total_paid: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    started_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ended_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    total_seconds: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=SessionStatus.ACTIVE.value)
    tx_reference: Mapped[str | None] = mapped_column(Text, nullable=True)
    settled_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)


def create_session_engine(database_url: str) -> Engine:
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


class SqlSessionStore(SessionStorePort):
    """Relational store using status-guarded ``UPDATE`` statements as compare-and-swap."""

    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(engine)

    @classmethod
    def from_url(cls, database_url: str) -> SqlSessionStore:
        return cls(create_session_engine(database_url))

    def create(
        self,
        *,
        viewer_address: str,
        creator_address: str,
        rate_per_second: Decimal,
        started_at_ms: int,
    ) -> Session:
        row = SessionRow(
            session_id=new_session_id(),
            viewer_address=viewer_address,
            creator_address=creator_address,
            rate_per_second=str(rate_per_second),
            total_paid="0",
            started_at_ms=started_at_ms,
            total_seconds=0,
            status=SessionStatus.ACTIVE.value,
        )
        with self._sessions() as db:
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                existing = db.scalars(
                    select(SessionRow).where(
                        SessionRow.viewer_address == viewer_address,
                        SessionRow.creator_address == creator_address,
                        SessionRow.status == SessionStatus.ACTIVE.value,
                    )
                ).first()
                if existing is None:
                    raise
                raise DuplicateSessionError(existing.session_id) from exc
            session = _to_domain(row)
        logger.debug(
            "session_row_created",
            extra={"data": {"session_id": session.session_id, "ledger_session_id": session.ledger_session_id}},
        )
        return session

    def get(self, session_id: str) -> Session | None:
        with self._sessions() as db:
            row = db.scalars(select(SessionRow).where(SessionRow.session_id == session_id)).first()
            return _to_domain(row) if row is not None else None

    def list(
        self,
        *,
        viewer_address: str | None = None,
        creator_address: str | None = None,
        status: SessionStatus | None = None,
    ) -> tuple[Session, ...]:
        query = select(SessionRow)
        if viewer_address is not None:
            query = query.where(SessionRow.viewer_address == viewer_address)
        if creator_address is not None:
            query = query.where(SessionRow.creator_address == creator_address)
        if status is not None:
            query = query.where(SessionRow.status == status.value)
        query = query.order_by(SessionRow.started_at_ms.desc(), SessionRow.id.desc())
        with self._sessions() as db:
            return tuple(_to_domain(row) for row in db.scalars(query))

    def update(
        self,
        session_id: str,
        mutate: SessionMutation,
        *,
        expected_status: SessionStatus,
    ) -> Session | None:
        with self._sessions() as db:
            row = db.scalars(select(SessionRow).where(SessionRow.session_id == session_id)).first()
            if row is None:
                return None
            current = _to_domain(row)
            if current.status is not expected_status:
                raise StaleSessionError(current)
            updated = mutate(current)
            result = db.execute(
                update(SessionRow)
                .where(
                    SessionRow.session_id == session_id,
                    SessionRow.status == expected_status.value,
                )
                .values(**_mutable_columns(updated))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                latest = self.get(session_id)
                if latest is None:
                    return None
                logger.info(
                    "session_update_conflict",
                    extra={
                        "data": {
                            "session_id": session_id,
                            "expected_status": expected_status.value,
                            "actual_status": latest.status.value,
                        }
                    },
                )
                raise StaleSessionError(latest)
            db.commit()
        return updated


def _to_domain(row: SessionRow) -> Session:
    return Session(
        session_id=row.session_id,
        ledger_session_id=row.id,
        viewer_address=row.viewer_address,
        creator_address=row.creator_address,
        rate_per_second=Decimal(row.rate_per_second),
        started_at_ms=row.started_at_ms,
        ended_at_ms=row.ended_at_ms,
        total_seconds=row.total_seconds,
        total_paid=Decimal(row.total_paid),
        status=SessionStatus(row.status),
        tx_reference=row.tx_reference,
        settled_at_ms=row.settled_at_ms,
    )


def _mutable_columns(session: Session) -> dict[str, Any]:
    return {
        "ended_at_ms": session.ended_at_ms,
        "total_seconds": session.total_seconds,
        "total_paid": str(session.total_paid),
        "status": session.status.value,
        "tx_reference": session.tx_reference,
        "settled_at_ms": session.settled_at_ms,
    }


__all__ = ["Base", "SessionRow", "SqlSessionStore", "create_session_engine"]
