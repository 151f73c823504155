"""Data access helpers for kiosk sessions."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kiosk_settlement.core.security import generate_session_id
from kiosk_settlement.models.kiosk_session import (
    SESSION_STATUS_ACTIVE,
    SESSION_STATUS_FAILED,
    SESSION_STATUS_SETTLED,
    SESSION_STATUS_SETTLING,
    KioskSession,
)

__all__ = ["SessionRepository", "SessionSummary"]

MAX_ID_ATTEMPTS = 20


@dataclass(frozen=True)
class SessionSummary:
    """Counts of sessions per status and the cash still held by active ones."""

    active: int
    settling: int
    settled: int
    failed: int
    total_active_value: Decimal


class SessionRepository:
    """Thin wrapper around database access for kiosk sessions."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get(self, session_id: str) -> KioskSession | None:
        """Return a session by identifier regardless of status."""
        return self.session.get(KioskSession, session_id, populate_existing=True)

    def get_active(self, session_id: str) -> KioskSession | None:
        """Return the session only while it still accepts deposits."""
        kiosk_session = self.get(session_id)
        if kiosk_session is None or kiosk_session.status != SESSION_STATUS_ACTIVE:
            return None
        return kiosk_session

    def new_session_id(self) -> str:
        """Return an identifier not used by any stored session."""
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = generate_session_id()
            if self.session.get(KioskSession, candidate) is None:
                return candidate
        raise RuntimeError("Could not allocate a unique session id")

    def add(self, kiosk_session: KioskSession) -> KioskSession:
        """Stage a new session and flush it."""
        self.session.add(kiosk_session)
        self.session.flush()
        return kiosk_session

    def list_active(self) -> list[KioskSession]:
        """Return sessions accepting deposits, oldest first."""
        result = self.session.execute(
            select(KioskSession)
            .where(KioskSession.status == SESSION_STATUS_ACTIVE)
            .order_by(KioskSession.started_at)
        )
        return list(result.scalars())

    def list_all(self) -> list[KioskSession]:
        """Return every session, newest first."""
        result = self.session.execute(
            select(KioskSession).order_by(KioskSession.started_at.desc())
        )
        return list(result.scalars())

    def summary(self) -> SessionSummary:
        """Return per-status counts and the balance held by active sessions."""
        rows = self.session.execute(
            select(KioskSession.status, func.count()).group_by(KioskSession.status)
        ).all()
        counts = {status: count for status, count in rows}
        balances = self.session.execute(
            select(KioskSession.current_balance).where(
                KioskSession.status == SESSION_STATUS_ACTIVE
            )
        ).scalars()
        return SessionSummary(
            active=counts.get(SESSION_STATUS_ACTIVE, 0),
            settling=counts.get(SESSION_STATUS_SETTLING, 0),
            settled=counts.get(SESSION_STATUS_SETTLED, 0),
            failed=counts.get(SESSION_STATUS_FAILED, 0),
            total_active_value=sum(balances, Decimal("0")),
        )
