"""SQLAlchemy model for PIN-protected recovery records."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kiosk_settlement.db.session import Base
from kiosk_settlement.db.time import as_utc, utcnow
from kiosk_settlement.models.types import DecimalText
from kiosk_settlement.services.errors import TerminalError

WALLET_STATUS_PENDING = "PENDING"
WALLET_STATUS_PENDING_BRIDGE = "PENDING_BRIDGE"
WALLET_STATUS_SETTLED = "SETTLED"
WALLET_STATUS_FAILED = "FAILED"

WALLET_STATUSES = (
    WALLET_STATUS_PENDING,
    WALLET_STATUS_PENDING_BRIDGE,
    WALLET_STATUS_SETTLED,
    WALLET_STATUS_FAILED,
)
CLAIMABLE_WALLET_STATUSES = (WALLET_STATUS_PENDING, WALLET_STATUS_PENDING_BRIDGE)
TERMINAL_WALLET_STATUSES = (WALLET_STATUS_SETTLED, WALLET_STATUS_FAILED)


class PinWallet(Base):
    """Value owed to whoever holds the PIN, pending or following a settlement attempt."""

    __tablename__ = "pin_wallet"

    id: Mapped[str] = mapped_column(String(6), primary_key=True)
    pin_hash: Mapped[str] = mapped_column(String(80), nullable=False)
    amount: Mapped[Decimal] = mapped_column(DecimalText, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    destination: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_chain: Mapped[str | None] = mapped_column(String(32), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WALLET_STATUS_PENDING, index=True
    )  # one of WALLET_STATUSES

    bridge_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_bridge_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_bridge_attempt: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    bridge_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Invalid PIN bookkeeping; independent of bridge attempts.
    pin_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Claim-in-progress lease, taken with a compare-and-set UPDATE.
    claim_token: Mapped[str | None] = mapped_column(String(32), nullable=True)
    claim_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        """Return True once the record reached SETTLED or FAILED."""
        return self.status in TERMINAL_WALLET_STATUSES

    def transition_to(self, status: str) -> None:
        """Move to ``status``; terminal records never change again."""
        if status not in WALLET_STATUSES:
            raise ValueError(f"Unknown PIN wallet status: {status}")
        if self.is_terminal and status != self.status:
            raise TerminalError(f"PIN wallet {self.id} is already {self.status}")
        self.status = status

    def is_locked(self, now: datetime | None = None) -> bool:
        """Return True while the record is locked out after invalid PINs."""
        locked_until = as_utc(self.locked_until)
        return locked_until is not None and locked_until > (now or utcnow())

    def record_bridge_failure(self, error: str | None, now: datetime | None = None) -> None:
        """Count one failed bridge attempt."""
        self.bridge_attempts += 1
        self.last_bridge_error = error or "unknown bridge error"
        self.last_bridge_attempt = now or utcnow()

    def mark_settled(self, tx_hash: str | None, now: datetime | None = None) -> None:
        """Record a successful bridge transfer."""
        self.transition_to(WALLET_STATUS_SETTLED)
        self.bridge_tx_hash = tx_hash
        self.settled_at = now or utcnow()
