"""SQLAlchemy model for multi-deposit kiosk sessions."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kiosk_settlement.db.session import Base
from kiosk_settlement.db.time import utcnow
from kiosk_settlement.models.types import DecimalText
from kiosk_settlement.services.fees import FeeBreakdown

SESSION_STATUS_ACTIVE = "ACTIVE"
SESSION_STATUS_SETTLING = "SETTLING"
SESSION_STATUS_SETTLED = "SETTLED"
SESSION_STATUS_FAILED = "FAILED"

SESSION_STATUSES = (
    SESSION_STATUS_ACTIVE,
    SESSION_STATUS_SETTLING,
    SESSION_STATUS_SETTLED,
    SESSION_STATUS_FAILED,
)


class KioskSession(Base):
    """A bounded kiosk interaction accumulating cash before one settlement or hand-off."""

    __tablename__ = "kiosk_session"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    channel_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_identifier: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_deposited: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )
    current_balance: Mapped[Decimal] = mapped_column(
        DecimalText, nullable=False, default=Decimal("0")
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_activity_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SESSION_STATUS_ACTIVE, index=True
    )  # one of SESSION_STATUSES

    destination_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_chain: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bridge_tx_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    fee_gross: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)
    fee_amount: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)
    fee_net: Mapped[Decimal | None] = mapped_column(DecimalText, nullable=True)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    pin_wallet_id: Mapped[str | None] = mapped_column(String(6), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def fee(self) -> FeeBreakdown | None:
        """Return the fee applied at settlement, if the session reached it."""
        if self.fee_gross is None or self.fee_amount is None or self.fee_net is None:
            return None
        return FeeBreakdown(
            gross_amount=self.fee_gross,
            fee=self.fee_amount,
            net_amount=self.fee_net,
        )

    @fee.setter
    def fee(self, breakdown: FeeBreakdown | None) -> None:
        if breakdown is None:
            self.fee_gross = self.fee_amount = self.fee_net = None
            return
        self.fee_gross = breakdown.gross_amount
        self.fee_amount = breakdown.fee
        self.fee_net = breakdown.net_amount
