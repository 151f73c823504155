"""Read-only snapshot of the kiosk's accounting and liquidity balances."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from kiosk_settlement.core.settings import settings
from kiosk_settlement.db.time import utcnow
from kiosk_settlement.services.clients import (
    AccountingClient,
    BridgeClient,
    ensure_authenticated,
    with_timeout,
)
from kiosk_settlement.services.fees import parse_amount

logger = logging.getLogger(__name__)

READING_OK = "ok"
READING_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class BalanceReading:
    """One balance source: a confirmed amount, or the reason it could not be read."""

    status: str
    amount: Decimal | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.status == READING_OK

    @classmethod
    def ok(cls, amount: Decimal) -> BalanceReading:
        return cls(status=READING_OK, amount=amount)

    @classmethod
    def unavailable(cls, error: str) -> BalanceReading:
        return cls(status=READING_UNAVAILABLE, error=error)


@dataclass(frozen=True)
class KioskBalances:
    asset: str
    accounting: BalanceReading
    liquidity: BalanceReading
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class LiquidityCheck:
    sufficient: bool
    required: Decimal
    available: Decimal | None
    error: str | None = None


class BalanceAggregator:
    """Reads both balance sources concurrently; a failed read is reported, never zeroed."""

    def __init__(
        self,
        accounting: AccountingClient,
        bridge: BridgeClient,
        *,
        asset: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.accounting = accounting
        self.bridge = bridge
        self.asset = asset or settings.accounting_asset
        self.timeout = timeout or settings.external_call_timeout_seconds

    async def get_kiosk_balances(self) -> KioskBalances:
        accounting, liquidity = await asyncio.gather(
            self._read_accounting(), self._read_liquidity()
        )
        return KioskBalances(asset=self.asset, accounting=accounting, liquidity=liquidity)

    async def check_liquidity(self, amount) -> LiquidityCheck:
        """Compare ``amount`` with the bridge pool; an unreadable pool is insufficient."""
        required = parse_amount(amount)
        reading = await self._read_liquidity()
        if not reading.available:
            return LiquidityCheck(
                sufficient=False, required=required, available=None, error=reading.error
            )
        return LiquidityCheck(
            sufficient=reading.amount >= required,
            required=required,
            available=reading.amount,
        )

    async def _read_accounting(self) -> BalanceReading:
        try:
            await ensure_authenticated(self.accounting, self.timeout)
            balances = await with_timeout(
                self.accounting.get_balances(), self.timeout, "accounting get_balances"
            )
        except Exception as exc:
            logger.error("Failed to read accounting balance: %s", exc)
            return BalanceReading.unavailable(str(exc) or exc.__class__.__name__)

        for balance in balances:
            if balance.asset == self.asset:
                return BalanceReading.ok(balance.amount)
        # The ledger answered without this asset: a confirmed zero.
        return BalanceReading.ok(Decimal("0"))

    async def _read_liquidity(self) -> BalanceReading:
        try:
            amount = await with_timeout(
                self.bridge.get_liquidity_balance(), self.timeout, "bridge liquidity"
            )
        except Exception as exc:
            logger.error("Failed to read bridge liquidity: %s", exc)
            return BalanceReading.unavailable(str(exc) or exc.__class__.__name__)
        return BalanceReading.ok(amount)


def _format_reading(reading: BalanceReading) -> str:
    if not reading.available:
        return "unavailable"
    return f"{reading.amount:.2f}"


def format_balances(balances: KioskBalances) -> str:
    """Render a balance snapshot for terminal display."""
    width = 55
    border = "+" + "-" * width + "+"
    rows = [
        f"Accounting: {_format_reading(balances.accounting):>12} {balances.asset}",
        f"Liquidity:  {_format_reading(balances.liquidity):>12} USDC",
        f"Updated: {balances.timestamp.strftime('%H:%M:%S')} UTC",
    ]
    lines = [border, "|  " + "Kiosk Balances".ljust(width - 2) + "|", border]
    lines.extend("|  " + row.ljust(width - 2) + "|" for row in rows)
    lines.append(border)
    for label, reading in (("accounting", balances.accounting), ("liquidity", balances.liquidity)):
        if reading.error:
            lines.append(f"  {label}: {reading.error}")
    return "\n".join(lines)
