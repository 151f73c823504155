"""Contracts of the external collaborators used by the settlement services.

Services receive these clients by injection; the HTTP adapters in
``clearnode``, ``bridge`` and ``resolver`` implement them, and tests substitute
``AsyncMock`` doubles.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, TypeVar, runtime_checkable

from kiosk_settlement.services.errors import RemoteTransientError

T = TypeVar("T")

TX_STATUS_SUCCESS = "success"
TX_STATUS_REVERTED = "reverted"
TX_STATUS_PENDING = "pending"


@dataclass(frozen=True)
class AssetBalance:
    """Ledger balance of one asset, in token units."""

    asset: str
    amount: Decimal
    raw: str


@dataclass(frozen=True)
class BridgeResult:
    """Normalized outcome of one bridge transfer."""

    success: bool
    destination_chain: str
    amount: Decimal
    tx_hash: str | None = None
    tx_status: str = TX_STATUS_PENDING
    explorer_url: str | None = None
    error: str | None = None


@runtime_checkable
class AccountingClient(Protocol):
    """Off-chain accounting channel operations."""

    @property
    def is_authenticated(self) -> bool: ...

    async def connect(self) -> None: ...

    async def authenticate(self) -> None: ...

    async def get_balances(self) -> list[AssetBalance]: ...

    async def create_channel(self, asset_ref: str, chain_id: int) -> str: ...

    async def channel_exists(self, channel_id: str) -> bool: ...

    async def resize_channel(self, channel_id: str, delta: int, destination: str) -> None: ...

    async def close_channel(self, channel_id: str, destination: str) -> None: ...

    async def health_check(self) -> dict[str, Any]: ...


@runtime_checkable
class BridgeClient(Protocol):
    """Cross-chain transfer of pool liquidity to a destination chain."""

    async def bridge(
        self,
        destination: str,
        chain_key: str,
        amount: Decimal,
        *,
        fee: Decimal = Decimal("0"),
        fee_recipient: str | None = None,
    ) -> BridgeResult: ...

    async def get_liquidity_balance(self) -> Decimal: ...

    async def health_check(self) -> dict[str, Any]: ...


@runtime_checkable
class DestinationResolver(Protocol):
    """Turns a literal address or a human-readable name into an address."""

    async def resolve(self, value: str) -> str: ...


async def with_timeout(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        RemoteTransientError: If the call did not finish in time.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise RemoteTransientError(f"{operation} timed out after {timeout:g}s") from exc


async def ensure_authenticated(client: AccountingClient, timeout: float) -> None:
    """Connect and authenticate ``client`` on first use."""
    if client.is_authenticated:
        return
    await with_timeout(client.connect(), timeout, "accounting connect")
    await with_timeout(client.authenticate(), timeout, "accounting authenticate")
