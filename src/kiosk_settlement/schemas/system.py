"""Balance and chain registry schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class BalanceReadingResponse(BaseModel):
    status: str
    amount: Decimal | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class BalancesResponse(BaseModel):
    asset: str
    accounting: BalanceReadingResponse
    liquidity: BalanceReadingResponse
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class ChainResponse(BaseModel):
    key: str
    name: str
    chain_id: int
    explorer_url: str
    is_testnet: bool

    model_config = ConfigDict(from_attributes=True)


class LiquidityCheckResponse(BaseModel):
    sufficient: bool
    required: Decimal
    available: Decimal | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)
