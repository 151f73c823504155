"""Settlement and PIN wallet Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class FeeResponse(BaseModel):
    """Fee deducted from a transfer."""

    gross_amount: Decimal
    fee: Decimal
    net_amount: Decimal
    fee_percentage: str

    model_config = ConfigDict(from_attributes=True)


class BridgeResultResponse(BaseModel):
    success: bool
    destination_chain: str
    amount: Decimal
    tx_hash: str | None = None
    tx_status: str
    explorer_url: str | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SettlementCreate(BaseModel):
    """Schema for a direct settlement request."""

    destination: str = Field(..., min_length=1, description="Address or resolvable name")
    target_chain: str = Field(..., min_length=1, description="Chain key, e.g. 'base'")
    amount: Decimal = Field(..., gt=0, description="Gross USDC amount")


class SettlementResponse(BaseModel):
    """Outcome of a settlement or claim attempt."""

    success: bool
    accounting_recorded: bool
    bridge_attempted: bool
    message: str
    destination_chain: str | None = None
    fee: FeeResponse | None = None
    bridge_result: BridgeResultResponse | None = None
    fallback_id: str | None = None
    fallback_pin: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PinWalletCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="USDC amount owed to the PIN holder")


class PinWalletCreated(BaseModel):
    """A new PIN wallet; the PIN is only ever returned here."""

    wallet_id: str
    pin: str
    amount: Decimal


class PinWalletClaim(BaseModel):
    pin: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")
    destination: str = Field(..., min_length=1)
    target_chain: str = Field(..., min_length=1)


class PinWalletResponse(BaseModel):
    """PIN wallet state without the PIN digest."""

    id: str
    amount: Decimal
    status: str
    created_at: datetime
    destination: str | None = None
    target_chain: str | None = None
    bridge_attempts: int
    last_bridge_error: str | None = None
    last_bridge_attempt: datetime | None = None
    bridge_tx_hash: str | None = None
    settled_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RetrySummaryResponse(BaseModel):
    attempted: int
    succeeded: int
    failed: int
    still_pending: int
    skipped: int

    model_config = ConfigDict(from_attributes=True)


class WalletSummaryResponse(BaseModel):
    pending: int
    pending_bridge: int
    settled: int
    failed: int
    total_value: Decimal

    model_config = ConfigDict(from_attributes=True)
