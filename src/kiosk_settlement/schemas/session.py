"""Kiosk session Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .settlement import BridgeResultResponse, FeeResponse


class SessionStart(BaseModel):
    user_identifier: str | None = Field(None, description="ENS name, address or NFC id")


class SessionStartResponse(BaseModel):
    success: bool
    session_id: str
    channel_id: str | None = None
    message: str

    model_config = ConfigDict(from_attributes=True)


class DepositCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Cash amount inserted, in USDC")


class DepositResponse(BaseModel):
    success: bool
    new_balance: Decimal
    total_deposited: Decimal
    channel_synced: bool
    message: str

    model_config = ConfigDict(from_attributes=True)


class SessionEnd(BaseModel):
    destination: str = Field(..., min_length=1)
    target_chain: str = Field(..., min_length=1)


class SessionEndResponse(BaseModel):
    success: bool
    message: str
    settled_amount: Decimal | None = None
    destination_chain: str | None = None
    fee: FeeResponse | None = None
    bridge_result: BridgeResultResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class SessionPinResponse(BaseModel):
    success: bool
    message: str
    wallet_id: str | None = None
    pin: str | None = None
    amount: Decimal | None = None

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Schema for session information returned by the API."""

    id: str
    status: str
    channel_id: str | None = None
    user_identifier: str | None = None
    total_deposited: Decimal
    current_balance: Decimal
    started_at: datetime
    last_activity_at: datetime
    ended_at: datetime | None = None
    destination_address: str | None = None
    destination_chain: str | None = None
    bridge_tx_hash: str | None = None
    fee: FeeResponse | None = None
    pin_wallet_id: str | None = None
    error: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SessionSummaryResponse(BaseModel):
    active: int
    settling: int
    settled: int
    failed: int
    total_active_value: Decimal

    model_config = ConfigDict(from_attributes=True)
