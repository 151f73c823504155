# src/kiosk_settlement/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .session import (
    DepositCreate,
    DepositResponse,
    SessionEnd,
    SessionEndResponse,
    SessionPinResponse,
    SessionResponse,
    SessionStart,
    SessionStartResponse,
    SessionSummaryResponse,
)
from .settlement import (
    PinWalletClaim,
    PinWalletCreate,
    PinWalletCreated,
    PinWalletResponse,
    RetrySummaryResponse,
    SettlementCreate,
    SettlementResponse,
    WalletSummaryResponse,
)
from .system import BalancesResponse, ChainResponse, LiquidityCheckResponse

__all__ = [
    "DepositCreate", "DepositResponse",
    "SessionEnd", "SessionEndResponse", "SessionPinResponse",
    "SessionResponse", "SessionStart", "SessionStartResponse", "SessionSummaryResponse",
    "PinWalletClaim", "PinWalletCreate", "PinWalletCreated", "PinWalletResponse",
    "RetrySummaryResponse", "SettlementCreate", "SettlementResponse", "WalletSummaryResponse",
    "BalancesResponse", "ChainResponse", "LiquidityCheckResponse",
]
