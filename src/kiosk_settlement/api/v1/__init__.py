# src/kiosk_settlement/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    sessions_router,
    settlements_router,
    system_router,
    wallets_router,
)

__all__ = [
    "settlements_router",
    "wallets_router",
    "sessions_router",
    "system_router",
]
