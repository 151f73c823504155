# src/kiosk_settlement/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .sessions import router as sessions_router
from .settlements import router as settlements_router
from .system import router as system_router
from .wallets import router as wallets_router

__all__ = [
    "settlements_router",
    "wallets_router",
    "sessions_router",
    "system_router",
]
