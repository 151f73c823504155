# src/kiosk_settlement/models/__init__.py
"""SQLAlchemy models for the kiosk settlement service."""

from .kiosk_session import KioskSession
from .pin_wallet import PinWallet

__all__ = ["KioskSession", "PinWallet"]
