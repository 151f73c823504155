"""Kiosk cash-to-chain settlement orchestration."""

__version__ = "0.1.0"
