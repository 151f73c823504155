"""Logging setup shared by the API and the CLI."""

from __future__ import annotations

import logging

from kiosk_settlement.core.settings import settings

LOG_FORMAT = "[%(asctime)s] %(levelname)-5s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once using the configured level."""
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
