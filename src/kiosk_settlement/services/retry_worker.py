"""Background sweep retrying PIN wallets stuck in PENDING_BRIDGE.

This module provides the RetrySweepWorker class that periodically calls
``SettlementOrchestrator.retry_pending_bridges`` for the lifetime of the
application.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from kiosk_settlement.core.settings import settings
from kiosk_settlement.services.errors import SettlementError
from kiosk_settlement.services.settlement import RetrySummary, SettlementOrchestrator

logger = logging.getLogger(__name__)


class RetrySweepWorker:
    """Periodically re-bridges pending PIN wallets.

    Each pass is a full ``retry_pending_bridges`` sweep; the claim lease keeps
    it from racing a concurrent manual claim on the same wallet.
    """

    def __init__(
        self,
        orchestrator: SettlementOrchestrator,
        interval_seconds: float | None = None,
    ) -> None:
        """Initialize the retry sweep worker.

        Args:
            orchestrator: Orchestrator whose retry sweep is run.
            interval_seconds: Delay between passes. Defaults to settings.
        """
        self.orchestrator = orchestrator
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.retry_sweep_interval_seconds
        )
        self.last_summary: RetrySummary | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def run_once(self) -> RetrySummary:
        self.last_summary = await self.orchestrator.retry_pending_bridges()
        return self.last_summary

    async def _run(self) -> None:
        interval = max(0.1, float(self.interval_seconds))

        while not self._stopping.is_set():
            try:
                await self.run_once()
            except SettlementError as e:
                logger.warning("RetrySweepWorker encountered settlement error: %s", e)
            except SQLAlchemyError as e:
                logger.error("RetrySweepWorker encountered storage error: %s", e, exc_info=True)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
