import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from kiosk_settlement.services.errors import RemoteTransientError
from kiosk_settlement.services.retry_worker import RetrySweepWorker
from kiosk_settlement.services.settlement import RetrySummary, SettlementOrchestrator


@pytest.fixture
def mock_orchestrator():
    orchestrator = AsyncMock(spec=SettlementOrchestrator)
    orchestrator.retry_pending_bridges.return_value = RetrySummary(
        attempted=2, succeeded=1, failed=0, still_pending=1
    )
    return orchestrator


@pytest.mark.asyncio
async def test_run_once_records_summary(mock_orchestrator):
    worker = RetrySweepWorker(mock_orchestrator, interval_seconds=60)

    summary = await worker.run_once()

    assert summary.attempted == 2
    assert worker.last_summary is summary
    mock_orchestrator.retry_pending_bridges.assert_awaited_once()


@pytest.mark.asyncio
async def test_worker_runs_until_stopped(mock_orchestrator):
    worker = RetrySweepWorker(mock_orchestrator, interval_seconds=0.1)

    await worker.start()
    assert worker.running
    await asyncio.sleep(0.25)
    await worker.stop()

    assert not worker.running
    assert mock_orchestrator.retry_pending_bridges.await_count >= 2


@pytest.mark.asyncio
async def test_worker_survives_sweep_errors(mock_orchestrator):
    failures = [
        RemoteTransientError("bridge down"),
        OperationalError("SELECT 1", {}, Exception("database is locked")),
    ]

    async def _sweep():
        if failures:
            raise failures.pop(0)
        return RetrySummary(attempted=0, succeeded=0, failed=0, still_pending=0)

    mock_orchestrator.retry_pending_bridges.side_effect = _sweep
    worker = RetrySweepWorker(mock_orchestrator, interval_seconds=0.1)

    await worker.start()
    await asyncio.sleep(0.35)
    await worker.stop()

    assert mock_orchestrator.retry_pending_bridges.await_count >= 3
    assert worker.last_summary is not None


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(mock_orchestrator):
    worker = RetrySweepWorker(mock_orchestrator, interval_seconds=1)
    await worker.stop()
    assert not worker.running
