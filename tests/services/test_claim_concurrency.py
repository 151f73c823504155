"""Concurrent writers on the same PIN wallet or session."""

import asyncio
from decimal import Decimal

import pytest

from kiosk_settlement.db.time import utcnow
from kiosk_settlement.models import KioskSession, PinWallet
from kiosk_settlement.models.pin_wallet import WALLET_STATUS_SETTLED
from kiosk_settlement.repositories.pin_wallet_repo import PinWalletRepository, commit_or_conflict
from kiosk_settlement.services.clients import TX_STATUS_SUCCESS, BridgeResult
from kiosk_settlement.services.errors import ClaimInProgressError, ConcurrentUpdateError

from conftest import DESTINATION, TX_HASH


def test_stale_wallet_write_is_rejected(session_factory, make_wallet):
    make_wallet()
    first = session_factory()
    second = session_factory()
    try:
        a = first.get(PinWallet, "1A2B3C")
        b = second.get(PinWallet, "1A2B3C")

        a.destination = DESTINATION
        commit_or_conflict(first)

        b.destination = "0x" + "33" * 20
        with pytest.raises(ConcurrentUpdateError):
            commit_or_conflict(second)
    finally:
        first.close()
        second.close()


def test_stale_session_write_is_rejected(session_factory, make_session):
    make_session(balance="1.00")
    first = session_factory()
    second = session_factory()
    try:
        a = first.get(KioskSession, "S0000AAAA")
        b = second.get(KioskSession, "S0000AAAA")

        a.current_balance = Decimal("2.00")
        commit_or_conflict(first)

        b.current_balance = Decimal("3.00")
        with pytest.raises(ConcurrentUpdateError):
            commit_or_conflict(second)
    finally:
        first.close()
        second.close()


def test_acquire_claim_is_exclusive(session_factory, make_wallet, policy):
    make_wallet()
    now = utcnow()
    with session_factory() as db:
        repo = PinWalletRepository(db)
        assert repo.acquire_claim("1A2B3C", "t" * 32, now, policy.lease_cutoff(now)) is True
        db.commit()
    with session_factory() as db:
        repo = PinWalletRepository(db)
        assert repo.acquire_claim("1A2B3C", "u" * 32, now, policy.lease_cutoff(now)) is False


@pytest.mark.asyncio
async def test_concurrent_claims_bridge_once(orchestrator, make_wallet, bridge, load):
    make_wallet()

    async def _slow_bridge(destination, chain_key, amount, *, fee=Decimal("0"), fee_recipient=None):
        await asyncio.sleep(0.05)
        return BridgeResult(
            success=True,
            destination_chain=chain_key,
            amount=amount,
            tx_hash=TX_HASH,
            tx_status=TX_STATUS_SUCCESS,
        )

    bridge.bridge.side_effect = _slow_bridge

    results = await asyncio.gather(
        orchestrator.claim_pin_wallet("1A2B3C", "123456", DESTINATION, "base"),
        orchestrator.claim_pin_wallet("1A2B3C", "123456", DESTINATION, "base"),
        return_exceptions=True,
    )

    assert bridge.bridge.await_count == 1
    errors = [r for r in results if isinstance(r, Exception)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], ClaimInProgressError)
    assert len(successes) == 1 and successes[0].success is True
    assert load(PinWallet, "1A2B3C").status == WALLET_STATUS_SETTLED


@pytest.mark.asyncio
async def test_sweep_skips_wallet_claimed_mid_flight(orchestrator, make_wallet, bridge, load):
    make_wallet(
        status="PENDING_BRIDGE",
        destination=DESTINATION,
        target_chain="base",
        bridge_attempts=1,
    )
    started = asyncio.Event()
    release = asyncio.Event()

    async def _blocking_bridge(destination, chain_key, amount, *, fee=Decimal("0"), fee_recipient=None):
        started.set()
        await release.wait()
        return BridgeResult(
            success=True,
            destination_chain=chain_key,
            amount=amount,
            tx_hash=TX_HASH,
            tx_status=TX_STATUS_SUCCESS,
        )

    bridge.bridge.side_effect = _blocking_bridge

    claim = asyncio.create_task(
        orchestrator.claim_pin_wallet("1A2B3C", "123456", DESTINATION, "base")
    )
    await started.wait()
    summary = await orchestrator.retry_pending_bridges()
    release.set()
    result = await claim

    assert summary.attempted == 0
    assert result.success is True
    assert bridge.bridge.await_count == 1
    assert load(PinWallet, "1A2B3C").status == WALLET_STATUS_SETTLED
