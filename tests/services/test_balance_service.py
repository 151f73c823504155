"""Tests for the kiosk balance aggregator."""

from decimal import Decimal

import pytest

from kiosk_settlement.services.balances import (
    READING_OK,
    READING_UNAVAILABLE,
    BalanceAggregator,
    format_balances,
)
from kiosk_settlement.services.clients import AssetBalance
from kiosk_settlement.services.errors import InputError, RemoteTransientError


@pytest.fixture
def aggregator(accounting, bridge):
    return BalanceAggregator(accounting, bridge, asset="ytest.usd", timeout=1.0)


@pytest.mark.asyncio
async def test_reads_both_sources(aggregator):
    balances = await aggregator.get_kiosk_balances()

    assert balances.accounting.status == READING_OK
    assert balances.accounting.amount == Decimal("12.5")
    assert balances.liquidity.status == READING_OK
    assert balances.liquidity.amount == Decimal("1000")


@pytest.mark.asyncio
async def test_missing_asset_is_a_confirmed_zero(aggregator, accounting):
    accounting.get_balances.return_value = [
        AssetBalance(asset="other", amount=Decimal("3"), raw="3000000")
    ]

    balances = await aggregator.get_kiosk_balances()

    assert balances.accounting.available
    assert balances.accounting.amount == Decimal("0")


@pytest.mark.asyncio
async def test_failed_read_is_unavailable_not_zero(aggregator, accounting, bridge):
    accounting.get_balances.side_effect = RemoteTransientError("ledger offline")
    bridge.get_liquidity_balance.side_effect = RemoteTransientError("pool offline")

    balances = await aggregator.get_kiosk_balances()

    assert balances.accounting.status == READING_UNAVAILABLE
    assert balances.accounting.amount is None
    assert balances.accounting.error == "ledger offline"
    assert balances.liquidity.status == READING_UNAVAILABLE
    assert balances.liquidity.amount is None

    text = format_balances(balances)
    assert "unavailable" in text
    assert "ledger offline" in text


@pytest.mark.asyncio
async def test_one_source_failing_does_not_hide_the_other(aggregator, bridge):
    bridge.get_liquidity_balance.side_effect = RemoteTransientError("pool offline")

    balances = await aggregator.get_kiosk_balances()

    assert balances.accounting.amount == Decimal("12.5")
    assert not balances.liquidity.available


@pytest.mark.asyncio
async def test_check_liquidity(aggregator, bridge):
    enough = await aggregator.check_liquidity("999.99")
    assert enough.sufficient is True
    assert enough.available == Decimal("1000")

    short = await aggregator.check_liquidity("1000.01")
    assert short.sufficient is False

    bridge.get_liquidity_balance.side_effect = RemoteTransientError("pool offline")
    unknown = await aggregator.check_liquidity("1")
    assert unknown.sufficient is False
    assert unknown.available is None
    assert unknown.error == "pool offline"


@pytest.mark.asyncio
async def test_check_liquidity_rejects_bad_amount(aggregator):
    with pytest.raises(InputError):
        await aggregator.check_liquidity("-3")
