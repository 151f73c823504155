"""Balance, gateway and chain registry endpoints."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query

from kiosk_settlement.schemas.system import BalancesResponse, ChainResponse, LiquidityCheckResponse
from kiosk_settlement.services.chains import CHAIN_OPTIONS, SUPPORTED_CHAINS

from ..dependencies import AccountingDep, BalanceAggregatorDep, BridgeDep

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/balances", response_model=BalancesResponse)
async def get_balances(aggregator: BalanceAggregatorDep) -> BalancesResponse:
    """Return accounting and liquidity balances.

    A source that could not be read is reported as ``unavailable`` rather
    than as a zero amount.
    """
    balances = await aggregator.get_kiosk_balances()
    return BalancesResponse.model_validate(balances)


@router.get("/liquidity", response_model=LiquidityCheckResponse)
async def check_liquidity(
    aggregator: BalanceAggregatorDep,
    amount: Decimal = Query(..., gt=0),
) -> LiquidityCheckResponse:
    """Check whether the bridge pool can cover ``amount``; an unreadable pool is insufficient."""
    return LiquidityCheckResponse.model_validate(await aggregator.check_liquidity(amount))


@router.get("/gateways")
async def gateway_status(accounting: AccountingDep, bridge: BridgeDep) -> dict[str, Any]:
    """Report reachability, circuit breaker state and call counters of both gateways."""
    accounting_report, bridge_report = await asyncio.gather(
        accounting.health_check(), bridge.health_check()
    )
    return {"accounting": accounting_report, "bridge": bridge_report}


@router.get("/chains", response_model=list[ChainResponse])
async def list_chains() -> list[ChainResponse]:
    """Return the chains customers can settle to."""
    return [ChainResponse.model_validate(SUPPORTED_CHAINS[key]) for key in CHAIN_OPTIONS]
