# src/kiosk_settlement/api/v1/endpoints/wallets.py
"""PIN wallet endpoints: issue, claim, sweep and summarize."""

from fastapi import APIRouter, status

from kiosk_settlement.schemas.settlement import (
    PinWalletClaim,
    PinWalletCreate,
    PinWalletCreated,
    PinWalletResponse,
    RetrySummaryResponse,
    SettlementResponse,
    WalletSummaryResponse,
)
from kiosk_settlement.services.errors import SettlementError

from ..dependencies import OrchestratorDep, ResolverDep, http_error

router = APIRouter(prefix="/wallets", tags=["wallets"])


@router.post("", response_model=PinWalletCreated, status_code=status.HTTP_201_CREATED)
async def create_wallet(payload: PinWalletCreate, orchestrator: OrchestratorDep) -> PinWalletCreated:
    try:
        created = orchestrator.create_pin_wallet(payload.amount)
    except SettlementError as exc:
        raise http_error(exc) from exc
    return PinWalletCreated(wallet_id=created.wallet.id, pin=created.pin, amount=created.wallet.amount)


@router.get("", response_model=list[PinWalletResponse])
async def list_wallets(orchestrator: OrchestratorDep) -> list[PinWalletResponse]:
    return [PinWalletResponse.model_validate(w) for w in orchestrator.list_wallets()]


@router.get("/summary", response_model=WalletSummaryResponse)
async def wallet_summary(orchestrator: OrchestratorDep) -> WalletSummaryResponse:
    return WalletSummaryResponse.model_validate(orchestrator.get_pending_wallets_summary())


@router.post("/retry", response_model=RetrySummaryResponse)
async def retry_pending(orchestrator: OrchestratorDep) -> RetrySummaryResponse:
    """Run one retry sweep over PENDING_BRIDGE wallets."""
    summary = await orchestrator.retry_pending_bridges()
    return RetrySummaryResponse.model_validate(summary)


@router.post("/{wallet_id}/claim", response_model=SettlementResponse)
async def claim_wallet(
    wallet_id: str,
    payload: PinWalletClaim,
    orchestrator: OrchestratorDep,
    resolver: ResolverDep,
) -> SettlementResponse:
    """Claim a PIN wallet to a destination chain.

    Responds 403 for an unknown wallet, a wrong PIN or a locked wallet, and
    409 while another claim on the same wallet is in flight.
    """
    try:
        destination = await resolver.resolve(payload.destination)
        result = await orchestrator.claim_pin_wallet(
            wallet_id, payload.pin, destination, payload.target_chain
        )
    except SettlementError as exc:
        raise http_error(exc) from exc
    return SettlementResponse.model_validate(result)
