# src/kiosk_settlement/api/v1/endpoints/settlements.py
"""Direct settlement endpoint."""

from fastapi import APIRouter

from kiosk_settlement.schemas.settlement import SettlementCreate, SettlementResponse
from kiosk_settlement.services.errors import SettlementError

from ..dependencies import OrchestratorDep, ResolverDep, http_error

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.post("", response_model=SettlementResponse)
async def create_settlement(
    payload: SettlementCreate,
    orchestrator: OrchestratorDep,
    resolver: ResolverDep,
) -> SettlementResponse:
    """Settle cash to a destination chain.

    A failed bridge still returns 200 with ``success`` false and the fallback
    PIN wallet credentials; the customer must be shown them.
    """
    try:
        destination = await resolver.resolve(payload.destination)
        result = await orchestrator.settle_to_chain(
            destination, payload.target_chain, payload.amount
        )
    except SettlementError as exc:
        raise http_error(exc) from exc
    return SettlementResponse.model_validate(result)
