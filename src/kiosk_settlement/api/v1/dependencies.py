"""Shared API dependencies wiring services to their external clients."""

from typing import Annotated

from fastapi import Depends, HTTPException, status

from kiosk_settlement.db.session import SessionLocal
from kiosk_settlement.services.balances import BalanceAggregator
from kiosk_settlement.services.bridge import get_bridge_client
from kiosk_settlement.services.clearnode import get_accounting_client
from kiosk_settlement.services.clients import AccountingClient, BridgeClient, DestinationResolver
from kiosk_settlement.services.errors import (
    AuthorizationError,
    ConcurrentUpdateError,
    InputError,
    NotFoundError,
    SettlementError,
    TerminalError,
)
from kiosk_settlement.services.resolver import get_resolver
from kiosk_settlement.services.sessions import SessionManager
from kiosk_settlement.services.settlement import SessionFactory, SettlementOrchestrator

_STATUS_BY_ERROR: tuple[tuple[type[SettlementError], int], ...] = (
    (InputError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConcurrentUpdateError, status.HTTP_409_CONFLICT),
    (TerminalError, status.HTTP_409_CONFLICT),
)


def http_error(exc: SettlementError) -> HTTPException:
    """Translate a settlement error into an HTTP error response."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


def get_session_factory() -> SessionFactory:
    """Return the factory used to open short-lived database sessions."""
    return SessionLocal


def get_accounting() -> AccountingClient:
    return get_accounting_client()


def get_bridge() -> BridgeClient:
    return get_bridge_client()


def get_destination_resolver() -> DestinationResolver:
    return get_resolver()


SessionFactoryDep = Annotated[SessionFactory, Depends(get_session_factory)]
AccountingDep = Annotated[AccountingClient, Depends(get_accounting)]
BridgeDep = Annotated[BridgeClient, Depends(get_bridge)]
ResolverDep = Annotated[DestinationResolver, Depends(get_destination_resolver)]


def get_orchestrator(
    accounting: AccountingDep,
    bridge: BridgeDep,
    session_factory: SessionFactoryDep,
) -> SettlementOrchestrator:
    """Build the settlement orchestrator for a request."""
    return SettlementOrchestrator(accounting, bridge, session_factory)


OrchestratorDep = Annotated[SettlementOrchestrator, Depends(get_orchestrator)]


def get_session_manager(
    accounting: AccountingDep,
    bridge: BridgeDep,
    orchestrator: OrchestratorDep,
    session_factory: SessionFactoryDep,
) -> SessionManager:
    """Build the session manager for a request."""
    return SessionManager(accounting, bridge, orchestrator, session_factory)


def get_balance_aggregator(accounting: AccountingDep, bridge: BridgeDep) -> BalanceAggregator:
    return BalanceAggregator(accounting, bridge)


SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
BalanceAggregatorDep = Annotated[BalanceAggregator, Depends(get_balance_aggregator)]
