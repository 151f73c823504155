# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PIN_PEPPER", "test-pepper")

from kiosk_settlement.api.v1 import dependencies
from kiosk_settlement.core.security import hash_pin
from kiosk_settlement.db.session import Base
from kiosk_settlement.db.time import utcnow
from kiosk_settlement.main import app as fastapi_app
from kiosk_settlement.models import KioskSession, PinWallet
from kiosk_settlement.models.kiosk_session import SESSION_STATUS_ACTIVE
from kiosk_settlement.models.pin_wallet import WALLET_STATUS_PENDING
from kiosk_settlement.services.bridge import HttpBridgeClient
from kiosk_settlement.services.clearnode import ClearNodeClient
from kiosk_settlement.services.clients import TX_STATUS_SUCCESS, AssetBalance, BridgeResult
from kiosk_settlement.services.resolver import NameResolver
from kiosk_settlement.services.retry_policy import RetryPolicy
from kiosk_settlement.services.sessions import SessionManager
from kiosk_settlement.services.settlement import SettlementOrchestrator

TEST_DB_URL = "sqlite://"
KIOSK_ADDRESS = "0x" + "11" * 20
DESTINATION = "0xabc0000000000000000000000000000000000def"
CHANNEL_ID = "0x" + "c1" * 32
TX_HASH = "0x" + "ab" * 32


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def load(session_factory: sessionmaker[Session]) -> Callable[..., object]:
    """Read a row back through a fresh session."""

    def _load(model: type, key: str):
        with session_factory() as db:
            return db.get(model, key)

    return _load


@pytest.fixture()
def accounting() -> AsyncMock:
    client = AsyncMock(spec=ClearNodeClient)
    client.is_authenticated = True
    client.create_channel.return_value = CHANNEL_ID
    client.channel_exists.return_value = True
    client.get_balances.return_value = [
        AssetBalance(asset="ytest.usd", amount=Decimal("12.5"), raw="12500000")
    ]
    return client


@pytest.fixture()
def bridge() -> AsyncMock:
    client = AsyncMock(spec=HttpBridgeClient)

    async def _bridge(destination, chain_key, amount, *, fee=Decimal("0"), fee_recipient=None):
        return BridgeResult(
            success=True,
            destination_chain=chain_key,
            amount=amount,
            tx_hash=TX_HASH,
            tx_status=TX_STATUS_SUCCESS,
        )

    client.bridge.side_effect = _bridge
    client.get_liquidity_balance.return_value = Decimal("1000")
    return client


@pytest.fixture()
def policy() -> RetryPolicy:
    return RetryPolicy()


@pytest.fixture()
def orchestrator(
    accounting: AsyncMock,
    bridge: AsyncMock,
    session_factory: sessionmaker[Session],
    policy: RetryPolicy,
) -> SettlementOrchestrator:
    return SettlementOrchestrator(
        accounting,
        bridge,
        session_factory,
        policy,
        kiosk_address=KIOSK_ADDRESS,
        fee_recipient="",
        timeout=1.0,
    )


@pytest.fixture()
def manager(
    accounting: AsyncMock,
    bridge: AsyncMock,
    orchestrator: SettlementOrchestrator,
    session_factory: sessionmaker[Session],
) -> SessionManager:
    return SessionManager(
        accounting,
        bridge,
        orchestrator,
        session_factory,
        kiosk_address=KIOSK_ADDRESS,
        fee_recipient="",
        timeout=1.0,
    )


@pytest.fixture()
def make_wallet(db_session: Session) -> Callable[..., PinWallet]:
    """Insert a PIN wallet directly, bypassing the orchestrator."""

    def _make(
        wallet_id: str = "1A2B3C",
        pin: str = "123456",
        amount: str = "1.00",
        **fields,
    ) -> PinWallet:
        values = {
            "status": WALLET_STATUS_PENDING,
            "bridge_attempts": 0,
            "pin_failures": 0,
            "created_at": utcnow(),
        }
        values.update(fields)
        wallet = PinWallet(
            id=wallet_id,
            pin_hash=hash_pin(pin),
            amount=Decimal(amount),
            **values,
        )
        db_session.add(wallet)
        db_session.commit()
        return wallet

    return _make


@pytest.fixture()
def make_session(db_session: Session) -> Callable[..., KioskSession]:
    """Insert a kiosk session directly."""

    def _make(session_id: str = "S0000AAAA", balance: str = "0", **fields) -> KioskSession:
        now = utcnow()
        values = {
            "channel_id": CHANNEL_ID,
            "status": SESSION_STATUS_ACTIVE,
            "started_at": now,
            "last_activity_at": now,
            "total_deposited": Decimal(balance),
            "current_balance": Decimal(balance),
        }
        values.update(fields)
        kiosk_session = KioskSession(id=session_id, **values)
        db_session.add(kiosk_session)
        db_session.commit()
        return kiosk_session

    return _make


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def client(
    app: FastAPI,
    accounting: AsyncMock,
    bridge: AsyncMock,
    session_factory: sessionmaker[Session],
) -> Iterator[TestClient]:
    app.dependency_overrides[dependencies.get_session_factory] = lambda: session_factory
    app.dependency_overrides[dependencies.get_accounting] = lambda: accounting
    app.dependency_overrides[dependencies.get_bridge] = lambda: bridge
    app.dependency_overrides[dependencies.get_destination_resolver] = lambda: NameResolver(
        base_url=""
    )
    try:
        with TestClient(app, base_url="http://test") as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
