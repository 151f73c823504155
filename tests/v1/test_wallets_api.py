"""Tests for PIN wallet endpoints."""

from decimal import Decimal

from fastapi import status
from fastapi.testclient import TestClient

from kiosk_settlement.db.time import utcnow

from conftest import DESTINATION

URL = "/api/v1/wallets"


def test_create_and_list_wallet(client: TestClient) -> None:
    r = client.post(URL, json={"amount": "3.50"})
    assert r.status_code == status.HTTP_201_CREATED
    created = r.json()
    assert len(created["pin"]) == 6
    assert Decimal(created["amount"]) == Decimal("3.50")

    r = client.get(URL)
    assert r.status_code == status.HTTP_200_OK
    [wallet] = r.json()
    assert wallet["id"] == created["wallet_id"]
    assert wallet["status"] == "PENDING"
    assert "pin_hash" not in wallet


def test_claim_flow(client: TestClient, make_wallet) -> None:
    make_wallet("1A2B3C", pin="123456", amount="1.00")
    body = {"pin": "000000", "destination": DESTINATION, "target_chain": "base"}

    r = client.post(f"{URL}/1A2B3C/claim", json=body)
    assert r.status_code == status.HTTP_403_FORBIDDEN

    r = client.post(f"{URL}/1A2B3C/claim", json={**body, "pin": "123456"})
    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["success"] is True
    assert "Base Sepolia" in data["message"]

    r = client.post(f"{URL}/1A2B3C/claim", json={**body, "pin": "123456"})
    assert r.status_code == status.HTTP_403_FORBIDDEN


def test_claim_unknown_wallet(client: TestClient) -> None:
    body = {"pin": "123456", "destination": DESTINATION, "target_chain": "base"}
    r = client.post(f"{URL}/DDDDDD/claim", json=body)
    assert r.status_code == status.HTTP_403_FORBIDDEN


def test_claim_rejects_malformed_pin(client: TestClient, make_wallet) -> None:
    make_wallet()
    body = {"pin": "12ab56", "destination": DESTINATION, "target_chain": "base"}
    r = client.post(f"{URL}/1A2B3C/claim", json=body)
    assert r.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_claim_in_progress_conflicts(client: TestClient, make_wallet, bridge) -> None:
    make_wallet(claim_token="a" * 32, claim_started_at=utcnow())
    body = {"pin": "123456", "destination": DESTINATION, "target_chain": "base"}

    r = client.post(f"{URL}/1A2B3C/claim", json=body)

    assert r.status_code == status.HTTP_409_CONFLICT
    bridge.bridge.assert_not_awaited()


def test_summary_and_retry(client: TestClient, make_wallet) -> None:
    make_wallet("AAAAAA", amount="2.00")
    make_wallet(
        "BBBBBB",
        amount="3.00",
        status="PENDING_BRIDGE",
        destination=DESTINATION,
        target_chain="base",
        bridge_attempts=1,
    )

    r = client.get(f"{URL}/summary")
    assert r.status_code == status.HTTP_200_OK
    summary = r.json()
    assert summary["pending"] == 1
    assert summary["pending_bridge"] == 1
    assert Decimal(summary["total_value"]) == Decimal("5.00")

    r = client.post(f"{URL}/retry")
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {
        "attempted": 1,
        "succeeded": 1,
        "failed": 0,
        "still_pending": 0,
        "skipped": 0,
    }

    summary = client.get(f"{URL}/summary").json()
    assert summary["settled"] == 1
    assert summary["pending_bridge"] == 0
