"""Tests for kiosk session endpoints."""

from decimal import Decimal

from fastapi import status
from fastapi.testclient import TestClient

from conftest import CHANNEL_ID, DESTINATION

URL = "/api/v1/sessions"


def test_session_lifecycle(client: TestClient, bridge) -> None:
    r = client.post(URL, json={"user_identifier": "alice.eth"})
    assert r.status_code == status.HTTP_201_CREATED
    started = r.json()
    assert started["channel_id"] == CHANNEL_ID
    session_id = started["session_id"]

    for amount in ("5.00", "2.50"):
        r = client.post(f"{URL}/{session_id}/deposits", json={"amount": amount})
        assert r.status_code == status.HTTP_200_OK
    assert r.json()["new_balance"] == "7.50"

    r = client.get(f"{URL}/{session_id}")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["current_balance"] == "7.50"
    assert r.json()["status"] == "ACTIVE"

    r = client.post(
        f"{URL}/{session_id}/end", json={"destination": DESTINATION, "target_chain": "arbitrum"}
    )
    assert r.status_code == status.HTTP_200_OK
    ended = r.json()
    assert ended["success"] is True
    assert ended["destination_chain"] == "Arbitrum Sepolia"
    assert Decimal(ended["settled_amount"]) == Decimal("7.50")

    r = client.get(f"{URL}/{session_id}")
    assert r.json()["status"] == "SETTLED"
    assert r.json()["fee"]["fee_percentage"] == "0.001%"

    r = client.post(
        f"{URL}/{session_id}/end", json={"destination": DESTINATION, "target_chain": "base"}
    )
    assert r.status_code == status.HTTP_404_NOT_FOUND
    assert bridge.bridge.await_count == 1


def test_end_empty_session_is_bad_request(client: TestClient, make_session) -> None:
    make_session(balance="0")
    r = client.post(
        f"{URL}/S0000AAAA/end", json={"destination": DESTINATION, "target_chain": "base"}
    )
    assert r.status_code == status.HTTP_400_BAD_REQUEST


def test_unknown_session(client: TestClient) -> None:
    assert client.get(f"{URL}/SFFFFFFFF").status_code == status.HTTP_404_NOT_FOUND
    r = client.post(f"{URL}/SFFFFFFFF/deposits", json={"amount": "1"})
    assert r.status_code == status.HTTP_404_NOT_FOUND


def test_session_to_pin(client: TestClient, make_session) -> None:
    make_session(balance="4.00")

    r = client.post(f"{URL}/S0000AAAA/pin")

    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["success"] is True
    assert len(data["pin"]) == 6

    wallets = client.get("/api/v1/wallets").json()
    assert [w["id"] for w in wallets] == [data["wallet_id"]]
    assert client.get(f"{URL}/S0000AAAA").json()["pin_wallet_id"] == data["wallet_id"]


def test_list_and_summary(client: TestClient, make_session) -> None:
    make_session("S00000001", balance="1.00")
    make_session("S00000002", balance="0", status="SETTLED")

    assert len(client.get(URL).json()) == 2
    active = client.get(URL, params={"active": "true"}).json()
    assert [s["id"] for s in active] == ["S00000001"]

    summary = client.get(f"{URL}/summary").json()
    assert summary["active"] == 1
    assert summary["settled"] == 1
    assert Decimal(summary["total_active_value"]) == Decimal("1.00")
