"""Tests for importing the flat JSON stores."""

import hashlib
import json
from decimal import Decimal

import pytest

from kiosk_settlement.models import KioskSession, PinWallet
from kiosk_settlement.models.pin_wallet import (
    WALLET_STATUS_PENDING,
    WALLET_STATUS_PENDING_BRIDGE,
    WALLET_STATUS_SETTLED,
)
from kiosk_settlement.services.legacy_import import (
    PIN_WALLET_FILE,
    SESSION_FILE,
    LegacyStoreCorruptError,
    import_legacy_stores,
    load_legacy_records,
)

from conftest import DESTINATION


def _wallet_record(wallet_id="4A7C21", pin="123456", **fields):
    record = {
        "id": wallet_id,
        "pinHash": hashlib.sha256(pin.encode()).hexdigest(),
        "amount": "2.5",
        "createdAt": 1_700_000_000_000,
        "status": "PENDING_BRIDGE",
        "destination": DESTINATION,
        "targetChain": "base",
        "bridgeAttempts": 1,
        "lastBridgeError": "timeout",
        "lastBridgeAttempt": 1_700_000_100_000,
    }
    record.update(fields)
    return record


def _session_record(session_id="S1A2B3C4D", **fields):
    record = {
        "id": session_id,
        "channelId": "0xchannel",
        "totalDeposited": "12.00",
        "currentBalance": "12.00",
        "startedAt": 1_700_000_000_000,
        "lastActivityAt": 1_700_000_050_000,
        "status": "FAILED",
        "destinationAddress": DESTINATION,
        "destinationChain": "polygon",
        "fee": {"grossAmount": "12", "fee": "0.00012", "netAmount": "11.99988"},
        "error": "bridge offline",
    }
    record.update(fields)
    return record


def test_missing_file_imports_nothing(tmp_path):
    assert load_legacy_records(tmp_path / PIN_WALLET_FILE) == []


@pytest.mark.parametrize("content", ["{not json", '{"id": "x"}', "[1, 2]"])
def test_corrupt_file_is_quarantined(tmp_path, content):
    path = tmp_path / PIN_WALLET_FILE
    path.write_text(content, encoding="utf-8")

    with pytest.raises(LegacyStoreCorruptError) as excinfo:
        load_legacy_records(path)

    assert not path.exists()
    assert excinfo.value.quarantined_to.exists()
    assert excinfo.value.quarantined_to.name.startswith(f"{PIN_WALLET_FILE}.corrupt-")
    assert excinfo.value.quarantined_to.read_text(encoding="utf-8") == content


def test_import_both_stores(tmp_path, session_factory, load):
    (tmp_path / PIN_WALLET_FILE).write_text(
        json.dumps([_wallet_record(), _wallet_record("BBBBBB", status="BOGUS")]),
        encoding="utf-8",
    )
    (tmp_path / SESSION_FILE).write_text(json.dumps([_session_record()]), encoding="utf-8")

    report = import_legacy_stores(tmp_path, session_factory)

    assert report.wallets_imported == 1
    assert report.wallets_skipped == 1
    assert report.sessions_imported == 1

    wallet = load(PinWallet, "4A7C21")
    assert wallet.status == WALLET_STATUS_PENDING_BRIDGE
    assert wallet.amount == Decimal("2.5")
    assert wallet.bridge_attempts == 1
    assert wallet.created_at.year == 2023

    kiosk_session = load(KioskSession, "S1A2B3C4D")
    assert kiosk_session.current_balance == Decimal("12.00")
    assert kiosk_session.fee.net_amount == Decimal("11.99988")
    assert kiosk_session.error == "bridge offline"


def test_reimport_skips_existing_records(tmp_path, session_factory):
    (tmp_path / PIN_WALLET_FILE).write_text(json.dumps([_wallet_record()]), encoding="utf-8")

    import_legacy_stores(tmp_path, session_factory)
    report = import_legacy_stores(tmp_path, session_factory)

    assert report.wallets_imported == 0
    assert report.wallets_skipped == 1


def test_duplicate_ids_in_one_file(tmp_path, session_factory):
    (tmp_path / PIN_WALLET_FILE).write_text(
        json.dumps([_wallet_record(), _wallet_record()]), encoding="utf-8"
    )

    report = import_legacy_stores(tmp_path, session_factory)

    assert report.wallets_imported == 1
    assert report.wallets_skipped == 1


@pytest.mark.asyncio
async def test_imported_wallet_is_claimable_with_original_pin(
    tmp_path, session_factory, orchestrator, bridge, load
):
    (tmp_path / PIN_WALLET_FILE).write_text(
        json.dumps([_wallet_record(pin="246810")]), encoding="utf-8"
    )
    import_legacy_stores(tmp_path, session_factory)

    result = await orchestrator.claim_pin_wallet("4A7C21", "246810", DESTINATION, "base")

    assert result.success is True
    assert load(PinWallet, "4A7C21").status == WALLET_STATUS_SETTLED
    bridge.bridge.assert_awaited_once()


def test_unsupported_chain_drops_route_but_keeps_wallet_claimable(
    tmp_path, session_factory, load
):
    (tmp_path / PIN_WALLET_FILE).write_text(
        json.dumps([_wallet_record(targetChain="fantom")]), encoding="utf-8"
    )

    report = import_legacy_stores(tmp_path, session_factory)

    assert report.wallets_imported == 1
    wallet = load(PinWallet, "4A7C21")
    assert wallet.status == WALLET_STATUS_PENDING
    assert wallet.destination is None
    assert wallet.target_chain is None
    assert wallet.amount == Decimal("2.5")
