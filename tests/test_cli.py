# tests/test_cli.py
"""Tests for the operator command line."""

import pytest

from kiosk_settlement import cli
from kiosk_settlement.services.balances import BalanceAggregator
from kiosk_settlement.services.resolver import NameResolver

from conftest import DESTINATION


@pytest.fixture
def services(orchestrator, manager, accounting, bridge, mocker):
    wired = cli.Services(
        orchestrator=orchestrator,
        sessions=manager,
        balances=BalanceAggregator(accounting, bridge, asset="ytest.usd", timeout=1.0),
        resolver=NameResolver(base_url=""),
    )
    mocker.patch("kiosk_settlement.cli.build_services", return_value=wired)
    mocker.patch("kiosk_settlement.cli.create_tables")
    return wired


def test_chains(services, capsys):
    assert cli.main(["chains"]) == 0
    out = capsys.readouterr().out
    assert "Base Sepolia (base)" in out
    assert "(arc)" not in out


def test_settle_prints_fee_breakdown(services, capsys):
    assert cli.main(["settle", DESTINATION, "base", "5.00"]) == 0
    out = capsys.readouterr().out
    assert "Transfer Summary" in out
    assert "Sent 4.999950 USDC to Base Sepolia" in out


def test_failed_settle_prints_pin(services, bridge, capsys):
    bridge.bridge.side_effect = RuntimeError("bridge offline")

    assert cli.main(["settle", DESTINATION, "base", "5"]) == 0

    out = capsys.readouterr().out
    assert "Wallet ID:" in out
    assert "PIN:" in out


def test_rejected_claim_is_reported(services, capsys):
    assert cli.main(["pin-claim", "DDDDDD", "123456", DESTINATION, "base"]) == 0
    assert "Error: Invalid wallet ID or PIN" in capsys.readouterr().err


def test_session_commands(services, capsys):
    assert cli.main(["session-start", "--user", "alice.eth"]) == 0
    session_id = capsys.readouterr().out.split("Session ID: ")[1].strip()

    assert cli.main(["session-deposit", session_id, "5.00"]) == 0
    assert "balance 5.00 USDC" in capsys.readouterr().out

    assert cli.main(["session-pin", session_id]) == 0
    out = capsys.readouterr().out
    assert "Wallet ID:" in out

    assert cli.main(["pin-list"]) == 0
    assert "PENDING" in capsys.readouterr().out


def test_unexpected_failure_exits_nonzero(services, mocker):
    mocker.patch.object(services.orchestrator, "list_wallets", side_effect=RuntimeError("boom"))
    assert cli.main(["pin-list"]) == 1


def test_unsupported_chain_is_an_argument_error(services):
    with pytest.raises(SystemExit):
        cli.main(["settle", DESTINATION, "solana", "5"])
