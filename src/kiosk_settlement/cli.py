"""Command-line interface for kiosk operators.

Usage examples::

    kiosk-settlement settle 0xabc... base 5.00
    kiosk-settlement pin-claim 4A7C21 123456 alice.eth polygon
    kiosk-settlement session-start --user alice.eth
    kiosk-settlement retry

Exit status is 0 for every handled business outcome, including a failed
settlement or a rejected PIN, and 1 for unexpected faults.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass

from kiosk_settlement.core.log import configure_logging
from kiosk_settlement.db.session import SessionLocal, create_tables
from kiosk_settlement.db.time import as_utc
from kiosk_settlement.services.balances import BalanceAggregator, format_balances
from kiosk_settlement.services.bridge import get_bridge_client
from kiosk_settlement.services.chains import format_chain_list, get_chain_by_key
from kiosk_settlement.services.clearnode import get_accounting_client
from kiosk_settlement.services.errors import SettlementError
from kiosk_settlement.services.fees import format_fee_breakdown
from kiosk_settlement.services.legacy_import import import_legacy_stores
from kiosk_settlement.services.resolver import NameResolver, get_resolver
from kiosk_settlement.services.sessions import SessionManager, format_session
from kiosk_settlement.services.settlement import SettlementOrchestrator, SettlementResult

logger = logging.getLogger(__name__)


@dataclass
class Services:
    orchestrator: SettlementOrchestrator
    sessions: SessionManager
    balances: BalanceAggregator
    resolver: NameResolver


def build_services() -> Services:
    """Wire services to the configured HTTP adapters and the local database."""
    accounting = get_accounting_client()
    bridge = get_bridge_client()
    orchestrator = SettlementOrchestrator(accounting, bridge, SessionLocal)
    return Services(
        orchestrator=orchestrator,
        sessions=SessionManager(accounting, bridge, orchestrator, SessionLocal),
        balances=BalanceAggregator(accounting, bridge),
        resolver=get_resolver(),
    )


def say(msg: str) -> None:
    print(msg)


def _print_settlement(result: SettlementResult) -> None:
    if result.fee is not None and result.destination_chain:
        say(format_fee_breakdown(result.fee, result.destination_chain))
    say(result.message)
    bridge = result.bridge_result
    if bridge is not None and bridge.tx_hash:
        say(f"Tx: {bridge.tx_hash}")
        if bridge.explorer_url:
            say(f"Explorer: {bridge.explorer_url}")
    if result.fallback_pin:
        say("")
        say("Your funds are safe. Keep these to claim later:")
        say(f"  Wallet ID: {result.fallback_id}")
        say(f"  PIN:       {result.fallback_pin}")


async def cmd_settle(services: Services, args: argparse.Namespace) -> None:
    destination = await services.resolver.resolve(args.destination)
    result = await services.orchestrator.settle_to_chain(destination, args.chain, args.amount)
    _print_settlement(result)


async def cmd_pin_create(services: Services, args: argparse.Namespace) -> None:
    created = services.orchestrator.create_pin_wallet(args.amount)
    say(f"Wallet ID: {created.wallet.id}")
    say(f"PIN:       {created.pin}")
    say(f"Amount:    {created.wallet.amount} USDC")


async def cmd_pin_claim(services: Services, args: argparse.Namespace) -> None:
    destination = await services.resolver.resolve(args.destination)
    result = await services.orchestrator.claim_pin_wallet(
        args.wallet_id, args.pin, destination, args.chain
    )
    _print_settlement(result)


async def cmd_pin_list(services: Services, args: argparse.Namespace) -> None:
    wallets = services.orchestrator.list_wallets()
    if not wallets:
        say("No PIN wallets")
        return
    for wallet in wallets:
        chain = wallet.target_chain or "-"
        say(
            f"{wallet.id}  {wallet.status:<14} {wallet.amount:>12} USDC  "
            f"chain={chain} attempts={wallet.bridge_attempts}"
        )
    summary = services.orchestrator.get_pending_wallets_summary()
    say(
        f"\nPending: {summary.pending}  Pending bridge: {summary.pending_bridge}  "
        f"Settled: {summary.settled}  Failed: {summary.failed}  "
        f"Owed: {summary.total_value:.2f} USDC"
    )


async def cmd_retry(services: Services, args: argparse.Namespace) -> None:
    summary = await services.orchestrator.retry_pending_bridges()
    say(
        f"Attempted: {summary.attempted}  Settled: {summary.succeeded}  "
        f"Failed: {summary.failed}  Still pending: {summary.still_pending}  "
        f"Skipped: {summary.skipped}"
    )


async def cmd_session_start(services: Services, args: argparse.Namespace) -> None:
    result = await services.sessions.start_session(args.user)
    say(result.message)
    say(f"Session ID: {result.session_id}")


async def cmd_session_deposit(services: Services, args: argparse.Namespace) -> None:
    result = await services.sessions.deposit_to_session(args.session_id, args.amount)
    say(result.message)
    if not result.channel_synced:
        say("Warning: channel not updated, balance kept locally")


async def cmd_session_end(services: Services, args: argparse.Namespace) -> None:
    destination = await services.resolver.resolve(args.destination)
    result = await services.sessions.end_session(args.session_id, destination, args.chain)
    if result.fee is not None and result.destination_chain:
        say(format_fee_breakdown(result.fee, result.destination_chain))
    say(result.message)
    if result.bridge_result is not None and result.bridge_result.tx_hash:
        say(f"Tx: {result.bridge_result.tx_hash}")


async def cmd_session_pin(services: Services, args: argparse.Namespace) -> None:
    result = await services.sessions.session_to_pin(args.session_id)
    say(result.message)
    if result.success:
        say(f"Wallet ID: {result.wallet_id}")
        say(f"PIN:       {result.pin}")


async def cmd_session_show(services: Services, args: argparse.Namespace) -> None:
    say(format_session(services.sessions.get_session(args.session_id)))


async def cmd_sessions(services: Services, args: argparse.Namespace) -> None:
    sessions = (
        services.sessions.get_active_sessions()
        if args.active
        else services.sessions.get_all_sessions()
    )
    if not sessions:
        say("No sessions")
        return
    for kiosk_session in sessions:
        started = as_utc(kiosk_session.started_at)
        say(
            f"{kiosk_session.id}  {kiosk_session.status:<9} "
            f"{kiosk_session.current_balance:>10} USDC  {started:%Y-%m-%d %H:%M}"
        )
    summary = services.sessions.get_session_summary()
    say(
        f"\nActive: {summary.active}  Settling: {summary.settling}  "
        f"Settled: {summary.settled}  Failed: {summary.failed}  "
        f"Held: {summary.total_active_value:.2f} USDC"
    )


async def cmd_balance(services: Services, args: argparse.Namespace) -> None:
    say(format_balances(await services.balances.get_kiosk_balances()))


async def cmd_chains(services: Services, args: argparse.Namespace) -> None:
    say("Supported chains:")
    say(format_chain_list())


async def cmd_resolve(services: Services, args: argparse.Namespace) -> None:
    say(await services.resolver.resolve(args.name))


async def cmd_import_legacy(services: Services, args: argparse.Namespace) -> None:
    report = import_legacy_stores(args.directory, SessionLocal)
    say(
        f"Imported {report.wallets_imported} PIN wallets "
        f"({report.wallets_skipped} skipped), {report.sessions_imported} sessions "
        f"({report.sessions_skipped} skipped)"
    )


def _chain(value: str) -> str:
    if get_chain_by_key(value) is None:
        raise argparse.ArgumentTypeError(
            f"unsupported chain {value!r}; choose from:\n{format_chain_list()}"
        )
    return value.strip().lower()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="kiosk-settlement", description="Kiosk settlement operations")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("settle", help="Send cash to a destination chain")
    s.add_argument("destination", help="Address or name (e.g. alice.eth)")
    s.add_argument("chain", type=_chain)
    s.add_argument("amount")
    s.set_defaults(func=cmd_settle)

    s = sub.add_parser("pin-create", help="Issue a PIN wallet for later claim")
    s.add_argument("amount")
    s.set_defaults(func=cmd_pin_create)

    s = sub.add_parser("pin-claim", help="Claim a PIN wallet")
    s.add_argument("wallet_id")
    s.add_argument("pin")
    s.add_argument("destination")
    s.add_argument("chain", type=_chain)
    s.set_defaults(func=cmd_pin_claim)

    s = sub.add_parser("pin-list", help="List PIN wallets")
    s.set_defaults(func=cmd_pin_list)

    s = sub.add_parser("retry", help="Retry pending bridge transfers")
    s.set_defaults(func=cmd_retry)

    s = sub.add_parser("session-start", help="Start a deposit session")
    s.add_argument("--user", default=None, help="User identifier (ENS, address, NFC id)")
    s.set_defaults(func=cmd_session_start)

    s = sub.add_parser("session-deposit", help="Record a cash deposit")
    s.add_argument("session_id")
    s.add_argument("amount")
    s.set_defaults(func=cmd_session_deposit)

    s = sub.add_parser("session-end", help="Settle a session to a destination chain")
    s.add_argument("session_id")
    s.add_argument("destination")
    s.add_argument("chain", type=_chain)
    s.set_defaults(func=cmd_session_end)

    s = sub.add_parser("session-pin", help="Convert a session balance to a PIN wallet")
    s.add_argument("session_id")
    s.set_defaults(func=cmd_session_pin)

    s = sub.add_parser("session-show", help="Show one session")
    s.add_argument("session_id")
    s.set_defaults(func=cmd_session_show)

    s = sub.add_parser("sessions", help="List sessions")
    s.add_argument("--active", action="store_true", help="Only ACTIVE sessions")
    s.set_defaults(func=cmd_sessions)

    s = sub.add_parser("balance", help="Show accounting and liquidity balances")
    s.set_defaults(func=cmd_balance)

    s = sub.add_parser("chains", help="List supported chains")
    s.set_defaults(func=cmd_chains)

    s = sub.add_parser("resolve", help="Resolve a name to an address")
    s.add_argument("name")
    s.set_defaults(func=cmd_resolve)

    s = sub.add_parser("import-legacy", help="Import pin-wallets.json and sessions.json")
    s.add_argument("directory", nargs="?", default=".")
    s.set_defaults(func=cmd_import_legacy)

    return p


async def _run(args: argparse.Namespace, services: Services) -> None:
    try:
        await args.func(services, args)
    finally:
        await get_bridge_client().close()
        await get_accounting_client().close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        create_tables()
        asyncio.run(_run(args, build_services()))
    except SettlementError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 0
    except Exception:
        logger.exception("Command %s failed", args.command)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
