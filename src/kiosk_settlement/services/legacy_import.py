"""One-shot import of the flat JSON stores (``pin-wallets.json``, ``sessions.json``).

A missing file imports nothing. A file that cannot be parsed is renamed to
``<name>.corrupt-<timestamp>`` and reported; it is never replaced by an empty
collection.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from kiosk_settlement.core.security import legacy_pin_hash
from kiosk_settlement.db.session import SessionLocal
from kiosk_settlement.models.kiosk_session import SESSION_STATUSES, KioskSession
from kiosk_settlement.models.pin_wallet import (
    WALLET_STATUS_PENDING,
    WALLET_STATUS_PENDING_BRIDGE,
    WALLET_STATUSES,
    PinWallet,
)
from kiosk_settlement.repositories.pin_wallet_repo import commit_or_conflict
from kiosk_settlement.services.chains import get_chain_by_key
from kiosk_settlement.services.errors import SettlementError
from kiosk_settlement.services.fees import FeeBreakdown
from kiosk_settlement.services.settlement import SessionFactory

logger = logging.getLogger(__name__)

PIN_WALLET_FILE = "pin-wallets.json"
SESSION_FILE = "sessions.json"


class LegacyStoreCorruptError(SettlementError):
    """Raised when a legacy store exists but cannot be parsed."""

    def __init__(self, path: Path, quarantined_to: Path, reason: str) -> None:
        super().__init__(f"{path} is corrupt ({reason}); moved to {quarantined_to}")
        self.path = path
        self.quarantined_to = quarantined_to


@dataclass(frozen=True)
class ImportReport:
    wallets_imported: int = 0
    wallets_skipped: int = 0
    sessions_imported: int = 0
    sessions_skipped: int = 0


def _from_millis(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=UTC)


def _decimal(value: Any, default: str | None = None) -> Decimal | None:
    if value in (None, ""):
        return Decimal(default) if default is not None else None
    return Decimal(str(value))


def quarantine(path: Path, now: datetime | None = None) -> Path:
    """Rename ``path`` out of the way and return its new location."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%dT%H%M%S")
    target = path.with_name(f"{path.name}.corrupt-{stamp}")
    path.rename(target)
    return target


def load_legacy_records(path: Path) -> list[Mapping[str, Any]]:
    """Return the records in a legacy JSON array file.

    Raises:
        LegacyStoreCorruptError: If the file is unreadable or not an array of
            objects; the file has been quarantined when this is raised.
    """
    if not path.exists():
        logger.info("No legacy store at %s", path)
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, list) or not all(isinstance(r, Mapping) for r in data):
            raise ValueError("expected a JSON array of objects")
    except (OSError, ValueError) as exc:
        target = quarantine(path)
        logger.error("Legacy store %s is corrupt, quarantined to %s: %s", path, target, exc)
        raise LegacyStoreCorruptError(path, target, str(exc)) from exc
    return data


def wallet_from_record(record: Mapping[str, Any]) -> PinWallet:
    """Build a ``PinWallet`` from one legacy JSON object.

    A wallet routed to a chain that is no longer supported loses its route and
    becomes PENDING, so only the PIN holder can settle it to a new destination.
    """
    status = str(record.get("status") or "PENDING")
    if status not in WALLET_STATUSES:
        raise ValueError(f"unknown status {status!r}")
    destination = record.get("destination")
    target_chain = record.get("targetChain")
    if target_chain and get_chain_by_key(str(target_chain)) is None:
        logger.warning(
            "Legacy PIN wallet %s targets unsupported chain %r; dropping its route",
            record.get("id"),
            target_chain,
        )
        destination = target_chain = None
        if status == WALLET_STATUS_PENDING_BRIDGE:
            status = WALLET_STATUS_PENDING
    return PinWallet(
        id=str(record["id"]),
        pin_hash=legacy_pin_hash(str(record["pinHash"])),
        amount=_decimal(record["amount"]),
        created_at=_from_millis(record.get("createdAt")) or datetime.now(UTC),
        destination=destination,
        target_chain=target_chain,
        status=status,
        bridge_attempts=int(record.get("bridgeAttempts") or 0),
        last_bridge_error=record.get("lastBridgeError"),
        last_bridge_attempt=_from_millis(record.get("lastBridgeAttempt")),
        bridge_tx_hash=record.get("bridgeTxHash"),
        settled_at=_from_millis(record.get("settledAt")),
        pin_failures=0,
    )


def session_from_record(record: Mapping[str, Any]) -> KioskSession:
    """Build a ``KioskSession`` from one legacy JSON object."""
    status = str(record.get("status") or "ACTIVE")
    if status not in SESSION_STATUSES:
        raise ValueError(f"unknown status {status!r}")
    started_at = _from_millis(record.get("startedAt")) or datetime.now(UTC)
    kiosk_session = KioskSession(
        id=str(record["id"]),
        channel_id=record.get("channelId"),
        user_identifier=record.get("userIdentifier"),
        total_deposited=_decimal(record.get("totalDeposited"), "0"),
        current_balance=_decimal(record.get("currentBalance"), "0"),
        started_at=started_at,
        last_activity_at=_from_millis(record.get("lastActivityAt")) or started_at,
        ended_at=_from_millis(record.get("endedAt")),
        status=status,
        destination_address=record.get("destinationAddress"),
        destination_chain=record.get("destinationChain"),
        bridge_tx_hash=record.get("bridgeTxHash"),
        error=record.get("error"),
    )
    fee = record.get("fee")
    if isinstance(fee, Mapping):
        kiosk_session.fee = FeeBreakdown(
            gross_amount=_decimal(fee.get("grossAmount"), "0"),
            fee=_decimal(fee.get("fee"), "0"),
            net_amount=_decimal(fee.get("netAmount"), "0"),
        )
    return kiosk_session


def import_legacy_stores(
    directory: Path | str,
    session_factory: SessionFactory = SessionLocal,
) -> ImportReport:
    """Import both legacy stores from ``directory``.

    Records whose id already exists, or that cannot be interpreted, are
    skipped and logged.

    Raises:
        LegacyStoreCorruptError: If either file cannot be parsed.
    """
    base = Path(directory)
    wallet_records = load_legacy_records(base / PIN_WALLET_FILE)
    session_records = load_legacy_records(base / SESSION_FILE)

    wallets_imported = wallets_skipped = 0
    sessions_imported = sessions_skipped = 0
    with session_factory() as db:
        for record in wallet_records:
            try:
                wallet = wallet_from_record(record)
            except (KeyError, ValueError, TypeError, InvalidOperation) as exc:
                logger.warning("Skipping legacy PIN wallet %s: %s", record.get("id"), exc)
                wallets_skipped += 1
                continue
            if db.get(PinWallet, wallet.id) is not None:
                logger.info("PIN wallet %s already present, skipping", wallet.id)
                wallets_skipped += 1
                continue
            db.add(wallet)
            db.flush()
            wallets_imported += 1

        for record in session_records:
            try:
                kiosk_session = session_from_record(record)
            except (KeyError, ValueError, TypeError, InvalidOperation) as exc:
                logger.warning("Skipping legacy session %s: %s", record.get("id"), exc)
                sessions_skipped += 1
                continue
            if db.get(KioskSession, kiosk_session.id) is not None:
                logger.info("Session %s already present, skipping", kiosk_session.id)
                sessions_skipped += 1
                continue
            db.add(kiosk_session)
            db.flush()
            sessions_imported += 1

        commit_or_conflict(db)

    logger.info(
        "Legacy import: %d wallets (%d skipped), %d sessions (%d skipped)",
        wallets_imported,
        wallets_skipped,
        sessions_imported,
        sessions_skipped,
    )
    return ImportReport(
        wallets_imported=wallets_imported,
        wallets_skipped=wallets_skipped,
        sessions_imported=sessions_imported,
        sessions_skipped=sessions_skipped,
    )
