"""Multi-deposit kiosk sessions.

A session accumulates cash deposits against one accounting channel and ends
either with a bridge transfer (``end_session``) or by handing the balance to a
new PIN wallet (``session_to_pin``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from kiosk_settlement.core.settings import settings
from kiosk_settlement.db.session import SessionLocal
from kiosk_settlement.db.time import as_utc, utcnow
from kiosk_settlement.models.kiosk_session import (
    SESSION_STATUS_ACTIVE,
    SESSION_STATUS_FAILED,
    SESSION_STATUS_SETTLED,
    SESSION_STATUS_SETTLING,
    KioskSession,
)
from kiosk_settlement.repositories.pin_wallet_repo import commit_or_conflict
from kiosk_settlement.repositories.session_repo import SessionRepository, SessionSummary
from kiosk_settlement.services.chains import get_chain_by_key, require_chain
from kiosk_settlement.services.clients import (
    AccountingClient,
    BridgeClient,
    BridgeResult,
    ensure_authenticated,
    with_timeout,
)
from kiosk_settlement.services.errors import ConcurrentUpdateError, InputError, NotFoundError
from kiosk_settlement.services.fees import FeeBreakdown, calculate_fee, parse_amount, to_micro_units
from kiosk_settlement.services.settlement import SessionFactory, SettlementOrchestrator

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
DEPOSIT_WRITE_ATTEMPTS = 3


@dataclass(frozen=True)
class SessionStartResult:
    success: bool
    session_id: str
    channel_id: str | None
    message: str


@dataclass(frozen=True)
class DepositResult:
    success: bool
    new_balance: Decimal
    total_deposited: Decimal
    message: str
    channel_synced: bool = True


@dataclass(frozen=True)
class SessionEndResult:
    success: bool
    message: str
    settled_amount: Decimal | None = None
    fee: FeeBreakdown | None = None
    bridge_result: BridgeResult | None = None
    destination_chain: str | None = None


@dataclass(frozen=True)
class SessionPinResult:
    success: bool
    message: str
    wallet_id: str | None = None
    pin: str | None = None
    amount: Decimal | None = None


def _to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_deposit_amount(value) -> Decimal:
    """Return a positive deposit amount in whole cents.

    Raises:
        InputError: If the amount is invalid or has fractional cents.
    """
    amount = parse_amount(value)
    if amount != _to_cents(amount):
        raise InputError(f"Deposit {value!r} is not a whole number of cents")
    return _to_cents(amount)


class SessionManager:
    """Accumulates deposits on a session and completes it exactly once."""

    def __init__(
        self,
        accounting: AccountingClient,
        bridge: BridgeClient,
        orchestrator: SettlementOrchestrator,
        session_factory: SessionFactory = SessionLocal,
        *,
        kiosk_address: str | None = None,
        fee_recipient: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.accounting = accounting
        self.bridge = bridge
        self.orchestrator = orchestrator
        self._session_factory = session_factory
        self.kiosk_address = kiosk_address or settings.kiosk_address
        self.fee_recipient = (
            fee_recipient if fee_recipient is not None else settings.fee_recipient_address
        )
        self.timeout = timeout or settings.external_call_timeout_seconds

    async def start_session(self, user_identifier: str | None = None) -> SessionStartResult:
        """Open a session and its accounting channel.

        A channel failure still yields an ACTIVE session; deposits then only
        update local balances.
        """
        channel_id: str | None = None
        error: str | None = None
        try:
            await ensure_authenticated(self.accounting, self.timeout)
            channel_id = await with_timeout(
                self.accounting.create_channel(
                    settings.accounting_token_address, settings.accounting_chain_id
                ),
                self.timeout,
                "accounting create_channel",
            )
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.warning("Session channel could not be opened: %s", error)

        now = utcnow()
        with self._session_factory() as db:
            repo = SessionRepository(db)
            kiosk_session = repo.add(
                KioskSession(
                    id=repo.new_session_id(),
                    channel_id=channel_id,
                    user_identifier=user_identifier,
                    total_deposited=Decimal("0"),
                    current_balance=Decimal("0"),
                    started_at=now,
                    last_activity_at=now,
                    status=SESSION_STATUS_ACTIVE,
                    error=error,
                )
            )
            session_id = kiosk_session.id
            commit_or_conflict(db)

        logger.info("Session %s started (channel=%s)", session_id, channel_id or "none")
        if error:
            return SessionStartResult(
                success=True,
                session_id=session_id,
                channel_id=None,
                message=f"Session {session_id} started without a channel: {error}",
            )
        return SessionStartResult(
            success=True,
            session_id=session_id,
            channel_id=channel_id,
            message=f"Session {session_id} started",
        )

    async def deposit_to_session(self, session_id: str, amount) -> DepositResult:
        """Add a cash deposit to an ACTIVE session.

        The channel resize is best effort; local balances always advance.

        Raises:
            InputError: On a non-positive or malformed amount.
            NotFoundError: If the session is unknown or no longer ACTIVE.
        """
        deposit = parse_deposit_amount(amount)
        kiosk_session = self._require_active(session_id)

        resize_error: str | None = None
        if kiosk_session.channel_id:
            try:
                await ensure_authenticated(self.accounting, self.timeout)
                await with_timeout(
                    self.accounting.resize_channel(
                        kiosk_session.channel_id,
                        to_micro_units(deposit),
                        self.kiosk_address,
                    ),
                    self.timeout,
                    "accounting resize_channel",
                )
            except Exception as exc:
                resize_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "Channel resize failed for session %s, keeping local balance: %s",
                    session_id,
                    resize_error,
                )

        balance, total = self._apply_deposit(session_id, deposit, resize_error)
        logger.info("Session %s deposit %s, balance %s", session_id, deposit, balance)
        return DepositResult(
            success=True,
            new_balance=balance,
            total_deposited=total,
            channel_synced=resize_error is None,
            message=f"Deposited {deposit} USDC, balance {balance} USDC",
        )

    async def end_session(
        self,
        session_id: str,
        destination: str,
        target_chain: str,
    ) -> SessionEndResult:
        """Settle the session balance to ``destination`` on ``target_chain``.

        No PIN wallet is created on failure; a FAILED session keeps its
        balance for manual recovery.

        Raises:
            InputError: On an unsupported chain or an empty balance.
            NotFoundError: If the session is unknown or no longer ACTIVE.
            ConcurrentUpdateError: If another caller is ending the same session.
        """
        chain = require_chain(target_chain)
        with self._session_factory() as db:
            kiosk_session = self._load_active(db, session_id)
            if kiosk_session.current_balance <= 0:
                raise InputError(f"Session {session_id} has no balance to settle")
            fee = calculate_fee(kiosk_session.current_balance)
            kiosk_session.status = SESSION_STATUS_SETTLING
            kiosk_session.destination_address = destination
            kiosk_session.destination_chain = chain.key
            kiosk_session.fee = fee
            kiosk_session.last_activity_at = utcnow()
            channel_id = kiosk_session.channel_id
            commit_or_conflict(db)

        logger.info("Session %s settling %s USDC to %s", session_id, fee.gross_amount, chain.name)
        try:
            if channel_id:
                await ensure_authenticated(self.accounting, self.timeout)
                exists = await with_timeout(
                    self.accounting.channel_exists(channel_id),
                    self.timeout,
                    "accounting channel_exists",
                )
                if exists:
                    await with_timeout(
                        self.accounting.close_channel(channel_id, self.kiosk_address),
                        self.timeout,
                        "accounting close_channel",
                    )
            result = await with_timeout(
                self.bridge.bridge(
                    destination,
                    chain.key,
                    fee.net_amount,
                    fee=fee.fee,
                    fee_recipient=self.fee_recipient,
                ),
                self.timeout,
                "bridge transfer",
            )
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.error("Session %s settlement failed: %s", session_id, error, exc_info=True)
            self._finish_settling(session_id, None, error)
            return SessionEndResult(
                success=False,
                settled_amount=fee.gross_amount,
                fee=fee,
                destination_chain=chain.name,
                message=f"Settlement failed: {error}",
            )

        if not result.success:
            error = result.error or "bridge reported failure"
            self._finish_settling(session_id, None, error)
            return SessionEndResult(
                success=False,
                settled_amount=fee.gross_amount,
                fee=fee,
                bridge_result=result,
                destination_chain=chain.name,
                message=f"Bridge failed: {error}",
            )

        self._finish_settling(session_id, result.tx_hash, None)
        return SessionEndResult(
            success=True,
            settled_amount=fee.gross_amount,
            fee=fee,
            bridge_result=result,
            destination_chain=chain.name,
            message=f"Sent {fee.net_amount} USDC to {chain.name}",
        )

    async def session_to_pin(self, session_id: str) -> SessionPinResult:
        """Hand the session balance to a new PIN wallet.

        The session leaves ACTIVE before the channel is closed, so later
        deposits and a second hand-off are rejected. It becomes SETTLED once
        the wallet exists; delivery of the funds is then governed by the
        wallet.

        Raises:
            InputError: If the session has no balance.
            NotFoundError: If the session is unknown or no longer ACTIVE.
            ConcurrentUpdateError: If another caller changed the session first.
        """
        with self._session_factory() as db:
            kiosk_session = self._load_active(db, session_id)
            if kiosk_session.current_balance <= 0:
                raise InputError(f"Session {session_id} has no balance to convert")
            balance = kiosk_session.current_balance
            channel_id = kiosk_session.channel_id
            kiosk_session.status = SESSION_STATUS_SETTLING
            kiosk_session.last_activity_at = utcnow()
            commit_or_conflict(db)

        close_error: str | None = None
        if channel_id:
            try:
                await ensure_authenticated(self.accounting, self.timeout)
                await with_timeout(
                    self.accounting.close_channel(channel_id, self.kiosk_address),
                    self.timeout,
                    "accounting close_channel",
                )
            except Exception as exc:
                close_error = str(exc) or exc.__class__.__name__
                logger.warning("Session %s channel close failed: %s", session_id, close_error)

        try:
            created = self.orchestrator.create_pin_wallet(balance)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.error("PIN wallet creation failed for session %s", session_id, exc_info=True)
            with self._session_factory() as db:
                kiosk_session = self._load_settling(db, session_id)
                kiosk_session.status = SESSION_STATUS_FAILED
                kiosk_session.error = error
                kiosk_session.ended_at = utcnow()
                commit_or_conflict(db)
            return SessionPinResult(success=False, message=f"Could not create PIN wallet: {error}")

        with self._session_factory() as db:
            kiosk_session = self._load_settling(db, session_id)
            kiosk_session.status = SESSION_STATUS_SETTLED
            kiosk_session.pin_wallet_id = created.wallet.id
            kiosk_session.current_balance = Decimal("0.00")
            kiosk_session.ended_at = utcnow()
            kiosk_session.last_activity_at = kiosk_session.ended_at
            if close_error:
                kiosk_session.error = f"channel close failed: {close_error}"
            commit_or_conflict(db)

        logger.info("Session %s converted to PIN wallet %s", session_id, created.wallet.id)
        return SessionPinResult(
            success=True,
            wallet_id=created.wallet.id,
            pin=created.pin,
            amount=balance,
            message=f"Balance of {balance} USDC moved to PIN wallet {created.wallet.id}",
        )

    def get_session(self, session_id: str) -> KioskSession:
        with self._session_factory() as db:
            kiosk_session = SessionRepository(db).get(session_id)
        if kiosk_session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return kiosk_session

    def get_active_sessions(self) -> list[KioskSession]:
        with self._session_factory() as db:
            return SessionRepository(db).list_active()

    def get_all_sessions(self) -> list[KioskSession]:
        with self._session_factory() as db:
            return SessionRepository(db).list_all()

    def get_session_summary(self) -> SessionSummary:
        with self._session_factory() as db:
            return SessionRepository(db).summary()

    def _require_active(self, session_id: str) -> KioskSession:
        with self._session_factory() as db:
            return self._load_active(db, session_id)

    @staticmethod
    def _load_active(db: Session, session_id: str) -> KioskSession:
        kiosk_session = SessionRepository(db).get_active(session_id)
        if kiosk_session is None:
            raise NotFoundError(f"Session {session_id} not found or not active")
        return kiosk_session

    @staticmethod
    def _load_settling(db: Session, session_id: str) -> KioskSession:
        kiosk_session = SessionRepository(db).get(session_id)
        if kiosk_session is None or kiosk_session.status != SESSION_STATUS_SETTLING:
            raise NotFoundError(f"Session {session_id} is no longer settling")
        return kiosk_session

    def _apply_deposit(
        self,
        session_id: str,
        deposit: Decimal,
        resize_error: str | None,
    ) -> tuple[Decimal, Decimal]:
        # A version conflict is retried against fresh state.
        for attempt in range(1, DEPOSIT_WRITE_ATTEMPTS + 1):
            with self._session_factory() as db:
                kiosk_session = self._load_active(db, session_id)
                kiosk_session.current_balance = _to_cents(kiosk_session.current_balance + deposit)
                kiosk_session.total_deposited = _to_cents(kiosk_session.total_deposited + deposit)
                kiosk_session.last_activity_at = utcnow()
                if resize_error:
                    kiosk_session.error = f"channel resize failed: {resize_error}"
                balance = kiosk_session.current_balance
                total = kiosk_session.total_deposited
                try:
                    commit_or_conflict(db)
                except ConcurrentUpdateError:
                    if attempt == DEPOSIT_WRITE_ATTEMPTS:
                        raise
                    logger.info("Deposit on session %s raced another writer, retrying", session_id)
                    continue
            return balance, total
        raise ConcurrentUpdateError(f"Session {session_id} deposit could not be written")

    def _finish_settling(self, session_id: str, tx_hash: str | None, error: str | None) -> None:
        now = utcnow()
        with self._session_factory() as db:
            kiosk_session = self._load_settling(db, session_id)
            if error is None:
                kiosk_session.status = SESSION_STATUS_SETTLED
                kiosk_session.bridge_tx_hash = tx_hash
                kiosk_session.current_balance = Decimal("0.00")
                kiosk_session.error = None
                logger.info("Session %s settled (tx=%s)", session_id, tx_hash)
            else:
                kiosk_session.status = SESSION_STATUS_FAILED
                kiosk_session.error = error
                logger.warning("Session %s failed: %s", session_id, error)
            kiosk_session.ended_at = now
            kiosk_session.last_activity_at = now
            commit_or_conflict(db)


def format_session(kiosk_session: KioskSession) -> str:
    """Render a session for terminal display."""
    started = as_utc(kiosk_session.started_at)
    lines = [
        f"Session: {kiosk_session.id}",
        f"Status: {kiosk_session.status}",
        f"Balance: {kiosk_session.current_balance} USDC",
        f"Total deposited: {kiosk_session.total_deposited} USDC",
        f"Started: {started.isoformat() if started else '-'}",
    ]
    if kiosk_session.channel_id:
        lines.append(f"Channel: {kiosk_session.channel_id}")
    if kiosk_session.destination_address:
        chain = get_chain_by_key(kiosk_session.destination_chain or "")
        chain_name = chain.name if chain else kiosk_session.destination_chain
        lines.append(f"Destination: {kiosk_session.destination_address} ({chain_name})")
    if kiosk_session.bridge_tx_hash:
        lines.append(f"Tx: {kiosk_session.bridge_tx_hash}")
    if kiosk_session.pin_wallet_id:
        lines.append(f"PIN wallet: {kiosk_session.pin_wallet_id}")
    if kiosk_session.error:
        lines.append(f"Error: {kiosk_session.error}")
    return "\n".join(lines)
