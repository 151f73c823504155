"""Settlement orchestration: accounting channel, bridge transfer and PIN recovery.

Every settlement follows the same protocol regardless of how it was started
(direct settlement, PIN claim or retry sweep):

1. The PIN wallet is persisted in a claimable state *before* any external
   call, so a crash or failure never loses the customer's value.
2. The accounting channel is opened, the net amount is bridged, and the
   channel is closed on a best-effort basis.
3. The outcome is written back to the PIN wallet in a fresh database session,
   guarded by the wallet's version column.

Remote failures are captured into the wallet and returned as structured
results. Only input, authorization, concurrency and storage failures raise.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from kiosk_settlement.core.security import generate_claim_token, generate_pin, hash_pin, verify_pin
from kiosk_settlement.core.settings import settings
from kiosk_settlement.db.session import SessionLocal
from kiosk_settlement.db.time import utcnow
from kiosk_settlement.models.pin_wallet import (
    WALLET_STATUS_FAILED,
    WALLET_STATUS_PENDING_BRIDGE,
    PinWallet,
)
from kiosk_settlement.repositories.pin_wallet_repo import (
    PinWalletRepository,
    WalletSummary,
    commit_or_conflict,
)
from kiosk_settlement.services.bridge import get_bridge_client
from kiosk_settlement.services.chains import ChainInfo, get_chain_by_key, require_chain
from kiosk_settlement.services.clearnode import get_accounting_client
from kiosk_settlement.services.clients import (
    AccountingClient,
    BridgeClient,
    BridgeResult,
    ensure_authenticated,
    with_timeout,
)
from kiosk_settlement.services.errors import (
    AuthorizationError,
    ClaimInProgressError,
    NotFoundError,
    TerminalError,
)
from kiosk_settlement.services.fees import FeeBreakdown, calculate_fee, parse_token_amount
from kiosk_settlement.services.retry_policy import RetryPolicy, load_retry_policy

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of one settlement or claim attempt."""

    success: bool
    accounting_recorded: bool
    bridge_attempted: bool
    message: str
    bridge_result: BridgeResult | None = None
    fee: FeeBreakdown | None = None
    destination_chain: str | None = None
    fallback_id: str | None = None
    fallback_pin: str | None = None


@dataclass(frozen=True)
class RetrySummary:
    """Counts produced by one pass of the retry sweep."""

    attempted: int
    succeeded: int
    failed: int
    still_pending: int
    skipped: int = 0


@dataclass(frozen=True)
class CreatedPinWallet:
    """A freshly issued PIN wallet and the plaintext PIN shown to the customer once."""

    wallet: PinWallet
    pin: str


@dataclass(frozen=True)
class _Attempt:
    bridge_result: BridgeResult | None
    error: str | None
    accounting_recorded: bool
    bridge_attempted: bool

    @property
    def succeeded(self) -> bool:
        return self.bridge_result is not None and self.bridge_result.success


class SettlementOrchestrator:
    """Drives value from the kiosk to a destination chain with a PIN fallback."""

    def __init__(
        self,
        accounting: AccountingClient,
        bridge: BridgeClient,
        session_factory: SessionFactory = SessionLocal,
        policy: RetryPolicy | None = None,
        *,
        kiosk_address: str | None = None,
        fee_recipient: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.accounting = accounting
        self.bridge = bridge
        self._session_factory = session_factory
        self.policy = policy or load_retry_policy()
        self.kiosk_address = kiosk_address or settings.kiosk_address
        self.fee_recipient = (
            fee_recipient if fee_recipient is not None else settings.fee_recipient_address
        )
        self.timeout = timeout or settings.external_call_timeout_seconds

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def settle_to_chain(
        self,
        destination: str,
        target_chain: str,
        amount: Decimal | str,
    ) -> SettlementResult:
        """Send ``amount`` to ``destination`` on ``target_chain``.

        A PIN wallet holding the gross amount is committed first. On success it
        becomes SETTLED; on any remote failure it stays PENDING_BRIDGE and its
        id and PIN are returned for a later claim.

        Raises:
            InputError: On an unsupported chain or an invalid amount.
        """
        chain = require_chain(target_chain)
        gross = parse_token_amount(amount)
        fee = calculate_fee(gross)
        pin = generate_pin()
        token = generate_claim_token()
        now = utcnow()

        with self._session_factory() as db:
            wallet = PinWalletRepository(db).create(
                amount=gross,
                pin_hash=hash_pin(pin),
                status=WALLET_STATUS_PENDING_BRIDGE,
                destination=destination,
                target_chain=chain.key,
                claim_token=token,
                now=now,
            )
            wallet_id = wallet.id
            commit_or_conflict(db)
        logger.info("PIN wallet %s created for %s USDC to %s", wallet_id, gross, chain.name)

        attempt = await self._run_settlement(destination, chain, fee)
        self._record_attempt(wallet_id, token, attempt, sweep=False)

        if attempt.succeeded:
            return SettlementResult(
                success=True,
                accounting_recorded=attempt.accounting_recorded,
                bridge_attempted=True,
                bridge_result=attempt.bridge_result,
                fee=fee,
                destination_chain=chain.name,
                message=f"Sent {fee.net_amount} USDC to {chain.name}",
            )
        return SettlementResult(
            success=False,
            accounting_recorded=attempt.accounting_recorded,
            bridge_attempted=attempt.bridge_attempted,
            bridge_result=attempt.bridge_result,
            fee=fee,
            destination_chain=chain.name,
            fallback_id=wallet_id,
            fallback_pin=pin,
            message=f"Bridge failed: {attempt.error}. Use PIN wallet {wallet_id} to claim later.",
        )

    async def claim_pin_wallet(
        self,
        wallet_id: str,
        pin: str,
        destination: str,
        target_chain: str,
    ) -> SettlementResult:
        """Settle a PIN wallet on behalf of whoever holds its PIN.

        A destination already stored on the wallet takes precedence over the
        one supplied; otherwise the supplied destination and chain are stored.

        Raises:
            AuthorizationError: Unknown wallet, wrong PIN or locked wallet.
            InputError: On an unsupported chain.
            TerminalError: When the manual attempt cap is exhausted.
            ClaimInProgressError: When another claim or sweep holds the wallet.
        """
        wallet_id = wallet_id.strip().upper()
        now = utcnow()

        with self._session_factory() as db:
            repo = PinWalletRepository(db)
            wallet = repo.get_claimable(wallet_id)
            if wallet is None:
                raise AuthorizationError("Invalid wallet ID or PIN")
            if wallet.is_locked(now):
                raise AuthorizationError(
                    f"PIN wallet {wallet_id} is locked after repeated invalid PINs"
                )
            if not verify_pin(pin, wallet.pin_hash):
                self._register_pin_failure(db, wallet, now)
                raise AuthorizationError("Invalid wallet ID or PIN")

            # The supplied chain only matters when none is stored yet.
            chain = require_chain(wallet.target_chain or target_chain)
            if not self.policy.manual_may_retry(wallet.bridge_attempts):
                raise TerminalError(
                    f"PIN wallet {wallet_id} reached {wallet.bridge_attempts} attempts"
                )
            if wallet.pin_failures or wallet.locked_until is not None:
                wallet.pin_failures = 0
                wallet.locked_until = None
                commit_or_conflict(db)

        token = self._acquire_claim(wallet_id, now)

        try:
            with self._session_factory() as db:
                wallet = PinWalletRepository(db).get(wallet_id)
                if wallet is None:
                    raise NotFoundError(f"PIN wallet {wallet_id} disappeared during claim")
                if wallet.destination is None:
                    wallet.destination = destination
                    wallet.target_chain = chain.key
                elif wallet.destination != destination:
                    logger.warning(
                        "Claim for %s supplied a new destination; keeping the stored one",
                        wallet_id,
                    )
                resolved_destination = wallet.destination
                wallet.transition_to(WALLET_STATUS_PENDING_BRIDGE)
                fee = calculate_fee(wallet.amount)
                commit_or_conflict(db)
        except Exception:
            self._release_claim(wallet_id, token)
            raise

        logger.info("Claiming PIN wallet %s to %s", wallet_id, chain.name)
        attempt = await self._run_settlement(resolved_destination, chain, fee)
        self._record_attempt(wallet_id, token, attempt, sweep=False)

        if attempt.succeeded:
            return SettlementResult(
                success=True,
                accounting_recorded=attempt.accounting_recorded,
                bridge_attempted=True,
                bridge_result=attempt.bridge_result,
                fee=fee,
                destination_chain=chain.name,
                message=f"Claimed {fee.net_amount} USDC to {chain.name}",
            )
        return SettlementResult(
            success=False,
            accounting_recorded=attempt.accounting_recorded,
            bridge_attempted=attempt.bridge_attempted,
            bridge_result=attempt.bridge_result,
            fee=fee,
            destination_chain=chain.name,
            fallback_id=wallet_id,
            message=f"Bridge failed: {attempt.error}. PIN still valid for retry.",
        )

    async def retry_pending_bridges(self) -> RetrySummary:
        """Retry every eligible PENDING_BRIDGE wallet once.

        Wallets reaching the sweep attempt cap, or stored with a chain that is
        no longer supported, become FAILED. Wallets held by a live claim are
        skipped and not counted as attempted.
        """
        now = utcnow()
        with self._session_factory() as db:
            candidates = [
                w.id
                for w in PinWalletRepository(db).list_retryable(
                    self.policy.sweep_attempt_cap, self.policy.lease_cutoff(now)
                )
            ]

        succeeded = failed = still_pending = skipped = 0
        for wallet_id in candidates:
            try:
                token = self._acquire_claim(wallet_id, utcnow())
            except ClaimInProgressError:
                skipped += 1
                continue

            try:
                prepared = self._prepare_retry(wallet_id, token)
            except Exception:
                self._release_claim(wallet_id, token)
                raise
            if prepared is None:
                skipped += 1
                continue
            if isinstance(prepared, str):
                failed += 1
                continue
            destination, chain, fee = prepared

            logger.info("Retrying bridge for PIN wallet %s to %s", wallet_id, chain.name)
            attempt = await self._bridge_only(destination, chain, fee)
            status = self._record_attempt(wallet_id, token, attempt, sweep=True)

            if attempt.succeeded:
                succeeded += 1
            elif status == WALLET_STATUS_FAILED:
                failed += 1
            else:
                still_pending += 1

        summary = RetrySummary(
            attempted=len(candidates) - skipped,
            succeeded=succeeded,
            failed=failed,
            still_pending=still_pending,
            skipped=skipped,
        )
        if candidates:
            logger.info(
                "Retry sweep: %d attempted, %d settled, %d failed, %d pending, %d skipped",
                summary.attempted,
                summary.succeeded,
                summary.failed,
                summary.still_pending,
                summary.skipped,
            )
        return summary

    def create_pin_wallet(self, amount: Decimal | str) -> CreatedPinWallet:
        """Issue a PENDING wallet for ``amount`` with no destination yet."""
        gross = parse_token_amount(amount)
        pin = generate_pin()
        with self._session_factory() as db:
            wallet = PinWalletRepository(db).create(amount=gross, pin_hash=hash_pin(pin))
            commit_or_conflict(db)
        logger.info("PIN wallet %s issued for %s USDC", wallet.id, gross)
        return CreatedPinWallet(wallet=wallet, pin=pin)

    def get_pending_wallets_summary(self) -> WalletSummary:
        with self._session_factory() as db:
            return PinWalletRepository(db).summary()

    def list_wallets(self) -> list[PinWallet]:
        with self._session_factory() as db:
            return PinWalletRepository(db).list_all()

    def get_wallet(self, wallet_id: str) -> PinWallet:
        with self._session_factory() as db:
            wallet = PinWalletRepository(db).get(wallet_id.strip().upper())
        if wallet is None:
            raise NotFoundError(f"PIN wallet {wallet_id} not found")
        return wallet

    # ------------------------------------------------------------------
    # Protocol steps
    # ------------------------------------------------------------------

    async def _run_settlement(
        self,
        destination: str,
        chain: ChainInfo,
        fee: FeeBreakdown,
    ) -> _Attempt:
        channel_id: str | None = None
        bridge_attempted = False
        try:
            await ensure_authenticated(self.accounting, self.timeout)
            channel_id = await with_timeout(
                self.accounting.create_channel(
                    settings.accounting_token_address, settings.accounting_chain_id
                ),
                self.timeout,
                "accounting create_channel",
            )
            bridge_attempted = True
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
            logger.error("Settlement to %s failed: %s", chain.name, exc, exc_info=True)
            await self._close_channel(channel_id)
            return _Attempt(
                bridge_result=None,
                error=str(exc) or exc.__class__.__name__,
                accounting_recorded=channel_id is not None,
                bridge_attempted=bridge_attempted,
            )

        await self._close_channel(channel_id)
        return _Attempt(
            bridge_result=result,
            error=None if result.success else (result.error or "bridge reported failure"),
            accounting_recorded=channel_id is not None,
            bridge_attempted=True,
        )

    async def _bridge_only(
        self,
        destination: str,
        chain: ChainInfo,
        fee: FeeBreakdown,
    ) -> _Attempt:
        try:
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
            logger.error("Retry bridge to %s failed: %s", chain.name, exc, exc_info=True)
            return _Attempt(
                bridge_result=None,
                error=str(exc) or exc.__class__.__name__,
                accounting_recorded=False,
                bridge_attempted=True,
            )
        return _Attempt(
            bridge_result=result,
            error=None if result.success else (result.error or "bridge reported failure"),
            accounting_recorded=False,
            bridge_attempted=True,
        )

    async def _close_channel(self, channel_id: str | None) -> None:
        """Close ``channel_id`` if it is still open; failures are only logged."""
        if channel_id is None:
            return
        try:
            exists = await with_timeout(
                self.accounting.channel_exists(channel_id),
                self.timeout,
                "accounting channel_exists",
            )
            if not exists:
                logger.info("Channel %s already closed", channel_id)
                return
            await with_timeout(
                self.accounting.close_channel(channel_id, self.kiosk_address),
                self.timeout,
                "accounting close_channel",
            )
            logger.info("Channel %s closed", channel_id)
        except Exception as exc:
            logger.warning("Channel %s close failed: %s", channel_id, exc)

    def _acquire_claim(self, wallet_id: str, now: datetime) -> str:
        token = generate_claim_token()
        with self._session_factory() as db:
            acquired = PinWalletRepository(db).acquire_claim(
                wallet_id, token, now, self.policy.lease_cutoff(now)
            )
            if not acquired:
                db.rollback()
                raise ClaimInProgressError(f"PIN wallet {wallet_id} is already being claimed")
            commit_or_conflict(db)
        return token

    def _release_claim(self, wallet_id: str, token: str) -> None:
        with self._session_factory() as db:
            repo = PinWalletRepository(db)
            wallet = repo.get(wallet_id)
            if wallet is not None and repo.release_claim(wallet, token):
                commit_or_conflict(db)

    def _prepare_retry(
        self, wallet_id: str, token: str
    ) -> tuple[str, ChainInfo, FeeBreakdown] | str | None:
        """Load a claimed wallet for the sweep.

        Returns the bridge arguments, the new status when the wallet had to be
        failed, or None when it is no longer eligible. The lease is released
        unless bridge arguments are returned.
        """
        with self._session_factory() as db:
            repo = PinWalletRepository(db)
            wallet = repo.get(wallet_id)
            if wallet is None:
                return None
            if wallet.status != WALLET_STATUS_PENDING_BRIDGE or not wallet.destination:
                repo.release_claim(wallet, token)
                commit_or_conflict(db)
                return None

            chain = get_chain_by_key(wallet.target_chain or "")
            if chain is None:
                wallet.last_bridge_error = f"Unsupported chain: {wallet.target_chain!r}"
                wallet.last_bridge_attempt = utcnow()
                wallet.transition_to(WALLET_STATUS_FAILED)
                repo.release_claim(wallet, token)
                commit_or_conflict(db)
                logger.warning(
                    "PIN wallet %s failed: unsupported chain %r", wallet_id, wallet.target_chain
                )
                return WALLET_STATUS_FAILED

            return wallet.destination, chain, calculate_fee(wallet.amount)

    def _record_attempt(self, wallet_id: str, token: str, attempt: _Attempt, *, sweep: bool) -> str:
        """Write the attempt outcome to the wallet and release the claim."""
        now = utcnow()
        with self._session_factory() as db:
            repo = PinWalletRepository(db)
            wallet = repo.get(wallet_id)
            if wallet is None:
                raise NotFoundError(f"PIN wallet {wallet_id} disappeared during settlement")
            if wallet.claim_token != token:
                logger.warning("PIN wallet %s claim lease was taken over", wallet_id)

            if attempt.succeeded:
                wallet.mark_settled(attempt.bridge_result.tx_hash, now)
                logger.info(
                    "PIN wallet %s settled (tx=%s)", wallet_id, attempt.bridge_result.tx_hash
                )
            else:
                wallet.record_bridge_failure(attempt.error, now)
                if sweep and not self.policy.sweep_may_retry(wallet.bridge_attempts):
                    wallet.transition_to(WALLET_STATUS_FAILED)
                    logger.warning(
                        "PIN wallet %s failed after %d attempts",
                        wallet_id,
                        wallet.bridge_attempts,
                    )
                else:
                    wallet.transition_to(WALLET_STATUS_PENDING_BRIDGE)

            repo.release_claim(wallet, token)
            status = wallet.status
            commit_or_conflict(db)
        return status

    def _register_pin_failure(self, db: Session, wallet: PinWallet, now: datetime) -> None:
        wallet.pin_failures += 1
        locked_until = self.policy.lockout_until(wallet.pin_failures, now)
        if locked_until is not None:
            wallet.locked_until = locked_until
            wallet.pin_failures = 0
            logger.warning("PIN wallet %s locked until %s", wallet.id, locked_until.isoformat())
        commit_or_conflict(db)


def build_orchestrator(session_factory: SessionFactory = SessionLocal) -> SettlementOrchestrator:
    """Return an orchestrator wired to the configured HTTP adapters."""
    return SettlementOrchestrator(
        get_accounting_client(),
        get_bridge_client(),
        session_factory,
    )
