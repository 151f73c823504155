"""Data access helpers for PIN wallet recovery records."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from kiosk_settlement.core.security import generate_wallet_id
from kiosk_settlement.db.time import utcnow
from kiosk_settlement.models.pin_wallet import (
    CLAIMABLE_WALLET_STATUSES,
    WALLET_STATUS_FAILED,
    WALLET_STATUS_PENDING,
    WALLET_STATUS_PENDING_BRIDGE,
    WALLET_STATUS_SETTLED,
    PinWallet,
)
from kiosk_settlement.services.errors import ConcurrentUpdateError

__all__ = ["PinWalletRepository", "WalletSummary", "commit_or_conflict"]

MAX_ID_ATTEMPTS = 20


@dataclass(frozen=True)
class WalletSummary:
    """Counts of PIN wallets per status and the value still owed."""

    pending: int
    pending_bridge: int
    settled: int
    failed: int
    total_value: Decimal


def commit_or_conflict(db: Session) -> None:
    """Commit ``db``; a version mismatch becomes ``ConcurrentUpdateError``."""
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentUpdateError("Record was modified by another writer") from exc


class PinWalletRepository:
    """Thin wrapper around database access for PIN wallets."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get(self, wallet_id: str) -> PinWallet | None:
        """Return a wallet by identifier regardless of status."""
        return self.session.get(PinWallet, wallet_id, populate_existing=True)

    def get_claimable(self, wallet_id: str) -> PinWallet | None:
        """Return the wallet if it can still be claimed."""
        result = self.session.execute(
            select(PinWallet)
            .where(
                PinWallet.id == wallet_id,
                PinWallet.status.in_(CLAIMABLE_WALLET_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    def new_wallet_id(self) -> str:
        """Return an identifier not used by any stored wallet."""
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = generate_wallet_id()
            if self.session.get(PinWallet, candidate) is None:
                return candidate
        raise RuntimeError("Could not allocate a unique PIN wallet id")

    def create(
        self,
        *,
        amount: Decimal,
        pin_hash: str,
        status: str = WALLET_STATUS_PENDING,
        destination: str | None = None,
        target_chain: str | None = None,
        claim_token: str | None = None,
        now: datetime | None = None,
    ) -> PinWallet:
        """Insert a new wallet with zero attempts and return it.

        Args:
            amount: Gross value owed to the PIN holder.
            pin_hash: Digest from ``hash_pin``; the plaintext PIN is never stored.
            status: PENDING for plain recovery records, PENDING_BRIDGE when a
                settlement is about to start.
            claim_token: Lease token held by the caller, if any.
        """
        created_at = now or utcnow()
        wallet = PinWallet(
            id=self.new_wallet_id(),
            pin_hash=pin_hash,
            amount=amount,
            created_at=created_at,
            destination=destination,
            target_chain=target_chain,
            status=status,
            bridge_attempts=0,
            pin_failures=0,
            claim_token=claim_token,
            claim_started_at=created_at if claim_token else None,
        )
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def list_all(self) -> list[PinWallet]:
        """Return all wallets, oldest first."""
        result = self.session.execute(select(PinWallet).order_by(PinWallet.created_at))
        return list(result.scalars())

    def list_retryable(self, max_attempts: int, lease_cutoff: datetime) -> list[PinWallet]:
        """Return PENDING_BRIDGE wallets the sweep may retry.

        Wallets need a destination and chain, fewer than ``max_attempts``
        attempts, and no claim started after ``lease_cutoff``.
        """
        result = self.session.execute(
            select(PinWallet)
            .where(
                PinWallet.status == WALLET_STATUS_PENDING_BRIDGE,
                PinWallet.bridge_attempts < max_attempts,
                PinWallet.destination.is_not(None),
                PinWallet.target_chain.is_not(None),
                or_(
                    PinWallet.claim_token.is_(None),
                    PinWallet.claim_started_at < lease_cutoff,
                ),
            )
            .order_by(PinWallet.created_at)
        )
        return list(result.scalars())

    def acquire_claim(
        self,
        wallet_id: str,
        token: str,
        now: datetime,
        lease_cutoff: datetime,
    ) -> bool:
        """Atomically mark a claimable wallet as claim-in-progress.

        Returns True only for the single caller whose UPDATE matched; the
        version bump makes any copy loaded before the claim stale.
        """
        result = self.session.execute(
            update(PinWallet)
            .where(
                PinWallet.id == wallet_id,
                PinWallet.status.in_(CLAIMABLE_WALLET_STATUSES),
                or_(
                    PinWallet.claim_token.is_(None),
                    PinWallet.claim_started_at < lease_cutoff,
                ),
            )
            .values(
                claim_token=token,
                claim_started_at=now,
                version=PinWallet.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def summary(self) -> WalletSummary:
        """Return per-status counts and the value of unsettled wallets."""
        rows = self.session.execute(
            select(PinWallet.status, func.count()).group_by(PinWallet.status)
        ).all()
        counts = {status: count for status, count in rows}

        owed = self.session.execute(
            select(PinWallet.amount).where(
                PinWallet.status.in_(CLAIMABLE_WALLET_STATUSES)
            )
        ).scalars()
        total = sum(owed, Decimal("0"))

        return WalletSummary(
            pending=counts.get(WALLET_STATUS_PENDING, 0),
            pending_bridge=counts.get(WALLET_STATUS_PENDING_BRIDGE, 0),
            settled=counts.get(WALLET_STATUS_SETTLED, 0),
            failed=counts.get(WALLET_STATUS_FAILED, 0),
            total_value=total,
        )

    def release_claim(self, wallet: PinWallet, token: str) -> bool:
        """Drop the claim lease if ``token`` still holds it."""
        if wallet.claim_token != token:
            return False
        wallet.claim_token = None
        wallet.claim_started_at = None
        return True
