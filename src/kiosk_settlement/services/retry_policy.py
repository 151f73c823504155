"""Retry and lockout limits shared by the claim path and the retry sweep."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from kiosk_settlement.core.settings import settings


@dataclass(frozen=True)
class RetryPolicy:
    """Limits consulted by every path that re-attempts a settlement.

    ``manual_attempt_cap`` of ``None`` leaves PIN-holder claims unbounded.
    """

    sweep_attempt_cap: int = 3
    manual_attempt_cap: int | None = None
    claim_lease_seconds: int = 600
    pin_max_failures: int = 5
    pin_lockout_seconds: int = 900

    def sweep_may_retry(self, attempts: int) -> bool:
        return attempts < self.sweep_attempt_cap

    def manual_may_retry(self, attempts: int) -> bool:
        return self.manual_attempt_cap is None or attempts < self.manual_attempt_cap

    def lease_cutoff(self, now: datetime) -> datetime:
        """Claims started before this instant are considered abandoned."""
        return now - timedelta(seconds=self.claim_lease_seconds)

    def lockout_until(self, failures: int, now: datetime) -> datetime | None:
        """Return the lockout deadline after ``failures`` invalid PINs, if any."""
        if failures < self.pin_max_failures:
            return None
        return now + timedelta(seconds=self.pin_lockout_seconds)


def load_retry_policy() -> RetryPolicy:
    """Build the retry policy from global settings."""
    return RetryPolicy(
        sweep_attempt_cap=settings.sweep_attempt_cap,
        manual_attempt_cap=settings.manual_attempt_cap,
        claim_lease_seconds=settings.claim_lease_seconds,
        pin_max_failures=settings.pin_max_failures,
        pin_lockout_seconds=settings.pin_lockout_seconds,
    )
