"""Shared HTTP plumbing for the accounting and bridge gateways.

``GatewayClient`` owns one lazily created ``httpx.AsyncClient`` per gateway,
trips a circuit breaker after consecutive 5xx or network failures, and keeps
per-operation call counters for the ``/system/gateways`` report.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from kiosk_settlement.services.errors import RemoteTransientError

logger = logging.getLogger(__name__)

HTTP_SERVER_ERROR = 500


class GatewayError(RemoteTransientError):
    """Raised when a gateway call fails or answers with an unusable response."""


class GatewayDisabledError(GatewayError):
    """Raised when a gateway is used without a configured base URL."""


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class GatewayStats:
    """Call counters for one gateway."""

    calls: int = 0
    failures: int = 0
    total_seconds: float = 0.0
    slowest_seconds: float = 0.0
    failures_by_kind: Counter[str] = field(default_factory=Counter)
    calls_by_operation: Counter[str] = field(default_factory=Counter)

    def record(self, operation: str, elapsed: float, failure_kind: str | None) -> None:
        self.calls += 1
        self.total_seconds += elapsed
        self.slowest_seconds = max(self.slowest_seconds, elapsed)
        self.calls_by_operation[operation] += 1
        if failure_kind is not None:
            self.failures += 1
            self.failures_by_kind[failure_kind] += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "mean_seconds": self.total_seconds / self.calls if self.calls else 0.0,
            "slowest_seconds": self.slowest_seconds,
            "failures_by_kind": dict(self.failures_by_kind),
            "calls_by_operation": dict(self.calls_by_operation),
        }


@dataclass
class CircuitBreaker:
    """Blocks calls for ``cooldown_seconds`` after ``trip_after`` consecutive failures.

    Once the cooldown passes, calls are let through again (half-open) and
    ``close_after`` consecutive successes close the breaker.
    """

    trip_after: int = 5
    cooldown_seconds: float = 60.0
    close_after: int = 3

    state: BreakerState = BreakerState.CLOSED
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    opened_at: float = 0.0

    def allows_call(self) -> bool:
        if self.state is BreakerState.OPEN:
            if time.monotonic() - self.opened_at < self.cooldown_seconds:
                return False
            self.state = BreakerState.HALF_OPEN
            self.consecutive_successes = 0
        return True

    def record_success(self) -> None:
        self.consecutive_failures = 0
        if self.state is BreakerState.HALF_OPEN:
            self.consecutive_successes += 1
            if self.consecutive_successes >= self.close_after:
                self.state = BreakerState.CLOSED

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.state is BreakerState.HALF_OPEN or self.consecutive_failures >= self.trip_after:
            if self.state is not BreakerState.OPEN:
                logger.warning("Circuit opened after %d failures", self.consecutive_failures)
            self.state = BreakerState.OPEN
            self.opened_at = time.monotonic()

    def as_dict(self) -> dict[str, Any]:
        return {"state": self.state.value, "consecutive_failures": self.consecutive_failures}


@dataclass
class RequestParams:
    """One gateway request."""

    method: str
    path: str
    json_data: Any | None = None
    params: Mapping[str, Any] | None = None
    headers: dict[str, str] | None = None


class GatewayClient:
    """Base class of the vendor gateway adapters."""

    name = "gateway"

    def __init__(self, base_url: str | None, timeout_seconds: float) -> None:
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._breaker = CircuitBreaker()
        self._stats = GatewayStats()

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise GatewayDisabledError(f"{self.name} gateway is not configured")
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url or "",
                    timeout=httpx.Timeout(self.timeout_seconds),
                )
        return self._client

    def _build_headers(self) -> dict[str, str]:
        """Return authentication headers; subclasses add their own scheme."""
        return {}

    async def _request(self, params: RequestParams) -> httpx.Response:
        if not self._breaker.allows_call():
            raise GatewayError(f"{self.name} circuit breaker is open")

        client = await self._ensure_client()
        headers = self._build_headers()
        if params.headers:
            headers.update(params.headers)

        operation = f"{params.method} {params.path}"
        started = time.monotonic()
        failure_kind: str | None = None
        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                params=params.params,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            failure_kind = exc.__class__.__name__
            self._breaker.record_failure()
            raise GatewayError(f"{self.name} request failed: {exc}") from exc
        finally:
            if failure_kind is not None:
                self._stats.record(operation, time.monotonic() - started, failure_kind)

        elapsed = time.monotonic() - started
        if response.status_code >= HTTP_SERVER_ERROR:
            self._breaker.record_failure()
            self._stats.record(operation, elapsed, f"http_{response.status_code}")
            raise GatewayError(f"{self.name} responded with {response.status_code}")

        self._breaker.record_success()
        self._stats.record(operation, elapsed, None)
        return response

    async def _request_json(self, params: RequestParams) -> dict[str, Any]:
        """Send a request and return the JSON body of a 2xx response."""
        response = await self._request(params)
        if not response.is_success:
            raise GatewayError(
                f"{self.name} rejected {params.method} {params.path} "
                f"({response.status_code}): {_error_detail(response)}"
            )
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise GatewayError(f"{self.name} returned invalid JSON") from exc
        return body if isinstance(body, dict) else {"data": body}

    async def health_check(self) -> dict[str, Any]:
        """Call ``/health`` and report breaker state and call counters."""
        report: dict[str, Any] = {"name": self.name, "enabled": self.enabled}
        if not self.enabled:
            return {**report, "status": "disabled"}
        try:
            response = await self._request(RequestParams(method="GET", path="/health"))
        except GatewayError as exc:
            report.update(status="error", error=str(exc))
        else:
            report["status"] = "healthy" if response.is_success else "unhealthy"
        report["circuit_breaker"] = self._breaker.as_dict()
        report["stats"] = self._stats.as_dict()
        return report

    def get_metrics(self) -> dict[str, Any]:
        return self._stats.as_dict()

    async def close(self) -> None:
        """Close the underlying HTTP client, if one was opened."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body.get("message") or body)
    return str(body)[:200]


def first_present(payload: Mapping[str, Any] | None, *keys: str) -> Any:
    """Return the first non-empty value among ``keys`` in ``payload``."""
    if not payload:
        return None
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None
