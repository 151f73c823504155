"""Accounting client for the ClearNode channel gateway.

The gateway fronts the off-chain state-channel network; this adapter only
speaks its REST surface and normalizes the loosely shaped responses
(``params.ledgerBalances`` vs ``balances``, ``channel_id`` vs ``channelId``)
into the strict types of ``services.clients``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from kiosk_settlement.core.settings import settings
from kiosk_settlement.services.clients import AssetBalance
from kiosk_settlement.services.fees import MICRO_UNITS
from kiosk_settlement.services.gateway import (
    GatewayClient,
    GatewayError,
    RequestParams,
    first_present,
)

logger = logging.getLogger(__name__)

CLOSED_CHANNEL_STATES = ("closed", "final", "finalized")


def _params(body: Mapping[str, Any]) -> Mapping[str, Any]:
    nested = body.get("params")
    return nested if isinstance(nested, Mapping) else body


def parse_ledger_balances(body: Mapping[str, Any]) -> list[AssetBalance]:
    """Normalize a ledger balance response into ``AssetBalance`` entries."""
    params = _params(body)
    entries = first_present(params, "ledgerBalances", "ledger_balances", "balances", "entries")
    balances: list[AssetBalance] = []
    for entry in entries or []:
        if not isinstance(entry, Mapping):
            continue
        asset = first_present(entry, "asset", "symbol")
        raw = str(first_present(entry, "amount", "balance") or "0")
        if not asset:
            continue
        try:
            amount = Decimal(raw) / MICRO_UNITS
        except (InvalidOperation, ValueError) as exc:
            raise GatewayError(f"Unparseable ledger amount for {asset}: {raw!r}") from exc
        balances.append(AssetBalance(asset=str(asset), amount=amount, raw=raw))
    return balances


class ClearNodeClient(GatewayClient):
    """HTTP client wrapper for the accounting channel gateway."""

    name = "clearnode"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            base_url or settings.clearnode_base_url,
            timeout_seconds or settings.external_call_timeout_seconds,
        )
        self.api_key = api_key or settings.clearnode_api_key
        self._session_token: str | None = None
        self._connected = False

    @property
    def is_authenticated(self) -> bool:
        return self._session_token is not None

    def _build_headers(self) -> dict[str, str]:
        if self._session_token:
            return {"Authorization": f"Bearer {self._session_token}"}
        return {}

    async def connect(self) -> None:
        """Open the gateway connection and fetch the node configuration."""
        body = await self._request_json(RequestParams(method="GET", path="/api/config"))
        self._connected = True
        logger.debug("Connected to ClearNode gateway (broker=%s)", body.get("broker_address"))

    async def authenticate(self) -> None:
        """Authenticate the kiosk wallet with the gateway."""
        if not self._connected:
            await self.connect()
        body = await self._request_json(
            RequestParams(
                method="POST",
                path="/api/auth",
                json_data={"address": settings.kiosk_address, "api_key": self.api_key},
            )
        )
        token = first_present(_params(body), "token", "jwt_token", "jwtToken")
        if not token:
            raise GatewayError("ClearNode authentication returned no session token")
        self._session_token = str(token)
        logger.info("Authenticated with ClearNode as %s", settings.kiosk_address)

    async def get_balances(self) -> list[AssetBalance]:
        body = await self._request_json(RequestParams(method="GET", path="/api/ledger/balances"))
        return parse_ledger_balances(body)

    async def create_channel(self, asset_ref: str, chain_id: int) -> str:
        body = await self._request_json(
            RequestParams(
                method="POST",
                path="/api/channels",
                json_data={"token": asset_ref, "chain_id": chain_id},
            )
        )
        channel_id = first_present(_params(body), "channel_id", "channelId")
        if not channel_id:
            raise GatewayError("ClearNode did not return a channel id")
        logger.info("Channel opened: %s", channel_id)
        return str(channel_id)

    async def channel_exists(self, channel_id: str) -> bool:
        body = await self._request_json(RequestParams(method="GET", path="/api/channels"))
        channels = first_present(_params(body), "channels") or []
        for channel in channels:
            if not isinstance(channel, Mapping):
                continue
            if first_present(channel, "channel_id", "channelId") != channel_id:
                continue
            status = str(channel.get("status") or "open").lower()
            return status not in CLOSED_CHANNEL_STATES
        return False

    async def resize_channel(self, channel_id: str, delta: int, destination: str) -> None:
        await self._request_json(
            RequestParams(
                method="POST",
                path=f"/api/channels/{channel_id}/resize",
                json_data={"allocate_amount": str(delta), "funds_destination": destination},
            )
        )

    async def close_channel(self, channel_id: str, destination: str) -> None:
        await self._request_json(
            RequestParams(
                method="POST",
                path=f"/api/channels/{channel_id}/close",
                json_data={"funds_destination": destination},
            )
        )


class _ClearNodeSingleton:
    """Singleton wrapper for ClearNodeClient."""

    _instance: ClearNodeClient | None = None

    @classmethod
    def get_instance(cls) -> ClearNodeClient:
        if cls._instance is None:
            cls._instance = ClearNodeClient()
        return cls._instance


def get_accounting_client() -> ClearNodeClient:
    """Return the process-wide accounting client."""
    return _ClearNodeSingleton.get_instance()
