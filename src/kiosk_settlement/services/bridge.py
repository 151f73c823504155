"""Bridge gateway client for cross-chain USDC delivery.

This module provides the HttpBridgeClient class that moves pool liquidity
from the source chain to a customer's destination chain. It includes:

- Short-lived HS256 bearer tokens for gateway authentication
- Normalization of the gateway's step-list responses into ``BridgeResult``
- Liquidity balance lookup for the source pool
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from jose import jwt

from kiosk_settlement.core.settings import settings
from kiosk_settlement.services.chains import ChainInfo, require_chain
from kiosk_settlement.services.clients import (
    TX_STATUS_PENDING,
    TX_STATUS_REVERTED,
    TX_STATUS_SUCCESS,
    BridgeResult,
)
from kiosk_settlement.services.gateway import (
    GatewayClient,
    GatewayError,
    RequestParams,
    first_present,
)

logger = logging.getLogger(__name__)

STEP_SUCCESS = "success"
STEP_FAILED_STATES = ("error", "failed")
MINT_STEP = "mint"


@dataclass(frozen=True)
class BridgeConfig:
    """Immutable configuration for bridge operations."""

    base_url: str | None
    shared_secret: str | None
    audience: str
    token_ttl_seconds: int
    timeout_seconds: float
    source_chain: str


def load_bridge_config() -> BridgeConfig:
    """Build configuration object from global settings."""

    return BridgeConfig(
        base_url=settings.bridge_base_url,
        shared_secret=settings.bridge_shared_secret,
        audience=settings.bridge_audience,
        token_ttl_seconds=settings.bridge_token_ttl_seconds,
        timeout_seconds=float(settings.bridge_http_timeout_seconds),
        source_chain=settings.bridge_source_chain,
    )


def _step_tx_hash(step: Mapping[str, Any] | None) -> str | None:
    if not step:
        return None
    data = step.get("data") if isinstance(step.get("data"), Mapping) else None
    return first_present(step, "txHash", "tx_hash") or first_present(data, "txHash", "tx_hash")


def normalize_bridge_response(
    payload: Mapping[str, Any],
    chain: ChainInfo,
    amount: Decimal,
) -> BridgeResult:
    """Reduce a gateway response to a single ``BridgeResult``.

    The gateway reports a list of steps (approve, burn, attestation, mint).
    The mint step, or failing that the last successful step, carries the
    transaction that proves delivery.
    """
    steps: Sequence[Mapping[str, Any]] = [
        s for s in (payload.get("steps") or []) if isinstance(s, Mapping)
    ]
    flow = " -> ".join(f"{s.get('name')}:{s.get('state')}" for s in steps)
    if flow:
        logger.info("Bridge steps: %s", flow)

    failed_step = next((s for s in steps if s.get("state") in STEP_FAILED_STATES), None)
    successful = [s for s in steps if s.get("state") == STEP_SUCCESS]
    mint_step = next((s for s in successful if s.get("name") == MINT_STEP), None)
    relevant = mint_step or (successful[-1] if successful else None)

    if failed_step is not None and mint_step is None:
        error = first_present(failed_step, "error", "message") or (
            f"bridge step {failed_step.get('name')} failed"
        )
        return BridgeResult(
            success=False,
            destination_chain=chain.name,
            amount=amount,
            tx_hash=_step_tx_hash(failed_step),
            tx_status=TX_STATUS_REVERTED,
            error=str(error),
        )

    tx_hash = _step_tx_hash(relevant) or first_present(payload, "txHash", "tx_hash")
    if not tx_hash:
        logger.warning("Bridge completed but no tx hash in %d steps", len(steps))
        return BridgeResult(
            success=True,
            destination_chain=chain.name,
            amount=amount,
            tx_status=TX_STATUS_PENDING,
        )

    data = relevant.get("data") if relevant and isinstance(relevant.get("data"), Mapping) else None
    explorer_url = first_present(data, "explorerUrl", "explorer_url") or chain.tx_url(tx_hash)
    tx_status = TX_STATUS_SUCCESS if relevant is not None else TX_STATUS_PENDING
    return BridgeResult(
        success=True,
        destination_chain=chain.name,
        amount=amount,
        tx_hash=str(tx_hash),
        tx_status=tx_status,
        explorer_url=str(explorer_url),
    )


def _parse_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise GatewayError(f"Unparseable bridge balance: {value!r}") from exc


class HttpBridgeClient(GatewayClient):
    """HTTP client wrapper for the bridge gateway."""

    name = "bridge"

    def __init__(self, config: BridgeConfig | None = None) -> None:
        self.config = config or load_bridge_config()
        super().__init__(self.config.base_url, self.config.timeout_seconds)

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.config.shared_secret:
            now = int(time.time())
            payload = {
                "aud": self.config.audience,
                "iat": now,
                "exp": now + max(1, self.config.token_ttl_seconds),
                "jti": secrets.token_hex(8),
            }
            token = jwt.encode(payload, self.config.shared_secret, algorithm="HS256")
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def bridge(
        self,
        destination: str,
        chain_key: str,
        amount: Decimal,
        *,
        fee: Decimal = Decimal("0"),
        fee_recipient: str | None = None,
    ) -> BridgeResult:
        """Bridge ``amount`` USDC to ``destination`` on ``chain_key``.

        Gateway failures are returned as an unsuccessful result rather than
        raised; the result is the only evidence of whether funds moved.
        """
        chain = require_chain(chain_key)
        payload: dict[str, Any] = {
            "from": {"chain": self.config.source_chain},
            "to": {"chain": chain.bridge_name, "recipientAddress": destination},
            "amount": str(amount),
        }
        if fee_recipient and fee > 0:
            payload["config"] = {
                "customFee": {"value": str(fee), "recipientAddress": fee_recipient}
            }

        logger.info(
            "Initiating bridge to %s (%s): amount=%s fee=%s",
            chain.name,
            destination,
            amount,
            fee,
        )
        try:
            body = await self._request_json(
                RequestParams(method="POST", path="/api/bridge/transfers", json_data=payload)
            )
        except GatewayError as exc:
            logger.error("Bridge failed on %s: %s", chain.name, exc)
            return BridgeResult(
                success=False,
                destination_chain=chain.name,
                amount=amount,
                error=str(exc),
            )

        result = normalize_bridge_response(body, chain, amount)
        if result.success:
            logger.info("Bridge complete: tx=%s status=%s", result.tx_hash, result.tx_status)
        return result

    async def get_liquidity_balance(self) -> Decimal:
        """Return the USDC liquidity held in the source pool."""
        body = await self._request_json(RequestParams(method="GET", path="/api/bridge/balance"))
        value = first_present(body, "usdc", "balance", "amount")
        if value is None:
            raise GatewayError("Bridge balance response carried no amount")
        return _parse_decimal(value)


class _BridgeClientSingleton:
    """Singleton wrapper for HttpBridgeClient."""

    _instance: HttpBridgeClient | None = None

    @classmethod
    def get_instance(cls) -> HttpBridgeClient:
        """Get or create the singleton HttpBridgeClient instance."""
        if cls._instance is None:
            cls._instance = HttpBridgeClient()
        return cls._instance


def get_bridge_client() -> HttpBridgeClient:
    """Return a singleton bridge client instance."""
    return _BridgeClientSingleton.get_instance()
