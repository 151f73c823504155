"""Destination resolution: literal addresses and human-readable names."""

from __future__ import annotations

import logging
import re

import httpx

from kiosk_settlement.core.settings import settings
from kiosk_settlement.services.errors import InputError

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_address(value: str) -> bool:
    """Return True if ``value`` is a 20-byte hex address."""
    return bool(ADDRESS_RE.match(value.strip()))


class NameResolver:
    """Validates addresses and resolves names (``alice.eth``) through a lookup service."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url if base_url is not None else settings.resolver_base_url
        self.timeout_seconds = timeout_seconds or settings.external_call_timeout_seconds
        self._transport = transport

    async def resolve(self, value: str) -> str:
        """Return the address for ``value``.

        Raises:
            InputError: If the value is neither an address nor a resolvable name.
        """
        candidate = (value or "").strip()
        if is_address(candidate):
            return candidate
        if "." not in candidate:
            raise InputError(f"Not an address or resolvable name: {value!r}")
        if not self.base_url:
            raise InputError(f"Name resolution is not configured, cannot resolve {candidate}")

        name = candidate.lower()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await client.get(f"/resolve/{name}")
        except httpx.HTTPError as exc:
            logger.warning("Name resolution failed for %s: %s", name, exc)
            raise InputError(f"Could not resolve {name}") from exc

        if response.status_code != httpx.codes.OK:
            raise InputError(f"Could not resolve {name}")
        try:
            address = str(response.json().get("address") or "")
        except (ValueError, AttributeError) as exc:
            raise InputError(f"Could not resolve {name}") from exc
        if not is_address(address):
            raise InputError(f"Could not resolve {name}")
        logger.info("Resolved %s to %s", name, address)
        return address


def get_resolver() -> NameResolver:
    """Return a resolver configured from settings."""
    return NameResolver()
