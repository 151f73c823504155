"""Secret and identifier generation for PIN wallets and sessions."""
from __future__ import annotations

import hashlib
import hmac
import secrets

from kiosk_settlement.core.settings import settings

PIN_MIN = 100_000
PIN_MAX = 999_999

# Wallet IDs are typed on a 4x4 physical keypad (0-9 plus A-D).
WALLET_ID_ALPHABET = "0123456789ABCD"
WALLET_ID_LENGTH = 6

SESSION_ID_PREFIX = "S"
SESSION_ID_BYTES = 4

# Unpeppered SHA-256 digests imported from the JSON store carry this prefix.
LEGACY_HASH_PREFIX = "sha256$"


def generate_pin() -> str:
    """Return a six-digit numeric PIN drawn from a CSPRNG."""
    return str(PIN_MIN + secrets.randbelow(PIN_MAX - PIN_MIN + 1))


def generate_wallet_id() -> str:
    """Return a keypad-friendly PIN wallet identifier."""
    return "".join(secrets.choice(WALLET_ID_ALPHABET) for _ in range(WALLET_ID_LENGTH))


def generate_session_id() -> str:
    """Return a session identifier such as ``S1A2B3C4D``."""
    return SESSION_ID_PREFIX + secrets.token_hex(SESSION_ID_BYTES).upper()


def generate_claim_token() -> str:
    """Return an opaque token identifying one in-flight claim."""
    return secrets.token_hex(16)


def hash_pin(pin: str, pepper: str | None = None) -> str:
    """Return a deterministic, one-way digest of ``pin``.

    The digest is an HMAC-SHA256 keyed with the server-side pepper.
    """
    key = (pepper if pepper is not None else settings.pin_pepper).encode("utf-8")
    return hmac.new(key, pin.strip().encode("utf-8"), hashlib.sha256).hexdigest()


def legacy_pin_hash(digest: str) -> str:
    """Tag a plain SHA-256 hex digest from the legacy store."""
    return LEGACY_HASH_PREFIX + digest.lower()


def verify_pin(pin: str, pin_hash: str, pepper: str | None = None) -> bool:
    """Compare a candidate PIN against a stored digest in constant time."""
    if pin_hash.startswith(LEGACY_HASH_PREFIX):
        candidate = legacy_pin_hash(hashlib.sha256(pin.strip().encode("utf-8")).hexdigest())
        return hmac.compare_digest(candidate, pin_hash)
    return hmac.compare_digest(hash_pin(pin, pepper), pin_hash)
