"""Fee calculation for kiosk transfers.

The fee is 0.001 % of the gross amount, rounded half-up to six decimals.
There is no minimum fee.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from kiosk_settlement.services.errors import InputError

FEE_RATE = Decimal("0.00001")
FEE_PERCENTAGE_LABEL = "0.001%"

# USDC carries six decimals on every supported chain.
AMOUNT_PRECISION = Decimal("0.000001")
MICRO_UNITS = Decimal("1000000")


@dataclass(frozen=True)
class FeeBreakdown:
    """Gross amount split into the deducted fee and the amount delivered."""

    gross_amount: Decimal
    fee: Decimal
    net_amount: Decimal
    fee_percentage: str = FEE_PERCENTAGE_LABEL


def parse_amount(value: Any) -> Decimal:
    """Return ``value`` as a positive, finite Decimal.

    Raises:
        InputError: If the value is not numeric, not finite or not positive.
    """
    if isinstance(value, bool):
        raise InputError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InputError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise InputError(f"Invalid amount: {value!r}")
    return amount


def parse_token_amount(value: Any) -> Decimal:
    """Return ``value`` as a positive amount representable in token units.

    Raises:
        InputError: If the amount is invalid or finer than six decimals.
    """
    amount = parse_amount(value)
    if amount != amount.quantize(AMOUNT_PRECISION, rounding=ROUND_DOWN):
        raise InputError(f"Amount {value!r} has more than six decimal places")
    return amount


def quantize_amount(amount: Decimal) -> Decimal:
    """Round an amount to token precision."""
    return amount.quantize(AMOUNT_PRECISION, rounding=ROUND_HALF_UP)


def to_micro_units(amount: Decimal) -> int:
    """Convert a token amount to integer micro units, truncating dust."""
    return int((amount * MICRO_UNITS).to_integral_value(rounding=ROUND_DOWN))


def calculate_fee(amount: Any) -> FeeBreakdown:
    """Calculate the fee for a transfer of ``amount``."""
    gross = parse_amount(amount)
    fee = quantize_amount(gross * FEE_RATE)
    net = quantize_amount(gross - fee)
    return FeeBreakdown(gross_amount=gross, fee=fee, net_amount=net)


def format_fee_breakdown(breakdown: FeeBreakdown, chain: str) -> str:
    """Render a fee breakdown for terminal display."""
    rows = [
        ("Amount:", f"{breakdown.gross_amount:.4f} USDC"),
        (f"Fee ({breakdown.fee_percentage}):", f"{breakdown.fee:.6f} USDC"),
        ("You receive:", f"{breakdown.net_amount:.4f} USDC"),
        ("Chain:", chain),
    ]
    width = 37
    lines = ["+" + "-" * width + "+", "|  Transfer Summary".ljust(width + 1) + "|"]
    lines.append("+" + "-" * width + "+")
    for label, value in rows:
        lines.append(f"|  {label:<15}{value:>18}  |")
    lines.append("+" + "-" * width + "+")
    return "\n".join(lines)
