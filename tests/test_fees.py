# tests/test_fees.py
"""Tests for fee calculation and amount parsing."""

from decimal import Decimal

import pytest

from kiosk_settlement.services.errors import InputError
from kiosk_settlement.services.fees import (
    FEE_RATE,
    calculate_fee,
    format_fee_breakdown,
    parse_amount,
    parse_token_amount,
    quantize_amount,
    to_micro_units,
)


@pytest.mark.parametrize(
    "amount",
    ["0.000001", "0.01", "1", "1.00", "7.50", "123.456789", "99999.99", "1000000"],
)
def test_fee_and_net_sum_to_gross(amount: str) -> None:
    breakdown = calculate_fee(amount)
    assert breakdown.fee + breakdown.net_amount == breakdown.gross_amount
    assert breakdown.fee == quantize_amount(Decimal(amount) * FEE_RATE)


def test_fee_for_one_dollar() -> None:
    breakdown = calculate_fee("1.00")
    assert breakdown.fee == Decimal("0.000010")
    assert breakdown.net_amount == Decimal("0.99999")
    assert breakdown.fee_percentage == "0.001%"


def test_no_minimum_fee() -> None:
    breakdown = calculate_fee("0.01")
    assert breakdown.fee == Decimal("0")
    assert breakdown.net_amount == Decimal("0.01")


def test_fee_is_deterministic() -> None:
    assert calculate_fee("42.42") == calculate_fee(Decimal("42.42"))


@pytest.mark.parametrize("bad", ["0", "-1", "abc", "", "NaN", "Infinity", None, True])
def test_invalid_amounts_rejected(bad) -> None:
    with pytest.raises(InputError):
        calculate_fee(bad)


def test_parse_amount_accepts_numbers_and_strings() -> None:
    assert parse_amount(" 5.25 ") == Decimal("5.25")
    assert parse_amount(3) == Decimal("3")


def test_parse_token_amount_rejects_sub_micro_precision() -> None:
    assert parse_token_amount("1.000001") == Decimal("1.000001")
    with pytest.raises(InputError):
        parse_token_amount("1.0000001")


def test_to_micro_units_truncates() -> None:
    assert to_micro_units(Decimal("2.50")) == 2_500_000
    assert to_micro_units(Decimal("0.0000019")) == 1


def test_format_fee_breakdown_names_chain() -> None:
    text = format_fee_breakdown(calculate_fee("10"), "Base Sepolia")
    assert "Base Sepolia" in text
    assert "9.9999 USDC" in text
    assert "0.000100 USDC" in text
