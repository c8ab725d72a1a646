"""Tests for money helpers and result objects."""

from __future__ import annotations

from decimal import Decimal

import pytest

from token_bazaar.domain.models import SettlementResult, compute_discount_percent, to_minor_units


class TestMinorUnits:
    def test_whole_amount(self) -> None:
        assert to_minor_units(Decimal("38000"), 100) == 3800000

    def test_fractional_amount(self) -> None:
        assert to_minor_units(Decimal("380.50"), 100) == 38050

    def test_rounds_half_up(self) -> None:
        assert to_minor_units(Decimal("380.005"), 100) == 38001
        assert to_minor_units(Decimal("380.004"), 100) == 38000

    def test_zero_decimal_currency(self) -> None:
        assert to_minor_units(Decimal("1500"), 1) == 1500


class TestDiscountPercent:
    @pytest.mark.parametrize(
        ("asking", "market", "expected"),
        [
            ("38000", "42000", "9.5"),
            ("100", "100", "0.0"),
            ("50", "200", "75.0"),
            ("1", "3", "66.7"),
        ],
    )
    def test_discount(self, asking: str, market: str, expected: str) -> None:
        assert compute_discount_percent(Decimal(asking), Decimal(market)) == Decimal(expected)

    def test_above_market_floors_at_zero(self) -> None:
        assert compute_discount_percent(Decimal("120"), Decimal("100")) == Decimal("0.0")


class TestSettlementResult:
    def test_to_dict(self) -> None:
        result = SettlementResult(success=True, message="ok", transaction_id="7", release_tx_hash="0x1")
        assert result.to_dict() == {
            "success": True,
            "message": "ok",
            "release_tx_hash": "0x1",
            "transaction_id": "7",
        }
