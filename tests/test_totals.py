from decimal import Decimal

import pytest

from invoicing.exceptions import ValidationError
from invoicing.services.totals import compute_document_totals, compute_line_total, round_money, to_decimal


class TestLineTotals:
    def test_line_total_includes_tax(self):
        line = compute_line_total("2", "50.00", "10")
        assert line.subtotal == Decimal("100.00")
        assert line.tax == Decimal("10.00")
        assert line.total == Decimal("110.00")

    def test_half_cent_rounds_up(self):
        line = compute_line_total("1", "0.125", "0")
        assert line.subtotal == Decimal("0.13")

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError) as exc:
            compute_line_total("0", "10", "0")
        assert "quantity" in exc.value.errors

    def test_tax_rate_over_100_rejected(self):
        with pytest.raises(ValidationError) as exc:
            compute_line_total("1", "10", "101")
        assert "tax_rate" in exc.value.errors

    def test_non_numeric_rejected(self):
        with pytest.raises(ValidationError):
            compute_line_total("abc", "10", "0")


class TestDocumentTotals:
    items = [
        {"quantity": "2", "unit_price": "50.00", "tax_rate": "10"},
    ]

    def test_fixed_discount(self):
        totals = compute_document_totals(self.items, "5", "fixed")
        assert totals.subtotal == Decimal("100.00")
        assert totals.tax_total == Decimal("10.00")
        assert totals.discount_amount == Decimal("5.00")
        assert totals.total == Decimal("105.00")

    def test_percentage_discount_applies_to_subtotal(self):
        totals = compute_document_totals(self.items, "10", "percentage")
        assert totals.discount_value == Decimal("10.00")
        assert totals.discount_amount == Decimal("10.00")
        assert totals.total == Decimal("100.00")

    def test_order_does_not_change_totals(self):
        items = [
            {"quantity": "3", "unit_price": "19.99", "tax_rate": "7.5"},
            {"quantity": "1", "unit_price": "0.05", "tax_rate": "20"},
            {"quantity": "2.5", "unit_price": "12.34", "tax_rate": "0"},
        ]
        forward = compute_document_totals(items, "3", "fixed")
        backward = compute_document_totals(list(reversed(items)), "3", "fixed")
        assert forward == backward

    def test_total_never_negative(self):
        totals = compute_document_totals([{"quantity": "1", "unit_price": "10"}], "50", "fixed")
        assert totals.total == Decimal("0.00")

    def test_percentage_over_100_rejected(self):
        with pytest.raises(ValidationError) as exc:
            compute_document_totals(self.items, "150", "percentage")
        assert "discount_value" in exc.value.errors

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError):
            compute_document_totals(self.items, "-1", "fixed")

    def test_unknown_discount_type_rejected(self):
        with pytest.raises(ValidationError) as exc:
            compute_document_totals(self.items, "1", "bogus")
        assert "discount_type" in exc.value.errors

    def test_errors_are_keyed_by_line_index(self):
        items = [
            {"quantity": "1", "unit_price": "10"},
            {"quantity": "0", "unit_price": "-1"},
        ]
        with pytest.raises(ValidationError) as exc:
            compute_document_totals(items)
        assert set(exc.value.errors) == {"line_items.1.quantity", "line_items.1.unit_price"}

    def test_empty_document(self):
        totals = compute_document_totals([])
        assert totals.total == Decimal("0.00")


def test_to_decimal_rejects_booleans_and_infinity():
    with pytest.raises(ValidationError):
        to_decimal(True)
    with pytest.raises(ValidationError):
        to_decimal("Infinity")
    assert to_decimal(None) == Decimal("0")


def test_round_money():
    assert round_money(Decimal("2.675")) == Decimal("2.68")
