from decimal import Decimal

import pytest

from invoicing.exceptions import ConcurrentUpdateError, InvalidStateError, NotFoundError, ValidationError
from tests.factories import InvoicePayloadFactory, LineItemFactory


@pytest.fixture
def invoice(engine, user_id):
    return engine.invoices.create_invoice(user_id, InvoicePayloadFactory(
        status="sent",
        discount_value="5",
        line_items=[LineItemFactory(quantity="2", unit_price="50.00", tax_rate="10")],
    ))


class TestRecordPayment:
    def test_full_payment_marks_paid(self, engine, user_id, invoice, clock):
        assert invoice["total"] == Decimal("105.00")
        updated, payment = engine.payments.record_payment(user_id, invoice["id"], {"amount": "105.00"})
        assert updated["status"] == "paid"
        assert updated["balance_due"] == Decimal("0.00")
        assert updated["amount_paid"] == Decimal("105.00")
        assert updated["paid_at"] == clock()
        assert payment["payment_method"] == "other"

    def test_partial_payments_accumulate(self, engine, user_id, invoice):
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "50"})
        updated, _ = engine.payments.record_payment(user_id, invoice["id"], {"amount": "25.50"})
        assert updated["status"] == "partial"
        assert updated["amount_paid"] == Decimal("75.50")
        assert updated["balance_due"] == Decimal("29.50")
        assert len(updated["payments"]) == 2

    def test_overpayment_rejected(self, engine, user_id, invoice):
        with pytest.raises(ValidationError) as exc:
            engine.payments.record_payment(user_id, invoice["id"], {"amount": "105.01"})
        assert exc.value.error_code == "INVOICE_OVERPAYMENT"

    def test_non_positive_amount_rejected(self, engine, user_id, invoice):
        with pytest.raises(ValidationError):
            engine.payments.record_payment(user_id, invoice["id"], {"amount": "0"})

    def test_void_invoice_rejects_payment(self, engine, user_id, invoice):
        engine.invoices.delete_invoice(user_id, invoice["id"])
        with pytest.raises(InvalidStateError):
            engine.payments.record_payment(user_id, invoice["id"], {"amount": "1"})

    def test_lost_race_is_retried_once(self, engine, user_id, invoice, store):
        original_update = store.update
        calls = {"invoices": 0}

        def flaky_update(table, record_id, patch, expected_version=None):
            if table == "invoices":
                calls["invoices"] += 1
                if calls["invoices"] == 1:
                    raise ConcurrentUpdateError("simulated race")
            return original_update(table, record_id, patch, expected_version=expected_version)

        store.update = flaky_update
        updated, _ = engine.payments.record_payment(user_id, invoice["id"], {"amount": "5"})
        assert calls["invoices"] == 2
        assert len(store.query("invoice_payments", {"invoice_id": invoice["id"]})) == 1
        assert updated["amount_paid"] == Decimal("5.00")


class TestDeletePayment:
    def test_removing_payment_after_due_date_reverts_to_overdue(self, engine, user_id, invoice, clock):
        _, payment = engine.payments.record_payment(user_id, invoice["id"], {"amount": "105"})
        clock.set(2025, 3, 1)
        updated = engine.payments.delete_payment(user_id, invoice["id"], payment["id"])
        assert updated["status"] == "overdue"
        assert updated["balance_due"] == Decimal("105.00")
        assert updated["amount_paid"] == Decimal("0.00")
        assert updated["paid_at"] is None

    def test_removing_one_of_two_payments(self, engine, user_id, invoice):
        _, first = engine.payments.record_payment(user_id, invoice["id"], {"amount": "100"})
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "5"})
        updated = engine.payments.delete_payment(user_id, invoice["id"], first["id"])
        assert updated["status"] == "partial"
        assert updated["balance_due"] == Decimal("100.00")

    def test_payment_from_another_invoice_not_found(self, engine, user_id, invoice):
        other = engine.invoices.create_invoice(user_id, InvoicePayloadFactory(status="sent"))
        _, payment = engine.payments.record_payment(user_id, other["id"], {"amount": "1"})
        with pytest.raises(NotFoundError):
            engine.payments.delete_payment(user_id, invoice["id"], payment["id"])


class TestRecalculateBalance:
    def test_rebuilds_drifted_balance(self, engine, user_id, invoice, store):
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "50"})
        current = store.get_by_id("invoices", invoice["id"])
        store.update("invoices", invoice["id"], {"amount_paid": Decimal("0"), "balance_due": Decimal("105")},
                     expected_version=current["version"])

        rebuilt = engine.payments.recalculate_balance(user_id, invoice["id"])
        assert rebuilt["amount_paid"] == Decimal("50.00")
        assert rebuilt["balance_due"] == Decimal("55.00")
        assert rebuilt["status"] == "partial"

    def test_payments_listed_newest_first(self, engine, user_id, invoice):
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "1", "payment_date": "2025-01-10"})
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "2", "payment_date": "2025-01-12"})
        payments = engine.payments.list_payments(user_id, invoice["id"])
        assert [p["amount"] for p in payments] == [Decimal("2.00"), Decimal("1.00")]
