from datetime import date
from decimal import Decimal

import pytest

from invoicing.exceptions import InvalidStateError, NotFoundError, ValidationError
from tests.factories import InvoicePayloadFactory, LineItemFactory


def make_invoice(engine, user_id, **overrides):
    return engine.invoices.create_invoice(user_id, InvoicePayloadFactory(**overrides))


class TestCreateInvoice:
    def test_due_date_from_terms(self, engine, user_id):
        invoice = make_invoice(engine, user_id, payment_terms="net_15")
        assert invoice["invoice_number"] == "INV-2025-0001"
        assert invoice["due_date"] == date(2025, 1, 30)
        assert invoice["balance_due"] == invoice["total"]
        assert invoice["amount_paid"] == Decimal("0")
        assert invoice["payments"] == []

    def test_explicit_due_date_wins(self, engine, user_id):
        invoice = make_invoice(engine, user_id, payment_terms="custom", due_date="2025-03-01")
        assert invoice["due_date"] == date(2025, 3, 1)

    def test_due_before_issue_rejected(self, engine, user_id):
        with pytest.raises(ValidationError):
            make_invoice(engine, user_id, issue_date="2025-01-10", due_date="2025-01-01")

    def test_sent_invoice_stamps_sent_at(self, engine, user_id, clock):
        invoice = make_invoice(engine, user_id, status="sent")
        assert invoice["sent_at"] == clock()

    def test_cannot_start_paid(self, engine, user_id):
        with pytest.raises(ValidationError):
            make_invoice(engine, user_id, status="paid")

    def test_unknown_terms_rejected(self, engine, user_id):
        with pytest.raises(ValidationError) as exc:
            make_invoice(engine, user_id, payment_terms="net_90")
        assert "payment_terms" in exc.value.errors


class TestInvoiceLifecycle:
    def test_overdue_on_read_and_summary(self, engine, user_id, clock):
        invoice = make_invoice(engine, user_id, status="sent", payment_terms="net_7",
                               line_items=[LineItemFactory(unit_price="250")])
        make_invoice(engine, user_id)
        clock.set(2025, 1, 23)

        assert engine.invoices.get_invoice(user_id, invoice["id"])["status"] == "overdue"
        overdue = engine.invoices.list_invoices(user_id, {"overdue": True})
        assert [i["id"] for i in overdue] == [invoice["id"]]

        summary = engine.invoices.get_summary(user_id)
        assert summary["total_count"] == 2
        assert summary["draft_count"] == 1
        assert summary["overdue_count"] == 1
        assert summary["total_overdue"] == Decimal("250.00")
        assert summary["total_outstanding"] == Decimal("250.00")

    def test_due_on_day_is_not_overdue(self, engine, user_id, clock):
        invoice = make_invoice(engine, user_id, status="sent", payment_terms="net_7")
        clock.set(2025, 1, 22)
        assert engine.invoices.get_invoice(user_id, invoice["id"])["status"] == "sent"

    def test_extending_due_date_reopens_overdue(self, engine, user_id, clock):
        invoice = make_invoice(engine, user_id, status="sent", payment_terms="net_7")
        clock.set(2025, 2, 1)
        assert engine.invoices.reconcile_statuses() == 1
        updated = engine.invoices.update_invoice(user_id, invoice["id"], {"due_date": "2025-02-28"})
        assert updated["status"] == "sent"

    def test_mark_sent_then_viewed(self, engine, user_id):
        invoice = make_invoice(engine, user_id)
        sent = engine.invoices.mark_sent(user_id, invoice["id"])
        assert sent["status"] == "sent"
        assert engine.invoices.mark_viewed(user_id, invoice["id"])["status"] == "viewed"

    def test_viewed_is_ignored_for_drafts(self, engine, user_id):
        invoice = make_invoice(engine, user_id)
        assert engine.invoices.mark_viewed(user_id, invoice["id"])["status"] == "draft"

    def test_edit_cannot_set_ledger_status(self, engine, user_id):
        invoice = make_invoice(engine, user_id)
        with pytest.raises(InvalidStateError):
            engine.invoices.update_invoice(user_id, invoice["id"], {"status": "paid"})

    def test_status_follows_ledger_once_paid_into(self, engine, user_id):
        invoice = make_invoice(engine, user_id, status="sent", line_items=[LineItemFactory(unit_price="100")])
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "40"})

        for status in ("draft", "sent", "viewed"):
            with pytest.raises(InvalidStateError):
                engine.invoices.update_invoice(user_id, invoice["id"], {"status": status})

        current = engine.invoices.get_invoice(user_id, invoice["id"])
        assert current["status"] == "partial"
        assert current["amount_paid"] == Decimal("40.00")
        assert engine.invoices.get_summary(user_id)["draft_count"] == 0

    def test_content_edit_on_partly_paid_invoice(self, engine, user_id):
        invoice = make_invoice(engine, user_id, status="sent", line_items=[LineItemFactory(unit_price="100")])
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "40"})
        updated = engine.invoices.update_invoice(user_id, invoice["id"], {"notes": "PO 118", "status": "partial"})
        assert updated["status"] == "partial"
        assert updated["notes"] == "PO 118"

    def test_total_cannot_drop_below_paid(self, engine, user_id):
        invoice = make_invoice(engine, user_id, status="sent", line_items=[LineItemFactory(unit_price="100")])
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "60"})
        with pytest.raises(ValidationError):
            engine.invoices.update_invoice(user_id, invoice["id"], {"line_items": [LineItemFactory(unit_price="50")]})

    def test_line_item_edit_keeps_balance_consistent(self, engine, user_id):
        invoice = make_invoice(engine, user_id, status="sent", line_items=[LineItemFactory(unit_price="100")])
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "40"})
        updated = engine.invoices.update_invoice(user_id, invoice["id"], {
            "line_items": [LineItemFactory(unit_price="150")],
        })
        assert updated["total"] == Decimal("150.00")
        assert updated["balance_due"] == Decimal("110.00")
        assert updated["status"] == "partial"

    def test_void_locks_invoice(self, engine, user_id):
        invoice = make_invoice(engine, user_id)
        voided = engine.invoices.delete_invoice(user_id, invoice["id"])
        assert voided["status"] == "void"
        assert voided["voided_at"] is not None
        with pytest.raises(InvalidStateError) as exc:
            engine.invoices.update_invoice(user_id, invoice["id"], {"notes": "late edit"})
        assert exc.value.error_code == "INVOICE_LOCKED"

    def test_permanent_delete_cascades(self, engine, user_id, store):
        invoice = make_invoice(engine, user_id, status="sent")
        engine.payments.record_payment(user_id, invoice["id"], {"amount": "10"})
        engine.invoices.delete_invoice(user_id, invoice["id"], permanent=True)
        assert store.query("invoice_payments", {"invoice_id": invoice["id"]}) == []
        assert store.query("invoice_line_items", {"invoice_id": invoice["id"]}) == []
        with pytest.raises(NotFoundError):
            engine.invoices.get_invoice(user_id, invoice["id"])
