from datetime import date
from decimal import Decimal

from invoicing.services.reconciliation import (
    reconcile_invoice_status,
    reconcile_quote_status,
    status_after_payment,
    status_after_payment_removal,
)

TODAY = date(2025, 1, 15)


class TestQuoteReconciliation:
    def test_sent_quote_past_expiry_expires(self):
        assert reconcile_quote_status({"status": "sent", "expiry_date": date(2025, 1, 14)}, TODAY) == "expired"

    def test_expiry_today_is_still_valid(self):
        assert reconcile_quote_status({"status": "sent", "expiry_date": TODAY}, TODAY) == "sent"

    def test_draft_and_accepted_never_expire(self):
        for status in ("draft", "accepted"):
            assert reconcile_quote_status({"status": status, "expiry_date": date(2024, 1, 1)}, TODAY) == status


class TestInvoiceReconciliation:
    def test_open_invoice_past_due_is_overdue(self):
        for status in ("sent", "viewed", "partial"):
            invoice = {"status": status, "due_date": date(2025, 1, 14)}
            assert reconcile_invoice_status(invoice, TODAY) == "overdue"

    def test_draft_paid_void_untouched(self):
        for status in ("draft", "paid", "void"):
            invoice = {"status": status, "due_date": date(2024, 1, 1)}
            assert reconcile_invoice_status(invoice, TODAY) == status

    def test_overdue_reopens_when_due_date_moves_forward(self):
        assert reconcile_invoice_status(
            {"status": "overdue", "due_date": date(2025, 2, 1), "amount_paid": Decimal("0")}, TODAY
        ) == "sent"
        assert reconcile_invoice_status(
            {"status": "overdue", "due_date": date(2025, 2, 1), "amount_paid": Decimal("5")}, TODAY
        ) == "partial"


class TestPaymentStatus:
    def test_full_payment_is_paid(self):
        assert status_after_payment("sent", Decimal("105"), Decimal("0")) == "paid"

    def test_partial_payment(self):
        assert status_after_payment("overdue", Decimal("50"), Decimal("55")) == "partial"

    def test_removing_last_payment_past_due(self):
        assert status_after_payment_removal("paid", Decimal("0"), Decimal("105"), date(2025, 1, 1), TODAY) == "overdue"

    def test_removing_last_payment_before_due(self):
        assert status_after_payment_removal("partial", Decimal("0"), Decimal("105"), date(2025, 2, 1), TODAY) == "sent"

    def test_removing_one_of_several_payments(self):
        assert status_after_payment_removal("paid", Decimal("50"), Decimal("55"), date(2025, 2, 1), TODAY) == "partial"

    def test_draft_stays_draft(self):
        assert status_after_payment_removal("draft", Decimal("0"), Decimal("10"), date(2025, 1, 1), TODAY) == "draft"
