from datetime import date
from io import StringIO

import pytest
from django.core.management import call_command

from invoicing.engine import get_engine
from invoicing.models import Invoice
from tests.factories import InvoicePayloadFactory, RecurringScheduleDataFactory


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out, stderr=out)
    return out.getvalue()


@pytest.mark.django_db
class TestProcessRecurringSchedules:
    def test_dry_run_creates_nothing(self):
        schedule = get_engine().recurring.create_schedule("u1", RecurringScheduleDataFactory())
        output = run("process_recurring_schedules", "--date", "2025-01-31", "--dry-run")
        assert "[DRY RUN] Found 1 schedules" in output
        assert schedule["id"] in output
        assert not Invoice.objects.exists()

    def test_generates_invoices(self):
        get_engine().recurring.create_schedule("u1", RecurringScheduleDataFactory())
        output = run("process_recurring_schedules", "--date", "2025-01-31")
        assert "1 created" in output
        assert Invoice.objects.filter(is_recurring=True).count() == 1

    def test_rejects_bad_date(self):
        output = run("process_recurring_schedules", "--date", "31/01/2025")
        assert "Invalid date format" in output


@pytest.mark.django_db
class TestReconcileDocumentStatuses:
    def test_marks_overdue_and_rebuilds(self):
        engine = get_engine()
        invoice = engine.invoices.create_invoice("u1", InvoicePayloadFactory(
            status="sent", issue_date=date(2025, 1, 1), payment_terms="net_7",
        ))
        output = run("reconcile_document_statuses", "--rebuild-balances")
        assert "Invoice statuses changed: 1" in output
        assert "Balances rebuilt: 0 changed, 0 failed" in output
        assert Invoice.objects.get(pk=invoice["id"]).status == "overdue"
