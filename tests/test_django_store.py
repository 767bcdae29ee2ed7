from datetime import date
from decimal import Decimal

import pytest

from invoicing.engine import InvoicingEngine
from invoicing.exceptions import ConcurrentUpdateError, InvalidStateError, NotFoundError
from invoicing.models import DocumentSequence, Invoice, Quote
from invoicing.store.django_store import DjangoRecordStore
from tests.factories import LineItemFactory, QuotePayloadFactory, RecurringScheduleDataFactory


@pytest.fixture
def db_store(db):
    return DjangoRecordStore()


@pytest.fixture
def db_engine(db_store, clock):
    return InvoicingEngine.build(db_store, clock=clock, config={"STORE_RETRY_BACKOFF": 0})


@pytest.mark.django_db
class TestDjangoRecordStore:
    def test_create_assigns_id_and_version(self, db_store):
        quote = db_store.create("quotes", {
            "user_id": "u1", "quote_number": "QT-1", "status": "draft", "issue_date": date(2025, 1, 1),
        })
        assert isinstance(quote["id"], str)
        assert quote["version"] == 1
        assert Quote.objects.filter(pk=quote["id"]).exists()

    def test_versioned_update(self, db_store):
        quote = db_store.create("quotes", {
            "user_id": "u1", "quote_number": "QT-1", "status": "draft", "issue_date": date(2025, 1, 1),
        })
        updated = db_store.update("quotes", quote["id"], {"status": "sent"}, expected_version=1)
        assert updated["version"] == 2
        with pytest.raises(ConcurrentUpdateError):
            db_store.update("quotes", quote["id"], {"status": "accepted"}, expected_version=1)

    def test_update_missing_row(self, db_store):
        with pytest.raises(NotFoundError):
            db_store.update("quotes", "00000000-0000-0000-0000-000000000000", {"status": "sent"})

    def test_malformed_id_reads_as_missing(self, db_store):
        assert db_store.get_by_id("quotes", "not-a-uuid") is None

    def test_query_any_of(self, db_store):
        for number, status in (("QT-1", "draft"), ("QT-2", "sent"), ("QT-3", "expired")):
            db_store.create("quotes", {
                "user_id": "u1", "quote_number": number, "status": status, "issue_date": date(2025, 1, 1),
            })
        rows = db_store.query("quotes", {"status": ["draft", "sent"]})
        assert sorted(r["quote_number"] for r in rows) == ["QT-1", "QT-2"]

    def test_increment_creates_then_advances(self, db_store):
        key = {"user_id": "u1", "document_type": "invoice", "year": 2025}
        assert db_store.increment("document_sequences", key, "last_value") == 1
        assert db_store.increment("document_sequences", key, "last_value") == 2
        assert DocumentSequence.objects.get(**key).last_value == 2

    def test_atomic_rolls_back(self, db_store):
        with pytest.raises(RuntimeError):
            with db_store.atomic():
                db_store.create("quotes", {
                    "user_id": "u1", "quote_number": "QT-1", "status": "draft", "issue_date": date(2025, 1, 1),
                })
                raise RuntimeError("abort")
        assert not Quote.objects.exists()


@pytest.mark.django_db
class TestEngineOnDatabase:
    def test_quote_to_paid_invoice(self, db_engine):
        quote = db_engine.quotes.create_quote("u1", QuotePayloadFactory(
            discount_value="5",
            line_items=[LineItemFactory(quantity="2", unit_price="50.00", tax_rate="10")],
        ))
        db_engine.quotes.update_quote_status("u1", quote["id"], "accepted")
        invoice = db_engine.converter.convert("u1", quote["id"])
        assert invoice["total"] == Decimal("105.00")

        with pytest.raises(InvalidStateError):
            db_engine.converter.convert("u1", quote["id"])
        assert Invoice.objects.filter(quote_id=quote["id"]).count() == 1

        db_engine.invoices.mark_sent("u1", invoice["id"])
        paid, _ = db_engine.payments.record_payment("u1", invoice["id"], {"amount": "105"})
        assert paid["status"] == "paid"
        assert paid["balance_due"] == Decimal("0.00")

    def test_recurring_run_is_idempotent(self, db_engine):
        schedule = db_engine.recurring.create_schedule("u1", RecurringScheduleDataFactory())
        assert db_engine.recurring.process_due_schedules(date(2025, 1, 31))["created"] == 1
        refreshed = db_engine.recurring.get_schedule("u1", schedule["id"])
        assert refreshed["next_run_date"] == date(2025, 2, 28)
        assert Invoice.objects.filter(recurring_schedule_id=schedule["id"]).count() == 1
