import pytest

from invoicing.exceptions import ConcurrentUpdateError, TransientStoreError
from invoicing.store.base import run_with_retry
from tests.factories import InvoicePayloadFactory, QuotePayloadFactory, RecurringScheduleDataFactory


def fail_first(store, method, table, exc):
    """Make ``store.<method>`` raise ``exc`` on its first call for ``table``."""
    original = getattr(store, method)
    calls = {"count": 0}

    def flaky(tbl, *args, **kwargs):
        if tbl == table:
            calls["count"] += 1
            if calls["count"] == 1:
                raise exc
        return original(tbl, *args, **kwargs)

    setattr(store, method, flaky)
    return calls


class TestRunWithRetry:
    def test_gives_up_after_attempts(self):
        calls = []

        def always_down():
            calls.append(1)
            raise TransientStoreError("database unavailable")

        with pytest.raises(TransientStoreError):
            run_with_retry(always_down, attempts=3, backoff=0)
        assert len(calls) == 3

    def test_pinned_version_conflict_is_not_retried(self):
        calls = []

        def stale():
            calls.append(1)
            raise ConcurrentUpdateError("stale read")

        with pytest.raises(ConcurrentUpdateError):
            run_with_retry(stale, attempts=3, backoff=0, retry_conflicts=False)
        assert len(calls) == 1


class TestQuoteRetries:
    def test_create_survives_store_blip(self, engine, user_id, store):
        calls = fail_first(store, "create", "quotes", TransientStoreError("connection reset"))
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        assert calls["count"] == 2
        assert quote["quote_number"] == "QT-2025-0001"
        assert len(store.query("quotes")) == 1
        assert len(quote["line_items"]) == 1

    def test_status_change_survives_lost_race(self, engine, user_id, store):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        calls = fail_first(store, "update", "quotes", ConcurrentUpdateError("simulated race"))
        updated = engine.quotes.update_quote_status(user_id, quote["id"], "accepted")
        assert calls["count"] == 2
        assert updated["status"] == "accepted"

    def test_delete_survives_store_blip(self, engine, user_id, store):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        fail_first(store, "delete", "quotes", TransientStoreError("connection reset"))
        engine.quotes.delete_quote(user_id, quote["id"])
        assert store.query("quotes") == []
        assert store.query("quote_line_items") == []


class TestInvoiceRetries:
    def test_create_keeps_its_number_across_retries(self, engine, user_id, store):
        calls = fail_first(store, "create", "invoices", TransientStoreError("connection reset"))
        invoice = engine.invoices.create_invoice(user_id, InvoicePayloadFactory())
        assert calls["count"] == 2
        assert invoice["invoice_number"] == "INV-2025-0001"
        assert len(store.query("invoices")) == 1

    def test_update_rereads_after_lost_race(self, engine, user_id, store):
        invoice = engine.invoices.create_invoice(user_id, InvoicePayloadFactory())
        calls = fail_first(store, "update", "invoices", ConcurrentUpdateError("simulated race"))
        updated = engine.invoices.update_invoice(user_id, invoice["id"], {"notes": "net 30 agreed"})
        assert calls["count"] == 2
        assert updated["notes"] == "net 30 agreed"

    def test_stale_pinned_version_fails_without_retry(self, engine, user_id, store):
        invoice = engine.invoices.create_invoice(user_id, InvoicePayloadFactory())
        engine.invoices.update_invoice(user_id, invoice["id"], {"notes": "first"})
        original = store.update
        calls = {"count": 0}

        def counting(table, *args, **kwargs):
            calls["count"] += 1
            return original(table, *args, **kwargs)

        store.update = counting
        with pytest.raises(ConcurrentUpdateError):
            engine.invoices.update_invoice(user_id, invoice["id"], {"notes": "second"},
                                           expected_version=invoice["version"])
        assert calls["count"] == 1

    def test_send_and_void_survive_store_blips(self, engine, user_id, store):
        invoice = engine.invoices.create_invoice(user_id, InvoicePayloadFactory())
        fail_first(store, "update", "invoices", TransientStoreError("connection reset"))
        assert engine.invoices.mark_sent(user_id, invoice["id"])["status"] == "sent"

        fail_first(store, "update", "invoices", TransientStoreError("connection reset"))
        assert engine.invoices.delete_invoice(user_id, invoice["id"])["status"] == "void"

    def test_persistent_outage_surfaces(self, engine, user_id, store):
        def down(table, *args, **kwargs):
            raise TransientStoreError("database unavailable")

        store.create = down
        with pytest.raises(TransientStoreError):
            engine.quotes.create_quote(user_id, QuotePayloadFactory())


class TestScheduleRetries:
    def test_pause_survives_lost_race(self, engine, user_id, store):
        schedule = engine.recurring.create_schedule(user_id, RecurringScheduleDataFactory())
        calls = fail_first(store, "update", "recurring_schedules", ConcurrentUpdateError("simulated race"))
        paused = engine.recurring.pause_schedule(user_id, schedule["id"])
        assert calls["count"] == 2
        assert paused["is_active"] is False
