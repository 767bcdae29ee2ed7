from datetime import date
from decimal import Decimal

import pytest

from invoicing.exceptions import ConcurrentUpdateError, InvalidStateError, NotFoundError, ValidationError
from tests.factories import LineItemFactory, QuotePayloadFactory


class TestCreateQuote:
    def test_numbers_totals_and_default_expiry(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory(
            line_items=[LineItemFactory(quantity="2", unit_price="50.00", tax_rate="10")],
            discount_value="5",
        ))
        assert quote["quote_number"] == "QT-2025-0001"
        assert quote["status"] == "draft"
        assert quote["total"] == Decimal("105.00")
        assert quote["issue_date"] == date(2025, 1, 15)
        assert quote["expiry_date"] == date(2025, 2, 14)
        assert len(quote["line_items"]) == 1
        assert quote["line_items"][0]["line_total"] == Decimal("110.00")

    def test_requires_line_items(self, engine, user_id):
        with pytest.raises(ValidationError) as exc:
            engine.quotes.create_quote(user_id, QuotePayloadFactory(line_items=[]))
        assert "line_items" in exc.value.errors

    def test_expiry_before_issue_rejected(self, engine, user_id):
        with pytest.raises(ValidationError):
            engine.quotes.create_quote(user_id, QuotePayloadFactory(
                issue_date="2025-01-10", expiry_date="2025-01-09",
            ))

    def test_discount_amount_alias(self, engine, user_id):
        payload = QuotePayloadFactory(line_items=[LineItemFactory(unit_price="200")])
        del payload["discount_value"]
        payload["discount_amount"] = "20"
        quote = engine.quotes.create_quote(user_id, payload)
        assert quote["total"] == Decimal("180.00")


class TestQuoteLifecycle:
    def test_other_users_cannot_see_quote(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        with pytest.raises(NotFoundError):
            engine.quotes.get_quote("someone-else", quote["id"])

    def test_sent_quote_expires_on_read(self, engine, user_id, clock):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory(expiry_date="2025-01-20"))
        engine.quotes.mark_sent(user_id, quote["id"])
        clock.set(2025, 1, 21)
        assert engine.quotes.get_quote(user_id, quote["id"])["status"] == "expired"
        assert engine.quotes.list_quotes(user_id, {"status": "sent"}) == []

    def test_expire_quotes_persists(self, engine, user_id, clock, store):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory(expiry_date="2025-01-20"))
        engine.quotes.mark_sent(user_id, quote["id"])
        clock.set(2025, 2, 1)
        assert engine.quotes.expire_quotes() == 1
        assert store.get_by_id("quotes", quote["id"])["status"] == "expired"

    def test_update_replaces_line_items_and_recomputes(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        updated = engine.quotes.update_quote(user_id, quote["id"], {
            "line_items": [LineItemFactory(unit_price="10"), LineItemFactory(unit_price="15")],
        })
        assert updated["subtotal"] == Decimal("25.00")
        assert [item["unit_price"] for item in updated["line_items"]] == [Decimal("10"), Decimal("15")]

    def test_discount_only_update_uses_stored_items(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory(line_items=[LineItemFactory(unit_price="80")]))
        updated = engine.quotes.update_quote(user_id, quote["id"], {"discount_value": "10", "discount_type": "percentage"})
        assert updated["discount_amount"] == Decimal("8.00")
        assert updated["total"] == Decimal("72.00")

    def test_stale_version_rejected(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        engine.quotes.update_quote(user_id, quote["id"], {"notes": "first"})
        with pytest.raises(ConcurrentUpdateError):
            engine.quotes.update_quote(user_id, quote["id"], {"notes": "second"}, expected_version=quote["version"])

    def test_declined_quote_cannot_be_sent(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        engine.quotes.update_quote_status(user_id, quote["id"], "declined")
        with pytest.raises(InvalidStateError):
            engine.quotes.mark_sent(user_id, quote["id"])

    def test_invalid_status_rejected(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        with pytest.raises(ValidationError):
            engine.quotes.update_quote_status(user_id, quote["id"], "archived")

    def test_duplicate_is_new_draft(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory(status="sent"))
        copy = engine.quotes.duplicate_quote(user_id, quote["id"])
        assert copy["id"] != quote["id"]
        assert copy["status"] == "draft"
        assert copy["quote_number"] == "QT-2025-0002"
        assert copy["total"] == quote["total"]

    def test_delete_removes_line_items(self, engine, user_id, store):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        engine.quotes.delete_quote(user_id, quote["id"])
        assert store.query("quote_line_items", {"quote_id": quote["id"]}) == []
        with pytest.raises(NotFoundError):
            engine.quotes.get_quote(user_id, quote["id"])

    def test_list_filters_and_order(self, engine, user_id, clock):
        first = engine.quotes.create_quote(user_id, QuotePayloadFactory(client_id="acme"))
        clock.advance(minutes=1)
        second = engine.quotes.create_quote(user_id, QuotePayloadFactory(client_id="acme"))
        engine.quotes.create_quote(user_id, QuotePayloadFactory(client_id="globex"))
        quotes = engine.quotes.list_quotes(user_id, {"client_id": "acme"})
        assert [q["id"] for q in quotes] == [second["id"], first["id"]]
