from datetime import date
from decimal import Decimal

import pytest

from invoicing.exceptions import InvalidStateError
from tests.factories import LineItemFactory, QuotePayloadFactory


@pytest.fixture
def accepted_quote(engine, user_id):
    quote = engine.quotes.create_quote(user_id, QuotePayloadFactory(
        client_id="acme",
        discount_value="5",
        notes="Thanks for the business",
        line_items=[
            LineItemFactory(description="Design", quantity="2", unit_price="50.00", tax_rate="10"),
            LineItemFactory(description="Hosting", quantity="1", unit_price="20.00"),
        ],
    ))
    return engine.quotes.update_quote_status(user_id, quote["id"], "accepted")


class TestQuoteConversion:
    def test_invoice_copies_quote(self, engine, user_id, accepted_quote):
        invoice = engine.converter.convert(user_id, accepted_quote["id"], "net_15")
        assert invoice["quote_id"] == accepted_quote["id"]
        assert invoice["client_id"] == "acme"
        assert invoice["status"] == "draft"
        assert invoice["total"] == accepted_quote["total"] == Decimal("125.00")
        assert invoice["due_date"] == date(2025, 1, 30)
        assert [item["description"] for item in invoice["line_items"]] == ["Design", "Hosting"]
        assert invoice["notes"] == "Thanks for the business"

    def test_quote_is_linked_and_locked(self, engine, user_id, accepted_quote):
        invoice = engine.converter.convert(user_id, accepted_quote["id"])
        quote = engine.quotes.get_quote(user_id, accepted_quote["id"])
        assert quote["converted_to_invoice_id"] == invoice["id"]
        with pytest.raises(InvalidStateError):
            engine.quotes.update_quote(user_id, quote["id"], {"notes": "changed"})

    def test_second_conversion_rejected(self, engine, user_id, accepted_quote, store):
        engine.converter.convert(user_id, accepted_quote["id"])
        with pytest.raises(InvalidStateError) as exc:
            engine.converter.convert(user_id, accepted_quote["id"])
        assert exc.value.error_code == "QUOTE_ALREADY_CONVERTED"
        assert len(store.query("invoices", {"quote_id": accepted_quote["id"]})) == 1

    def test_create_invoice_with_quote_id_also_guards(self, engine, user_id, accepted_quote):
        engine.converter.convert(user_id, accepted_quote["id"])
        payload = engine.quotes.get_quote(user_id, accepted_quote["id"])
        with pytest.raises(InvalidStateError):
            engine.invoices.create_invoice(user_id, {
                "quote_id": accepted_quote["id"],
                "line_items": [LineItemFactory()],
                "client_id": payload["client_id"],
            })

    def test_only_accepted_quotes_convert(self, engine, user_id):
        quote = engine.quotes.create_quote(user_id, QuotePayloadFactory())
        with pytest.raises(InvalidStateError) as exc:
            engine.converter.convert(user_id, quote["id"])
        assert exc.value.error_code == "QUOTE_NOT_ACCEPTED"

    def test_failed_insert_leaves_quote_unconverted(self, engine, user_id, accepted_quote, store):
        original = store.create

        def create(table, record):
            if table == "invoice_line_items":
                raise RuntimeError("line item write failed")
            return original(table, record)

        store.create = create
        with pytest.raises(RuntimeError):
            engine.converter.convert(user_id, accepted_quote["id"])
        store.create = original

        assert store.query("invoices") == []
        assert store.get_by_id("quotes", accepted_quote["id"])["converted_to_invoice_id"] is None
