from datetime import date
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model


class LineItemFactory(factory.DictFactory):
    description = factory.Sequence(lambda n: f"Consulting block {n}")
    quantity = Decimal("1")
    unit_price = Decimal("100.00")
    tax_rate = Decimal("0")


class QuotePayloadFactory(factory.DictFactory):
    client_id = factory.Sequence(lambda n: f"client-{n}")
    company_id = "company-1"
    discount_value = Decimal("0")
    discount_type = "fixed"
    notes = ""
    line_items = factory.List([factory.SubFactory(LineItemFactory)])


class InvoicePayloadFactory(QuotePayloadFactory):
    payment_terms = "net_30"


class RecurringScheduleDataFactory(factory.DictFactory):
    name = factory.Sequence(lambda n: f"Monthly retainer {n}")
    frequency = "monthly"
    interval_count = 1
    start_date = date(2025, 1, 31)
    template_data = factory.Dict({
        "client_id": "client-recurring",
        "payment_terms": "net_15",
        "line_items": factory.List([factory.Dict({
            "description": "Retainer",
            "quantity": "1",
            "unit_price": "500.00",
            "tax_rate": "0",
        })]),
    })


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()
        django_get_or_create = ("username",)

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.django.Password("LedgerPass123!")
    is_active = True
