"""Wires the engine services around one record store."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.utils import timezone

from .constants import DEFAULT_QUOTE_VALIDITY_DAYS, PaymentTerms
from .services import (
    DocumentNumberAssigner,
    InvoiceService,
    PaymentLedger,
    QuoteConverter,
    QuoteService,
    RecurringScheduleService,
)
from .store.base import RecordStore

DEFAULT_CONFIG = {
    'STORE_RETRY_ATTEMPTS': 3,
    'STORE_RETRY_BACKOFF': 0.05,
    'DEFAULT_PAYMENT_TERMS': PaymentTerms.NET_30.value,
    'QUOTE_VALIDITY_DAYS': DEFAULT_QUOTE_VALIDITY_DAYS,
}


@dataclass
class InvoicingEngine:
    store: RecordStore
    clock: Callable
    numbering: DocumentNumberAssigner
    quotes: QuoteService
    invoices: InvoiceService
    payments: PaymentLedger
    converter: QuoteConverter
    recurring: RecurringScheduleService

    @classmethod
    def build(cls, store: RecordStore, clock: Optional[Callable] = None,
              config: Optional[Dict[str, Any]] = None) -> 'InvoicingEngine':
        config = {**DEFAULT_CONFIG, **(config or {})}
        clock = clock or timezone.now
        retry = {
            'retry_attempts': int(config['STORE_RETRY_ATTEMPTS']),
            'retry_backoff': float(config['STORE_RETRY_BACKOFF']),
        }

        numbering = DocumentNumberAssigner(store, clock)
        quotes = QuoteService(store, numbering, clock, validity_days=int(config['QUOTE_VALIDITY_DAYS']), **retry)
        invoices = InvoiceService(store, numbering, clock,
                                  default_payment_terms=config['DEFAULT_PAYMENT_TERMS'], quotes=quotes, **retry)
        return cls(
            store=store,
            clock=clock,
            numbering=numbering,
            quotes=quotes,
            invoices=invoices,
            payments=PaymentLedger(store, invoices, clock, **retry),
            converter=QuoteConverter(quotes, invoices, clock, **retry),
            recurring=RecurringScheduleService(store, invoices, clock, **retry),
        )


def get_engine(store: Optional[RecordStore] = None, clock: Optional[Callable] = None) -> InvoicingEngine:
    """Engine over the Django store, configured from ``settings.INVOICING``."""
    if store is None:
        from .store.django_store import DjangoRecordStore
        store = DjangoRecordStore()
    return InvoicingEngine.build(store, clock=clock, config=getattr(settings, 'INVOICING', {}))
