"""
LedgerFlow Services Layer

The invoicing engine, split the same way as the rest of the project:
- Models / record store: persistence only
- Services: business rules, status machines, transactions
- API / management commands: request parsing, auth, response mapping

Services never reach for a global store; each one is constructed with the
store it works against (see ``invoicing.engine``).
"""

from .conversion_service import QuoteConverter
from .invoice_service import InvoiceService
from .numbering import DocumentNumberAssigner
from .payment_service import PaymentLedger
from .quote_service import QuoteService
from .recurring_service import RecurringScheduleService
from .totals import DocumentTotals, LineTotals, compute_document_totals, compute_line_total

__all__ = [
    "QuoteConverter",
    "InvoiceService",
    "DocumentNumberAssigner",
    "PaymentLedger",
    "QuoteService",
    "RecurringScheduleService",
    "DocumentTotals",
    "LineTotals",
    "compute_document_totals",
    "compute_line_total",
]
