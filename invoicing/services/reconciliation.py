"""
Time-dependent status rules.

These functions are pure: they take a document record and today's date
and return the status the document should have. Callers decide whether
to persist the result.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict

from ..constants import OPEN_INVOICE_STATUSES, InvoiceStatus, QuoteStatus
from .dates import as_date
from .totals import to_decimal


def reconcile_quote_status(quote: Dict[str, Any], today: date) -> str:
    status = quote.get('status')
    expiry = as_date(quote.get('expiry_date'))
    if status == QuoteStatus.SENT and expiry and expiry < today:
        return QuoteStatus.EXPIRED.value
    return status


def reconcile_invoice_status(invoice: Dict[str, Any], today: date) -> str:
    status = invoice.get('status')
    due = as_date(invoice.get('due_date'))
    if due is None:
        return status
    if status in OPEN_INVOICE_STATUSES and due < today:
        return InvoiceStatus.OVERDUE.value
    # A due date pushed back into the future reopens an overdue invoice.
    if status == InvoiceStatus.OVERDUE and due >= today:
        if to_decimal(invoice.get('amount_paid')) > 0:
            return InvoiceStatus.PARTIAL.value
        return InvoiceStatus.SENT.value
    return status


def status_after_payment(current: str, amount_paid: Decimal, balance_due: Decimal) -> str:
    if balance_due <= 0:
        return InvoiceStatus.PAID.value
    if amount_paid > 0:
        return InvoiceStatus.PARTIAL.value
    return current


def status_after_payment_removal(current: str, amount_paid: Decimal, balance_due: Decimal,
                                 due_date: Any, today: date) -> str:
    if amount_paid <= 0:
        if current in (InvoiceStatus.DRAFT, InvoiceStatus.VOID):
            return current
        due = as_date(due_date)
        if due and due < today:
            return InvoiceStatus.OVERDUE.value
        return InvoiceStatus.SENT.value
    if balance_due > 0:
        return InvoiceStatus.PARTIAL.value
    return current
