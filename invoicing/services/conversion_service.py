import logging
from typing import Any, Callable, Dict, Optional

from django.utils import timezone

from ..constants import InvoiceStatus, QuoteStatus
from ..exceptions import InvalidStateError
from ..store.base import RetryingService
from ..validation.errors import ErrorCode
from .dates import calculate_due_date, current_date
from .invoice_service import InvoiceService
from .line_items import strip_line_items
from .quote_service import QuoteService

logger = logging.getLogger(__name__)


class QuoteConverter(RetryingService):
    """Turns an accepted quote into an invoice, at most once per quote."""

    def __init__(self, quotes: QuoteService, invoices: InvoiceService, clock: Optional[Callable] = None,
                 retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.quotes = quotes
        self.invoices = invoices
        self.clock = clock or timezone.now
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def build_invoice_payload(self, user_id: str, quote_id: str,
                              payment_terms: Optional[str] = None) -> Dict[str, Any]:
        quote = self.quotes.get_quote(user_id, quote_id)
        if quote.get('converted_to_invoice_id'):
            raise InvalidStateError(
                f"Quote {quote['quote_number']} has already been converted to an invoice",
                error_code=ErrorCode.QUOTE_ALREADY_CONVERTED.value,
                quote_id=quote_id,
            )
        if quote['status'] != QuoteStatus.ACCEPTED:
            raise InvalidStateError(
                f"Only accepted quotes can be converted (quote is {quote['status']})",
                error_code=ErrorCode.QUOTE_NOT_ACCEPTED.value,
                quote_id=quote_id,
            )

        terms = self.invoices._validate_terms(payment_terms or self.invoices.default_payment_terms)
        issue_date = current_date(self.clock)
        return {
            'quote_id': quote['id'],
            'company_id': quote.get('company_id'),
            'client_id': quote.get('client_id'),
            'discount_value': quote.get('discount_value'),
            'discount_type': quote.get('discount_type'),
            'notes': quote.get('notes'),
            'terms': quote.get('terms'),
            'line_items': strip_line_items(quote['line_items']),
            'issue_date': issue_date,
            'due_date': calculate_due_date(issue_date, terms),
            'payment_terms': terms,
            'status': InvoiceStatus.DRAFT.value,
        }

    def convert(self, user_id: str, quote_id: str, payment_terms: Optional[str] = None) -> Dict[str, Any]:
        def attempt():
            payload = self.build_invoice_payload(user_id, quote_id, payment_terms)
            return self.invoices.create_invoice(user_id, payload, retry=False)

        invoice = self._retry(attempt, f"convert quote {quote_id}")
        logger.info(f"Quote {quote_id} converted to invoice {invoice['invoice_number']}")
        return invoice
