import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from django.utils import timezone

from ..constants import (
    DEFAULT_QUOTE_VALIDITY_DAYS,
    QUOTE_LINE_ITEMS,
    QUOTES,
    DiscountType,
    QuoteStatus,
)
from ..exceptions import ConcurrentUpdateError, InvalidStateError, NotFoundError, ValidationError
from ..store.base import RecordStore, RetryingService
from .dates import as_date, current_date
from .line_items import (
    delete_line_items,
    normalize_line_items,
    read_line_items,
    strip_line_items,
    write_line_items,
)
from .numbering import DocumentNumberAssigner
from .reconciliation import reconcile_quote_status
from .totals import compute_document_totals

logger = logging.getLogger(__name__)


def raw_discount(data: Dict[str, Any], default: Any = 0) -> Any:
    """Callers may send the raw discount as ``discount_value`` or ``discount_amount``."""
    if 'discount_value' in data:
        return data['discount_value']
    if 'discount_amount' in data:
        return data['discount_amount']
    return default


def filter_by_date_range(records: List[Dict[str, Any]], field: str,
                         date_from: Any = None, date_to: Any = None) -> List[Dict[str, Any]]:
    date_from = as_date(date_from, 'date_from')
    date_to = as_date(date_to, 'date_to')
    result = []
    for record in records:
        value = as_date(record.get(field))
        if date_from and (value is None or value < date_from):
            continue
        if date_to and (value is None or value > date_to):
            continue
        result.append(record)
    return result


def newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r['created_at'], reverse=True)


class QuoteService(RetryingService):
    EDITABLE_FIELDS = ('company_id', 'client_id', 'notes', 'terms')

    def __init__(self, store: RecordStore, numbering: Optional[DocumentNumberAssigner] = None,
                 clock: Optional[Callable] = None, validity_days: int = DEFAULT_QUOTE_VALIDITY_DAYS,
                 retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.store = store
        self.clock = clock or timezone.now
        self.numbering = numbering or DocumentNumberAssigner(store, self.clock)
        self.validity_days = validity_days
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def today(self):
        return current_date(self.clock)

    def _owned(self, user_id: str, quote_id: str) -> Dict[str, Any]:
        quote = self.store.get_by_id(QUOTES, quote_id)
        if quote is None or str(quote.get('user_id')) != str(user_id):
            raise NotFoundError('quote', quote_id)
        return quote

    def _reconcile(self, quote: Dict[str, Any]) -> Dict[str, Any]:
        new_status = reconcile_quote_status(quote, self.today())
        if new_status == quote.get('status'):
            return quote
        try:
            updated = self.store.update(QUOTES, quote['id'], {'status': new_status},
                                        expected_version=quote.get('version'))
        except ConcurrentUpdateError:
            # Someone else wrote first; reconcile their version instead.
            fresh = self.store.get_by_id(QUOTES, quote['id'])
            return self._reconcile(fresh) if fresh else quote
        logger.info(f"Quote {quote['quote_number']} expired (expiry {quote.get('expiry_date')})")
        return updated

    def _with_line_items(self, quote: Dict[str, Any]) -> Dict[str, Any]:
        quote['line_items'] = read_line_items(self.store, QUOTE_LINE_ITEMS, 'quote_id', quote['id'])
        return quote

    @staticmethod
    def _validate_status(status: Any) -> str:
        if status not in QuoteStatus.values:
            raise ValidationError(
                f"Invalid quote status: {status}",
                {'status': [f'Must be one of: {", ".join(QuoteStatus.values)}']},
            )
        return str(status)

    @staticmethod
    def _ensure_not_converted(quote: Dict[str, Any]) -> None:
        if quote.get('converted_to_invoice_id'):
            raise InvalidStateError(
                f"Quote {quote.get('quote_number')} has been converted to an invoice and can no longer be changed",
                quote_id=quote['id'],
            )

    def _dates(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        existing = existing or {}
        issue_date = as_date(data.get('issue_date'), 'issue_date') or as_date(existing.get('issue_date')) or self.today()
        if 'expiry_date' in data:
            expiry_date = as_date(data.get('expiry_date'), 'expiry_date')
        elif existing:
            expiry_date = as_date(existing.get('expiry_date'))
        else:
            expiry_date = issue_date + timedelta(days=self.validity_days)
        if expiry_date and expiry_date < issue_date:
            raise ValidationError('Expiry date cannot be before issue date',
                                  {'expiry_date': ['Expiry date cannot be before issue date']})
        return {'issue_date': issue_date, 'expiry_date': expiry_date}

    def list_quotes(self, user_id: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = {'user_id': str(user_id)}
        for field in ('company_id', 'client_id'):
            if filters.get(field):
                query[field] = filters[field]

        quotes = [self._reconcile(q) for q in self.store.query(QUOTES, query)]

        status = filters.get('status')
        if status:
            quotes = [q for q in quotes if q.get('status') == status]
        quotes = filter_by_date_range(quotes, 'issue_date', filters.get('date_from'), filters.get('date_to'))
        return newest_first(quotes)

    def get_quote(self, user_id: str, quote_id: str) -> Dict[str, Any]:
        quote = self._reconcile(self._owned(user_id, quote_id))
        return self._with_line_items(quote)

    def create_quote(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        items = normalize_line_items(data.get('line_items'))
        totals = compute_document_totals(items, raw_discount(data), data.get('discount_type') or DiscountType.FIXED)
        dates = self._dates(data)
        status = self._validate_status(data.get('status') or QuoteStatus.DRAFT)
        quote_number = data.get('quote_number') or self.numbering.next_number(user_id, 'quote', dates['issue_date'].year)

        def insert():
            with self.store.atomic():
                created = self.store.create(QUOTES, {
                    'user_id': str(user_id),
                    'company_id': data.get('company_id'),
                    'client_id': data.get('client_id'),
                    'quote_number': quote_number,
                    'status': status,
                    **dates,
                    **totals.as_record(),
                    'notes': data.get('notes') or '',
                    'terms': data.get('terms') or '',
                    'converted_to_invoice_id': None,
                })
                write_line_items(self.store, QUOTE_LINE_ITEMS, 'quote_id', created['id'], items)
            return created

        quote = self._retry(insert, f"create quote {quote_number}")
        logger.info(f"Quote {quote_number} created for user {user_id} (total {totals.total})")
        return self._with_line_items(quote)

    def update_quote(self, user_id: str, quote_id: str, data: Dict[str, Any],
                     expected_version: Optional[int] = None) -> Dict[str, Any]:
        """
        Edit a quote that has not been converted yet.

        New ``line_items`` replace the stored ones wholesale. A discount
        change without line items recomputes totals from the stored items.
        """
        new_items = normalize_line_items(data['line_items']) if data.get('line_items') is not None else None
        discount_changed = 'discount_type' in data or 'discount_value' in data or 'discount_amount' in data

        def apply():
            existing = self._owned(user_id, quote_id)
            self._ensure_not_converted(existing)

            patch = {field: data[field] for field in self.EDITABLE_FIELDS if field in data}
            if 'issue_date' in data or 'expiry_date' in data:
                patch.update(self._dates(data, existing))
            if data.get('status'):
                patch['status'] = self._validate_status(data['status'])

            if new_items is not None:
                basis = new_items
            elif discount_changed:
                basis = read_line_items(self.store, QUOTE_LINE_ITEMS, 'quote_id', quote_id)
            else:
                basis = None

            if basis is not None:
                totals = compute_document_totals(
                    basis,
                    raw_discount(data, existing.get('discount_value')),
                    data.get('discount_type') or existing.get('discount_type'),
                )
                patch.update(totals.as_record())

            version = expected_version if expected_version is not None else existing.get('version')
            with self.store.atomic():
                updated = self.store.update(QUOTES, quote_id, patch, expected_version=version)
                if new_items is not None:
                    delete_line_items(self.store, QUOTE_LINE_ITEMS, 'quote_id', quote_id)
                    write_line_items(self.store, QUOTE_LINE_ITEMS, 'quote_id', quote_id, new_items)
            return updated

        quote = self._retry(apply, f"update quote {quote_id}", retry_conflicts=expected_version is None)
        logger.info(f"Quote {quote['quote_number']} updated by user {user_id}")
        return self._with_line_items(quote)

    def update_quote_status(self, user_id: str, quote_id: str, status: str) -> Dict[str, Any]:
        status = self._validate_status(status)

        def apply():
            existing = self._owned(user_id, quote_id)
            self._ensure_not_converted(existing)
            updated = self.store.update(QUOTES, quote_id, {'status': status},
                                        expected_version=existing.get('version'))
            return existing['status'], updated

        previous, quote = self._retry(apply, f"set status of quote {quote_id}")
        logger.info(f"Quote {quote['quote_number']} status {previous} -> {status}")
        return self._with_line_items(quote)

    def mark_sent(self, user_id: str, quote_id: str) -> Dict[str, Any]:
        def apply():
            existing = self._owned(user_id, quote_id)
            self._ensure_not_converted(existing)
            if existing['status'] not in (QuoteStatus.DRAFT, QuoteStatus.SENT):
                raise InvalidStateError(
                    f"Only draft quotes can be sent (quote is {existing['status']})",
                    quote_id=quote_id,
                )
            return self.store.update(QUOTES, quote_id, {'status': QuoteStatus.SENT.value},
                                     expected_version=existing.get('version'))

        quote = self._retry(apply, f"send quote {quote_id}")
        logger.info(f"Quote {quote['quote_number']} marked as sent")
        return self._with_line_items(quote)

    def delete_quote(self, user_id: str, quote_id: str) -> None:
        quote = self._owned(user_id, quote_id)

        def remove():
            with self.store.atomic():
                delete_line_items(self.store, QUOTE_LINE_ITEMS, 'quote_id', quote_id)
                self.store.delete(QUOTES, quote_id)

        self._retry(remove, f"delete quote {quote_id}")
        logger.info(f"Quote {quote['quote_number']} deleted by user {user_id}")

    def duplicate_quote(self, user_id: str, quote_id: str) -> Dict[str, Any]:
        source = self.get_quote(user_id, quote_id)
        data = {
            'company_id': source.get('company_id'),
            'client_id': source.get('client_id'),
            'discount_value': source.get('discount_value'),
            'discount_type': source.get('discount_type'),
            'notes': source.get('notes'),
            'terms': source.get('terms'),
            'line_items': strip_line_items(source['line_items']),
            'issue_date': self.today(),
            'status': QuoteStatus.DRAFT.value,
        }
        quote = self.create_quote(user_id, data)
        logger.info(f"Quote {source['quote_number']} duplicated as {quote['quote_number']}")
        return quote

    def mark_converted(self, quote: Dict[str, Any], invoice_id: str) -> Dict[str, Any]:
        """Stamp the one-way link to the invoice created from ``quote``."""
        return self.store.update(QUOTES, quote['id'], {'converted_to_invoice_id': str(invoice_id)},
                                 expected_version=quote.get('version'))

    def expire_quotes(self) -> int:
        """Persist the expiry of every sent quote past its expiry date, for all users."""
        expired = 0
        for quote in self.store.query(QUOTES, {'status': QuoteStatus.SENT.value}):
            if self._reconcile(quote).get('status') == QuoteStatus.EXPIRED:
                expired += 1
        return expired
