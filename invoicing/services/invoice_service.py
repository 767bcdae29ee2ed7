import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from django.utils import timezone

from ..constants import (
    INVOICE_LINE_ITEMS,
    INVOICE_PAYMENTS,
    INVOICES,
    LOCKED_INVOICE_STATUSES,
    OPEN_INVOICE_STATUSES,
    DiscountType,
    InvoiceStatus,
    PaymentTerms,
    QuoteStatus,
)
from ..exceptions import ConcurrentUpdateError, InvalidStateError, NotFoundError, ValidationError
from ..store.base import RecordStore, RetryingService
from ..validation.errors import ErrorCode
from .dates import as_date, calculate_due_date, current_date
from .line_items import delete_line_items, normalize_line_items, read_line_items, write_line_items
from .numbering import DocumentNumberAssigner
from .quote_service import QuoteService, filter_by_date_range, newest_first, raw_discount
from .reconciliation import reconcile_invoice_status
from .totals import ZERO, compute_document_totals, round_money, to_decimal

logger = logging.getLogger(__name__)


class InvoiceService(RetryingService):
    EDITABLE_FIELDS = ('company_id', 'client_id', 'notes', 'terms')
    # Derived from the payment ledger or from deletion, never set by an edit.
    LEDGER_STATUSES = (InvoiceStatus.PARTIAL, InvoiceStatus.PAID, InvoiceStatus.VOID)
    CREATE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)

    def __init__(self, store: RecordStore, numbering: Optional[DocumentNumberAssigner] = None,
                 clock: Optional[Callable] = None, default_payment_terms: str = PaymentTerms.NET_30,
                 quotes: Optional[QuoteService] = None, retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.store = store
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.clock = clock or timezone.now
        self.numbering = numbering or DocumentNumberAssigner(store, self.clock)
        self.default_payment_terms = str(default_payment_terms)
        self.quotes = quotes or QuoteService(store, self.numbering, self.clock)

    def today(self):
        return current_date(self.clock)

    def get_owned(self, user_id: str, invoice_id: str) -> Dict[str, Any]:
        invoice = self.store.get_by_id(INVOICES, invoice_id)
        if invoice is None or str(invoice.get('user_id')) != str(user_id):
            raise NotFoundError('invoice', invoice_id)
        return invoice

    def _reconcile(self, invoice: Dict[str, Any]) -> Dict[str, Any]:
        new_status = reconcile_invoice_status(invoice, self.today())
        if new_status == invoice.get('status'):
            return invoice
        try:
            updated = self.store.update(INVOICES, invoice['id'], {'status': new_status},
                                        expected_version=invoice.get('version'))
        except ConcurrentUpdateError:
            fresh = self.store.get_by_id(INVOICES, invoice['id'])
            return self._reconcile(fresh) if fresh else invoice
        logger.info(f"Invoice {invoice['invoice_number']} {invoice['status']} -> {new_status} (due {invoice.get('due_date')})")
        return updated

    def _with_details(self, invoice: Dict[str, Any]) -> Dict[str, Any]:
        invoice['line_items'] = read_line_items(self.store, INVOICE_LINE_ITEMS, 'invoice_id', invoice['id'])
        invoice['payments'] = self.payments_for(invoice['id'])
        return invoice

    def payments_for(self, invoice_id: str) -> List[Dict[str, Any]]:
        payments = self.store.query(INVOICE_PAYMENTS, {'invoice_id': invoice_id})
        payments.sort(key=lambda p: p['created_at'], reverse=True)
        payments.sort(key=lambda p: as_date(p.get('payment_date')), reverse=True)
        return payments

    @staticmethod
    def _validate_status(status: Any) -> str:
        if status not in InvoiceStatus.values:
            raise ValidationError(
                f"Invalid invoice status: {status}",
                {'status': [f'Must be one of: {", ".join(InvoiceStatus.values)}']},
            )
        return str(status)

    @staticmethod
    def _validate_terms(payment_terms: Any) -> str:
        if payment_terms not in PaymentTerms.values:
            raise ValidationError(
                f"Invalid payment terms: {payment_terms}",
                {'payment_terms': [f'Must be one of: {", ".join(PaymentTerms.values)}']},
            )
        return str(payment_terms)

    @staticmethod
    def _ensure_editable(invoice: Dict[str, Any]) -> None:
        if invoice.get('status') in LOCKED_INVOICE_STATUSES:
            raise InvalidStateError(
                f"Invoice {invoice.get('invoice_number')} is {invoice['status']} and can no longer be edited",
                error_code=ErrorCode.INVOICE_LOCKED.value,
                invoice_id=invoice['id'],
            )

    def _dates(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        existing = existing or {}
        issue_date = as_date(data.get('issue_date'), 'issue_date') or as_date(existing.get('issue_date')) or self.today()
        payment_terms = self._validate_terms(
            data.get('payment_terms') or existing.get('payment_terms') or self.default_payment_terms
        )
        due_date = as_date(data.get('due_date'), 'due_date')
        if due_date is None:
            if existing and 'payment_terms' not in data and 'issue_date' not in data:
                due_date = as_date(existing.get('due_date'))
            else:
                due_date = calculate_due_date(issue_date, payment_terms)
        if due_date < issue_date:
            raise ValidationError('Due date cannot be before issue date',
                                  {'due_date': ['Due date cannot be before issue date']})
        return {'issue_date': issue_date, 'due_date': due_date, 'payment_terms': payment_terms}

    def _source_quote(self, user_id: str, quote_id: str) -> Dict[str, Any]:
        quote = self.quotes._owned(user_id, quote_id)
        if quote.get('converted_to_invoice_id'):
            raise InvalidStateError(
                f"Quote {quote['quote_number']} has already been converted to an invoice",
                error_code=ErrorCode.QUOTE_ALREADY_CONVERTED.value,
                quote_id=quote_id,
            )
        if quote.get('status') != QuoteStatus.ACCEPTED:
            raise InvalidStateError(
                f"Only accepted quotes can be converted (quote is {quote.get('status')})",
                error_code=ErrorCode.QUOTE_NOT_ACCEPTED.value,
                quote_id=quote_id,
            )
        return quote

    def list_invoices(self, user_id: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        filters = filters or {}
        query = {'user_id': str(user_id)}
        for field in ('company_id', 'client_id'):
            if filters.get(field):
                query[field] = filters[field]

        invoices = [self._reconcile(i) for i in self.store.query(INVOICES, query)]

        status = filters.get('status')
        if filters.get('overdue'):
            status = InvoiceStatus.OVERDUE
        if status:
            invoices = [i for i in invoices if i.get('status') == status]
        invoices = filter_by_date_range(invoices, 'issue_date', filters.get('date_from'), filters.get('date_to'))
        return newest_first(invoices)

    def get_invoice(self, user_id: str, invoice_id: str) -> Dict[str, Any]:
        invoice = self._reconcile(self.get_owned(user_id, invoice_id))
        return self._with_details(invoice)

    def create_invoice(self, user_id: str, data: Dict[str, Any], retry: bool = True) -> Dict[str, Any]:
        """
        Create an invoice, optionally from an accepted quote.

        With ``quote_id`` the quote is checked and stamped with
        ``converted_to_invoice_id`` in the same transaction as the insert,
        so a quote is converted at most once. Callers that already run
        inside their own retry loop pass ``retry=False``.
        """
        items = normalize_line_items(data.get('line_items'))
        totals = compute_document_totals(items, raw_discount(data), data.get('discount_type') or DiscountType.FIXED)
        dates = self._dates(data)
        status = self._validate_status(data.get('status') or InvoiceStatus.DRAFT)
        if status not in self.CREATE_STATUSES:
            raise ValidationError(
                f"New invoices start as draft or sent, not {status}",
                {'status': ['New invoices start as draft or sent']},
            )
        quote_id = data.get('quote_id')
        if quote_id:
            self._source_quote(user_id, quote_id)

        invoice_number = data.get('invoice_number') or self.numbering.next_number(
            user_id, 'invoice', dates['issue_date'].year
        )

        def insert():
            with self.store.atomic():
                quote = self._source_quote(user_id, quote_id) if quote_id else None
                created = self.store.create(INVOICES, {
                    'user_id': str(user_id),
                    'company_id': data.get('company_id'),
                    'client_id': data.get('client_id'),
                    'quote_id': str(quote_id) if quote_id else None,
                    'invoice_number': invoice_number,
                    'status': status,
                    **dates,
                    **totals.as_record(),
                    'amount_paid': ZERO,
                    'balance_due': totals.total,
                    'notes': data.get('notes') or '',
                    'terms': data.get('terms') or '',
                    'is_recurring': bool(data.get('is_recurring', False)),
                    'recurring_schedule_id': data.get('recurring_schedule_id'),
                    'recurring_run_date': as_date(data.get('recurring_run_date')),
                    'sent_at': self.clock() if status == InvoiceStatus.SENT else None,
                    'paid_at': None,
                    'voided_at': None,
                })
                write_line_items(self.store, INVOICE_LINE_ITEMS, 'invoice_id', created['id'], items)
                if quote:
                    self.quotes.mark_converted(quote, created['id'])
            return created, quote

        invoice, quote = self._retry(insert, f"create invoice {invoice_number}") if retry else insert()

        if quote:
            logger.info(f"Invoice {invoice_number} created from quote {quote['quote_number']}")
        else:
            logger.info(f"Invoice {invoice_number} created for user {user_id} (total {totals.total})")
        return self._with_details(invoice)

    def _status_edit(self, existing: Dict[str, Any], status: Any) -> str:
        status = self._validate_status(status)
        if status == existing['status']:
            return status
        if status in self.LEDGER_STATUSES:
            raise InvalidStateError(
                f"Status {status} is set by payments or deletion, not by editing",
                invoice_id=existing['id'],
            )
        if to_decimal(existing.get('amount_paid')) > 0:
            raise InvalidStateError(
                f"Invoice {existing.get('invoice_number')} has payments recorded; "
                f"its status follows the payment ledger",
                invoice_id=existing['id'],
            )
        return status

    def update_invoice(self, user_id: str, invoice_id: str, data: Dict[str, Any],
                       expected_version: Optional[int] = None) -> Dict[str, Any]:
        new_items = normalize_line_items(data['line_items']) if data.get('line_items') is not None else None
        discount_changed = 'discount_type' in data or 'discount_value' in data or 'discount_amount' in data

        def apply():
            existing = self.get_owned(user_id, invoice_id)
            self._ensure_editable(existing)

            patch = {field: data[field] for field in self.EDITABLE_FIELDS if field in data}
            if any(field in data for field in ('issue_date', 'due_date', 'payment_terms')):
                patch.update(self._dates(data, existing))

            if data.get('status'):
                status = self._status_edit(existing, data['status'])
                patch['status'] = status
                if status == InvoiceStatus.SENT and not existing.get('sent_at'):
                    patch['sent_at'] = self.clock()

            if new_items is not None:
                basis = new_items
            elif discount_changed:
                basis = read_line_items(self.store, INVOICE_LINE_ITEMS, 'invoice_id', invoice_id)
            else:
                basis = None

            if basis is not None:
                totals = compute_document_totals(
                    basis,
                    raw_discount(data, existing.get('discount_value')),
                    data.get('discount_type') or existing.get('discount_type'),
                )
                amount_paid = to_decimal(existing.get('amount_paid'))
                if totals.total < amount_paid:
                    raise ValidationError(
                        f"New total {totals.total} is below the {amount_paid} already paid",
                        {'line_items': ['Invoice total cannot be less than the amount already paid']},
                    )
                patch.update(totals.as_record())
                patch['balance_due'] = round_money(totals.total - amount_paid)

            merged = {**existing, **patch}
            reconciled = reconcile_invoice_status(merged, self.today())
            if reconciled != merged.get('status'):
                patch['status'] = reconciled

            version = expected_version if expected_version is not None else existing.get('version')
            with self.store.atomic():
                updated = self.store.update(INVOICES, invoice_id, patch, expected_version=version)
                if new_items is not None:
                    delete_line_items(self.store, INVOICE_LINE_ITEMS, 'invoice_id', invoice_id)
                    write_line_items(self.store, INVOICE_LINE_ITEMS, 'invoice_id', invoice_id, new_items)
            return updated

        invoice = self._retry(apply, f"update invoice {invoice_id}", retry_conflicts=expected_version is None)
        logger.info(f"Invoice {invoice['invoice_number']} updated by user {user_id}")
        return self._with_details(invoice)

    def mark_sent(self, user_id: str, invoice_id: str) -> Dict[str, Any]:
        def apply():
            existing = self.get_owned(user_id, invoice_id)
            self._ensure_editable(existing)

            patch = {'sent_at': self.clock()}
            if existing['status'] == InvoiceStatus.DRAFT:
                patch['status'] = InvoiceStatus.SENT.value
            merged = {**existing, **patch}
            reconciled = reconcile_invoice_status(merged, self.today())
            if reconciled != merged['status']:
                patch['status'] = reconciled
            return self.store.update(INVOICES, invoice_id, patch, expected_version=existing.get('version'))

        invoice = self._retry(apply, f"send invoice {invoice_id}")
        logger.info(f"Invoice {invoice['invoice_number']} marked as sent ({invoice['status']})")
        return self._with_details(invoice)

    def mark_viewed(self, user_id: str, invoice_id: str) -> Dict[str, Any]:
        def apply():
            existing = self.get_owned(user_id, invoice_id)
            if existing['status'] != InvoiceStatus.SENT:
                return existing, False
            updated = self.store.update(INVOICES, invoice_id, {'status': InvoiceStatus.VIEWED.value},
                                        expected_version=existing.get('version'))
            return updated, True

        invoice, viewed = self._retry(apply, f"mark invoice {invoice_id} viewed")
        if viewed:
            logger.info(f"Invoice {invoice['invoice_number']} viewed")
        return self._with_details(self._reconcile(invoice))

    def delete_invoice(self, user_id: str, invoice_id: str, permanent: bool = False) -> Optional[Dict[str, Any]]:
        """
        Void the invoice, or with ``permanent`` remove it with its payments
        and line items. Voiding keeps everything for audit.
        """
        invoice = self.get_owned(user_id, invoice_id)

        if permanent:
            def remove():
                with self.store.atomic():
                    for payment in self.store.query(INVOICE_PAYMENTS, {'invoice_id': invoice_id}):
                        self.store.delete(INVOICE_PAYMENTS, payment['id'])
                    delete_line_items(self.store, INVOICE_LINE_ITEMS, 'invoice_id', invoice_id)
                    self.store.delete(INVOICES, invoice_id)

            self._retry(remove, f"delete invoice {invoice_id}")
            logger.info(f"Invoice {invoice['invoice_number']} permanently deleted by user {user_id}")
            return None

        def void():
            current = self.get_owned(user_id, invoice_id)
            if current['status'] == InvoiceStatus.VOID:
                return current, False
            updated = self.store.update(
                INVOICES, invoice_id,
                {'status': InvoiceStatus.VOID.value, 'voided_at': self.clock()},
                expected_version=current.get('version'),
            )
            return updated, True

        invoice, voided = self._retry(void, f"void invoice {invoice_id}")
        if voided:
            logger.info(f"Invoice {invoice['invoice_number']} voided by user {user_id}")
        return self._with_details(invoice)


    @staticmethod
    def summarize(invoices: List[Dict[str, Any]]) -> Dict[str, Any]:
        summary = {
            'total_count': 0,
            'draft_count': 0,
            'sent_count': 0,
            'overdue_count': 0,
            'paid_count': 0,
            'void_count': 0,
            'total_outstanding': ZERO,
            'total_overdue': ZERO,
            'total_paid': ZERO,
        }
        for invoice in invoices:
            status = invoice.get('status')
            balance = to_decimal(invoice.get('balance_due'))
            summary['total_count'] += 1
            if status == InvoiceStatus.DRAFT:
                summary['draft_count'] += 1
            elif status in OPEN_INVOICE_STATUSES:
                summary['sent_count'] += 1
                summary['total_outstanding'] += balance
            elif status == InvoiceStatus.OVERDUE:
                summary['overdue_count'] += 1
                summary['total_outstanding'] += balance
                summary['total_overdue'] += balance
            elif status == InvoiceStatus.PAID:
                summary['paid_count'] += 1
                summary['total_paid'] += to_decimal(invoice.get('total'))
            elif status == InvoiceStatus.VOID:
                summary['void_count'] += 1

        for key in ('total_outstanding', 'total_overdue', 'total_paid'):
            summary[key] = round_money(Decimal(summary[key]))
        return summary

    def get_summary(self, user_id: str, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.summarize(self.list_invoices(user_id, filters))

    def reconcile_statuses(self) -> int:
        """Persist overdue transitions for every open invoice, across all users."""
        changed = 0
        candidates = self.store.query(INVOICES, {'status': list(OPEN_INVOICE_STATUSES) + [InvoiceStatus.OVERDUE.value]})
        for invoice in candidates:
            if self._reconcile(invoice).get('status') != invoice.get('status'):
                changed += 1
        return changed
