"""
Payment ledger.

Every posting and deletion re-reads the invoice, writes the payment row
and updates the invoice under an ``expected_version`` guard inside one
store transaction. A lost race raises ConcurrentUpdateError and the whole
unit is retried with backoff.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from django.utils import timezone

from ..constants import INVOICE_PAYMENTS, INVOICES, InvoiceStatus, PaymentMethod
from ..exceptions import InvalidStateError, NotFoundError, ValidationError
from ..store.base import RecordStore, RetryingService
from ..validation.errors import ErrorCode
from .dates import as_date, current_date
from .invoice_service import InvoiceService
from .reconciliation import reconcile_invoice_status, status_after_payment, status_after_payment_removal
from .totals import ZERO, round_money, to_decimal

logger = logging.getLogger(__name__)


class PaymentLedger(RetryingService):

    def __init__(self, store: RecordStore, invoices: InvoiceService, clock: Optional[Callable] = None,
                 retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.store = store
        self.invoices = invoices
        self.clock = clock or timezone.now
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def today(self):
        return current_date(self.clock)

    def _paid_total(self, invoice_id: str) -> Decimal:
        payments = self.store.query(INVOICE_PAYMENTS, {'invoice_id': invoice_id})
        return round_money(sum((to_decimal(p['amount']) for p in payments), ZERO))

    @staticmethod
    def _ensure_not_void(invoice: Dict[str, Any]) -> None:
        if invoice.get('status') == InvoiceStatus.VOID:
            raise InvalidStateError(
                f"Invoice {invoice.get('invoice_number')} is void and does not accept payments",
                error_code=ErrorCode.INVOICE_LOCKED.value,
                invoice_id=invoice['id'],
            )

    def _validate_payment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        errors = {}
        try:
            amount = round_money(to_decimal(data.get('amount'), 'amount'))
        except ValidationError as e:
            raise ValidationError('Invalid payment amount', e.errors)
        if amount <= 0:
            errors['amount'] = ['Payment amount must be greater than 0']

        method = data.get('payment_method') or PaymentMethod.OTHER.value
        if method not in PaymentMethod.values:
            errors['payment_method'] = [f'Must be one of: {", ".join(PaymentMethod.values)}']

        payment_date = as_date(data.get('payment_date'), 'payment_date') or self.today()

        if errors:
            raise ValidationError('Invalid payment', errors)
        return {
            'amount': amount,
            'payment_date': payment_date,
            'payment_method': str(method),
            'reference': data.get('reference') or '',
            'transaction_id': data.get('transaction_id') or None,
            'notes': data.get('notes') or '',
        }

    def list_payments(self, user_id: str, invoice_id: str) -> List[Dict[str, Any]]:
        self.invoices.get_owned(user_id, invoice_id)
        return self.invoices.payments_for(invoice_id)

    def record_payment(self, user_id: str, invoice_id: str,
                       data: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Apply a payment and return ``(invoice, payment)``."""
        fields = self._validate_payment(data)
        amount = fields['amount']

        def post():
            with self.store.atomic():
                invoice = self.invoices.get_owned(user_id, invoice_id)
                self._ensure_not_void(invoice)

                balance_due = to_decimal(invoice.get('balance_due'))
                if amount > balance_due:
                    raise ValidationError(
                        f"Payment of {amount} exceeds the balance due of {balance_due}",
                        {'amount': [f'Payment exceeds balance due ({balance_due})']},
                        error_code=ErrorCode.INVOICE_OVERPAYMENT.value,
                    )

                payment = self.store.create(INVOICE_PAYMENTS, {'invoice_id': invoice['id'], **fields})
                amount_paid = self._paid_total(invoice['id'])
                balance_due = max(round_money(to_decimal(invoice['total']) - amount_paid), ZERO)
                status = status_after_payment(invoice['status'], amount_paid, balance_due)

                patch = {'amount_paid': amount_paid, 'balance_due': balance_due, 'status': status}
                if status == InvoiceStatus.PAID and not invoice.get('paid_at'):
                    patch['paid_at'] = self.clock()
                updated = self.store.update(INVOICES, invoice['id'], patch, expected_version=invoice.get('version'))
            return updated, payment

        invoice, payment = self._retry(post, f"record payment on invoice {invoice_id}")
        logger.info(
            f"Payment {payment['id']} of {amount} recorded on invoice {invoice['invoice_number']} "
            f"(paid {invoice['amount_paid']}, balance {invoice['balance_due']}, status {invoice['status']})"
        )
        return self.invoices.get_invoice(user_id, invoice_id), payment

    def delete_payment(self, user_id: str, invoice_id: str, payment_id: str) -> Dict[str, Any]:
        """Remove a payment and reverse its effect on the invoice."""

        def remove():
            with self.store.atomic():
                invoice = self.invoices.get_owned(user_id, invoice_id)
                payment = self.store.get_by_id(INVOICE_PAYMENTS, payment_id)
                if payment is None or str(payment.get('invoice_id')) != str(invoice['id']):
                    raise NotFoundError('payment', payment_id)
                self._ensure_not_void(invoice)

                self.store.delete(INVOICE_PAYMENTS, payment_id)
                amount_paid = self._paid_total(invoice['id'])
                balance_due = max(round_money(to_decimal(invoice['total']) - amount_paid), ZERO)
                status = status_after_payment_removal(
                    invoice['status'], amount_paid, balance_due, invoice.get('due_date'), self.today()
                )

                patch = {'amount_paid': amount_paid, 'balance_due': balance_due, 'status': status}
                if status != InvoiceStatus.PAID:
                    patch['paid_at'] = None
                updated = self.store.update(INVOICES, invoice['id'], patch, expected_version=invoice.get('version'))
            return updated, payment

        invoice, payment = self._retry(remove, f"delete payment {payment_id}")
        logger.info(
            f"Payment {payment_id} of {payment['amount']} removed from invoice {invoice['invoice_number']} "
            f"(paid {invoice['amount_paid']}, balance {invoice['balance_due']}, status {invoice['status']})"
        )
        return self.invoices.get_invoice(user_id, invoice_id)

    def recalculate_balance(self, user_id: str, invoice_id: str) -> Dict[str, Any]:
        """Rebuild ``amount_paid``, ``balance_due`` and status from the payment rows."""

        def rebuild():
            with self.store.atomic():
                invoice = self.invoices.get_owned(user_id, invoice_id)
                amount_paid = self._paid_total(invoice['id'])
                balance_due = max(round_money(to_decimal(invoice['total']) - amount_paid), ZERO)
                status = invoice['status']
                if status != InvoiceStatus.VOID:
                    if amount_paid > 0:
                        status = status_after_payment(status, amount_paid, balance_due)
                    elif status in (InvoiceStatus.PAID, InvoiceStatus.PARTIAL):
                        status = status_after_payment_removal(
                            status, amount_paid, balance_due, invoice.get('due_date'), self.today()
                        )
                    status = reconcile_invoice_status({**invoice, 'status': status, 'amount_paid': amount_paid},
                                                      self.today())

                patch = {'amount_paid': amount_paid, 'balance_due': balance_due, 'status': status}
                unchanged = (
                    to_decimal(invoice.get('amount_paid')) == amount_paid
                    and to_decimal(invoice.get('balance_due')) == balance_due
                    and invoice.get('status') == status
                )
                if unchanged:
                    return invoice, False
                return self.store.update(INVOICES, invoice['id'], patch, expected_version=invoice.get('version')), True

        invoice, changed = self._retry(rebuild, f"recalculate balance of invoice {invoice_id}")
        if changed:
            logger.warning(
                f"Invoice {invoice['invoice_number']} balance rebuilt from payments "
                f"(paid {invoice['amount_paid']}, balance {invoice['balance_due']}, status {invoice['status']})"
            )
        return invoice
