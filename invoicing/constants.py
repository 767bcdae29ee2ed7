from django.db import models


QUOTES = 'quotes'
QUOTE_LINE_ITEMS = 'quote_line_items'
INVOICES = 'invoices'
INVOICE_LINE_ITEMS = 'invoice_line_items'
INVOICE_PAYMENTS = 'invoice_payments'
RECURRING_SCHEDULES = 'recurring_schedules'
DOCUMENT_SEQUENCES = 'document_sequences'


class QuoteStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    SENT = 'sent', 'Sent'
    ACCEPTED = 'accepted', 'Accepted'
    DECLINED = 'declined', 'Declined'
    EXPIRED = 'expired', 'Expired'


class InvoiceStatus(models.TextChoices):
    DRAFT = 'draft', 'Draft'
    SENT = 'sent', 'Sent'
    VIEWED = 'viewed', 'Viewed'
    PARTIAL = 'partial', 'Partially Paid'
    PAID = 'paid', 'Paid'
    OVERDUE = 'overdue', 'Overdue'
    VOID = 'void', 'Void'


class DiscountType(models.TextChoices):
    FIXED = 'fixed', 'Fixed amount'
    PERCENTAGE = 'percentage', 'Percentage'


class PaymentTerms(models.TextChoices):
    DUE_ON_RECEIPT = 'due_on_receipt', 'Due on receipt'
    NET_7 = 'net_7', 'Net 7'
    NET_15 = 'net_15', 'Net 15'
    NET_30 = 'net_30', 'Net 30'
    NET_45 = 'net_45', 'Net 45'
    NET_60 = 'net_60', 'Net 60'
    CUSTOM = 'custom', 'Custom'


class PaymentMethod(models.TextChoices):
    CASH = 'cash', 'Cash'
    CHECK = 'check', 'Check'
    CREDIT_CARD = 'credit_card', 'Credit Card'
    DEBIT_CARD = 'debit_card', 'Debit Card'
    BANK_TRANSFER = 'bank_transfer', 'Bank Transfer'
    ACH = 'ach', 'ACH'
    WIRE = 'wire', 'Wire'
    PAYPAL = 'paypal', 'PayPal'
    VENMO = 'venmo', 'Venmo'
    ZELLE = 'zelle', 'Zelle'
    OTHER = 'other', 'Other'


class RecurringFrequency(models.TextChoices):
    DAILY = 'daily', 'Daily'
    WEEKLY = 'weekly', 'Weekly'
    BIWEEKLY = 'biweekly', 'Every 2 weeks'
    MONTHLY = 'monthly', 'Monthly'
    QUARTERLY = 'quarterly', 'Quarterly'
    SEMI_ANNUAL = 'semi_annual', 'Every 6 months'
    ANNUAL = 'annual', 'Annual'


# Custom terms carry an explicit due date; None means "use the caller's date".
PAYMENT_TERMS_DAYS = {
    PaymentTerms.DUE_ON_RECEIPT: 0,
    PaymentTerms.NET_7: 7,
    PaymentTerms.NET_15: 15,
    PaymentTerms.NET_30: 30,
    PaymentTerms.NET_45: 45,
    PaymentTerms.NET_60: 60,
    PaymentTerms.CUSTOM: None,
}
DEFAULT_TERMS_DAYS = 30

NUMBER_PREFIXES = {
    'quote': 'QT',
    'invoice': 'INV',
}

DEFAULT_QUOTE_VALIDITY_DAYS = 30

# Invoices in these states accept payments and can fall overdue.
OPEN_INVOICE_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.VIEWED,
    InvoiceStatus.PARTIAL,
)
LOCKED_INVOICE_STATUSES = (InvoiceStatus.PAID, InvoiceStatus.VOID)
