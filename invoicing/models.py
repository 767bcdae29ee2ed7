from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from .constants import (
    DiscountType,
    InvoiceStatus,
    PaymentMethod,
    PaymentTerms,
    QuoteStatus,
    RecurringFrequency,
)


class DocumentTotalsFields(models.Model):
    """Monetary columns shared by quotes and invoices."""

    subtotal = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    tax_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    discount_value = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    discount_type = models.CharField(max_length=20, choices=DiscountType.choices, default=DiscountType.FIXED)
    total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        abstract = True


class Quote(DocumentTotalsFields):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    company_id = models.CharField(max_length=64, blank=True, null=True)
    client_id = models.CharField(max_length=64, blank=True, null=True)
    quote_number = models.CharField(max_length=50)
    status = models.CharField(max_length=20, choices=QuoteStatus.choices, default=QuoteStatus.DRAFT)
    issue_date = models.DateField()
    expiry_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")
    terms = models.TextField(blank=True, default="")
    converted_to_invoice_id = models.UUIDField(null=True, blank=True)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "quotes"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user_id', 'status'], name='quotes_user_id_status_idx'),
            models.Index(fields=['user_id', 'expiry_date'], name='quotes_user_id_expiry_idx'),
        ]

    def __str__(self):
        return f"{self.quote_number} ({self.status})"


class Invoice(DocumentTotalsFields):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    company_id = models.CharField(max_length=64, blank=True, null=True)
    client_id = models.CharField(max_length=64, blank=True, null=True)
    quote_id = models.UUIDField(null=True, blank=True)
    invoice_number = models.CharField(max_length=50)
    status = models.CharField(max_length=20, choices=InvoiceStatus.choices, default=InvoiceStatus.DRAFT)
    issue_date = models.DateField()
    due_date = models.DateField()
    payment_terms = models.CharField(max_length=20, choices=PaymentTerms.choices, default=PaymentTerms.NET_30)
    amount_paid = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    balance_due = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    notes = models.TextField(blank=True, default="")
    terms = models.TextField(blank=True, default="")
    is_recurring = models.BooleanField(default=False)
    recurring_schedule_id = models.UUIDField(null=True, blank=True)
    recurring_run_date = models.DateField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "invoices"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user_id', 'status'], name='invoices_user_id_status_idx'),
            models.Index(fields=['user_id', 'due_date'], name='invoices_user_id_due_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['recurring_schedule_id', 'recurring_run_date'],
                name='unique_recurring_run',
            ),
        ]

    def __str__(self):
        return f"{self.invoice_number} ({self.status})"


class LineItemFields(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    catalogue_item_id = models.CharField(max_length=64, blank=True, null=True)
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal("1"))
    unit_price = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    line_total = models.DecimalField(max_digits=15, decimal_places=2, default=Decimal("0.00"))
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        abstract = True
        ordering = ['sort_order']


class QuoteLineItem(LineItemFields):
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name="line_items")

    class Meta(LineItemFields.Meta):
        db_table = "quote_line_items"


class InvoiceLineItem(LineItemFields):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="line_items")

    class Meta(LineItemFields.Meta):
        db_table = "invoice_line_items"


class InvoicePayment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name="payments")
    amount = models.DecimalField(max_digits=15, decimal_places=2)
    payment_date = models.DateField()
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.OTHER)
    reference = models.CharField(max_length=255, blank=True, default="")
    transaction_id = models.CharField(max_length=255, blank=True, null=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "invoice_payments"
        ordering = ['-payment_date', '-created_at']


class RecurringSchedule(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    company_id = models.CharField(max_length=64, blank=True, null=True)
    client_id = models.CharField(max_length=64, blank=True, null=True)
    name = models.CharField(max_length=200)
    frequency = models.CharField(max_length=20, choices=RecurringFrequency.choices, default=RecurringFrequency.MONTHLY)
    interval_count = models.PositiveIntegerField(default=1)
    day_of_month = models.PositiveSmallIntegerField(null=True, blank=True)
    day_of_week = models.PositiveSmallIntegerField(null=True, blank=True)
    start_date = models.DateField()
    next_run_date = models.DateField(db_index=True)
    last_run_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    max_occurrences = models.PositiveIntegerField(null=True, blank=True)
    occurrences_generated = models.PositiveIntegerField(default=0)
    auto_send = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    template_data = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "recurring_schedules"
        ordering = ['next_run_date']
        indexes = [
            models.Index(fields=['is_active', 'next_run_date'], name='recurring_active_next_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.frequency})"


class DocumentSequence(models.Model):
    user_id = models.CharField(max_length=64)
    document_type = models.CharField(max_length=20)
    year = models.PositiveIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "document_sequences"
        constraints = [
            models.UniqueConstraint(
                fields=['user_id', 'document_type', 'year'],
                name='unique_document_sequence',
            ),
        ]

    def __str__(self):
        return f"{self.document_type}:{self.user_id}:{self.year} = {self.last_value}"
