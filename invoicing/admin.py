from django.contrib import admin
from .models import (
    DocumentSequence, Invoice, InvoiceLineItem, InvoicePayment,
    Quote, QuoteLineItem, RecurringSchedule,
)


class QuoteLineItemInline(admin.TabularInline):
    model = QuoteLineItem
    extra = 0


class InvoiceLineItemInline(admin.TabularInline):
    model = InvoiceLineItem
    extra = 0


class InvoicePaymentInline(admin.TabularInline):
    model = InvoicePayment
    extra = 0


@admin.register(Quote)
class QuoteAdmin(admin.ModelAdmin):
    list_display = ('quote_number', 'user_id', 'client_id', 'status', 'total', 'expiry_date', 'created_at')
    list_filter = ('status',)
    search_fields = ('quote_number', 'client_id')
    inlines = [QuoteLineItemInline]


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_number', 'user_id', 'client_id', 'status', 'total', 'balance_due', 'due_date')
    list_filter = ('status', 'is_recurring')
    search_fields = ('invoice_number', 'client_id')
    inlines = [InvoiceLineItemInline, InvoicePaymentInline]


@admin.register(RecurringSchedule)
class RecurringScheduleAdmin(admin.ModelAdmin):
    list_display = ('name', 'user_id', 'frequency', 'next_run_date', 'occurrences_generated', 'is_active')
    list_filter = ('frequency', 'is_active')
    search_fields = ('name',)


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(admin.ModelAdmin):
    list_display = ('user_id', 'document_type', 'year', 'last_value')
