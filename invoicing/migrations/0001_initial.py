from decimal import Decimal
import uuid

import django.core.serializers.json
import django.db.models.deletion
from django.db import migrations, models


DISCOUNT_TYPE_CHOICES = [('fixed', 'Fixed amount'), ('percentage', 'Percentage')]


def _line_item_fields():
    return [
        ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ('catalogue_item_id', models.CharField(blank=True, max_length=64, null=True)),
        ('description', models.CharField(max_length=500)),
        ('quantity', models.DecimalField(decimal_places=4, default=Decimal('1'), max_digits=12)),
        ('unit_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
        ('tax_rate', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=5)),
        ('line_total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
        ('sort_order', models.PositiveIntegerField(default=0)),
    ]


def _totals_fields():
    return [
        ('subtotal', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
        ('tax_total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
        ('discount_value', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
        ('discount_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
        ('discount_type', models.CharField(choices=DISCOUNT_TYPE_CHOICES, default='fixed', max_length=20)),
        ('total', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Quote',
            fields=_totals_fields() + [
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(db_index=True, max_length=64)),
                ('company_id', models.CharField(blank=True, max_length=64, null=True)),
                ('client_id', models.CharField(blank=True, max_length=64, null=True)),
                ('quote_number', models.CharField(max_length=50)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('sent', 'Sent'), ('accepted', 'Accepted'), ('declined', 'Declined'), ('expired', 'Expired')], default='draft', max_length=20)),
                ('issue_date', models.DateField()),
                ('expiry_date', models.DateField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('terms', models.TextField(blank=True, default='')),
                ('converted_to_invoice_id', models.UUIDField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'quotes',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user_id', 'status'], name='quotes_user_id_status_idx'),
                    models.Index(fields=['user_id', 'expiry_date'], name='quotes_user_id_expiry_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Invoice',
            fields=_totals_fields() + [
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(db_index=True, max_length=64)),
                ('company_id', models.CharField(blank=True, max_length=64, null=True)),
                ('client_id', models.CharField(blank=True, max_length=64, null=True)),
                ('quote_id', models.UUIDField(blank=True, null=True)),
                ('invoice_number', models.CharField(max_length=50)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('sent', 'Sent'), ('viewed', 'Viewed'), ('partial', 'Partially Paid'), ('paid', 'Paid'), ('overdue', 'Overdue'), ('void', 'Void')], default='draft', max_length=20)),
                ('issue_date', models.DateField()),
                ('due_date', models.DateField()),
                ('payment_terms', models.CharField(choices=[('due_on_receipt', 'Due on receipt'), ('net_7', 'Net 7'), ('net_15', 'Net 15'), ('net_30', 'Net 30'), ('net_45', 'Net 45'), ('net_60', 'Net 60'), ('custom', 'Custom')], default='net_30', max_length=20)),
                ('amount_paid', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('balance_due', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=15)),
                ('notes', models.TextField(blank=True, default='')),
                ('terms', models.TextField(blank=True, default='')),
                ('is_recurring', models.BooleanField(default=False)),
                ('recurring_schedule_id', models.UUIDField(blank=True, null=True)),
                ('recurring_run_date', models.DateField(blank=True, null=True)),
                ('sent_at', models.DateTimeField(blank=True, null=True)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('voided_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'invoices',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user_id', 'status'], name='invoices_user_id_status_idx'),
                    models.Index(fields=['user_id', 'due_date'], name='invoices_user_id_due_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('recurring_schedule_id', 'recurring_run_date'), name='unique_recurring_run'),
                ],
            },
        ),
        migrations.CreateModel(
            name='QuoteLineItem',
            fields=_line_item_fields() + [
                ('quote', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='line_items', to='invoicing.quote')),
            ],
            options={
                'db_table': 'quote_line_items',
                'ordering': ['sort_order'],
                'abstract': False,
            },
        ),
        migrations.CreateModel(
            name='InvoiceLineItem',
            fields=_line_item_fields() + [
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='line_items', to='invoicing.invoice')),
            ],
            options={
                'db_table': 'invoice_line_items',
                'ordering': ['sort_order'],
                'abstract': False,
            },
        ),
        migrations.CreateModel(
            name='InvoicePayment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=15)),
                ('payment_date', models.DateField()),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('check', 'Check'), ('credit_card', 'Credit Card'), ('debit_card', 'Debit Card'), ('bank_transfer', 'Bank Transfer'), ('ach', 'ACH'), ('wire', 'Wire'), ('paypal', 'PayPal'), ('venmo', 'Venmo'), ('zelle', 'Zelle'), ('other', 'Other')], default='other', max_length=20)),
                ('reference', models.CharField(blank=True, default='', max_length=255)),
                ('transaction_id', models.CharField(blank=True, max_length=255, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('invoice', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='invoicing.invoice')),
            ],
            options={
                'db_table': 'invoice_payments',
                'ordering': ['-payment_date', '-created_at'],
            },
        ),
        migrations.CreateModel(
            name='RecurringSchedule',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('user_id', models.CharField(db_index=True, max_length=64)),
                ('company_id', models.CharField(blank=True, max_length=64, null=True)),
                ('client_id', models.CharField(blank=True, max_length=64, null=True)),
                ('name', models.CharField(max_length=200)),
                ('frequency', models.CharField(choices=[('daily', 'Daily'), ('weekly', 'Weekly'), ('biweekly', 'Every 2 weeks'), ('monthly', 'Monthly'), ('quarterly', 'Quarterly'), ('semi_annual', 'Every 6 months'), ('annual', 'Annual')], default='monthly', max_length=20)),
                ('interval_count', models.PositiveIntegerField(default=1)),
                ('day_of_month', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('day_of_week', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('start_date', models.DateField()),
                ('next_run_date', models.DateField(db_index=True)),
                ('last_run_date', models.DateField(blank=True, null=True)),
                ('end_date', models.DateField(blank=True, null=True)),
                ('max_occurrences', models.PositiveIntegerField(blank=True, null=True)),
                ('occurrences_generated', models.PositiveIntegerField(default=0)),
                ('auto_send', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('template_data', models.JSONField(blank=True, default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'recurring_schedules',
                'ordering': ['next_run_date'],
                'indexes': [
                    models.Index(fields=['is_active', 'next_run_date'], name='recurring_active_next_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DocumentSequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('user_id', models.CharField(max_length=64)),
                ('document_type', models.CharField(max_length=20)),
                ('year', models.PositiveIntegerField()),
                ('last_value', models.PositiveIntegerField(default=0)),
            ],
            options={
                'db_table': 'document_sequences',
                'constraints': [
                    models.UniqueConstraint(fields=('user_id', 'document_type', 'year'), name='unique_document_sequence'),
                ],
            },
        ),
    ]
