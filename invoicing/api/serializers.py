from decimal import Decimal

from rest_framework import serializers

from invoicing.constants import (
    DiscountType,
    InvoiceStatus,
    PaymentMethod,
    PaymentTerms,
    QuoteStatus,
    RecurringFrequency,
)


# ------------------------------
# Input serializers
# ------------------------------
class LineItemInputSerializer(serializers.Serializer):
    catalogue_item_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    description = serializers.CharField(max_length=500, min_length=1)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=4, min_value=Decimal("0.0001"))
    unit_price = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0"))
    tax_rate = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal("0"), max_value=Decimal("100"), required=False, default=Decimal("0")
    )
    sort_order = serializers.IntegerField(min_value=0, required=False)


class DocumentInputSerializer(serializers.Serializer):
    company_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    client_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    issue_date = serializers.DateField(required=False)
    discount_value = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0"), required=False)
    discount_amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0"), required=False)
    discount_type = serializers.ChoiceField(choices=DiscountType.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    terms = serializers.CharField(required=False, allow_blank=True)
    line_items = LineItemInputSerializer(many=True, allow_empty=False)

    def validate(self, attrs):
        if attrs.get("discount_type") == DiscountType.PERCENTAGE:
            value = attrs.get("discount_value", attrs.get("discount_amount"))
            if value is not None and value > 100:
                raise serializers.ValidationError({"discount_value": "Percentage discount cannot exceed 100."})
        return attrs


class QuoteInputSerializer(DocumentInputSerializer):
    expiry_date = serializers.DateField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=QuoteStatus.choices, required=False)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        issue_date, expiry_date = attrs.get("issue_date"), attrs.get("expiry_date")
        if issue_date and expiry_date and expiry_date < issue_date:
            raise serializers.ValidationError({"expiry_date": "Expiry date cannot be before issue date."})
        return attrs


class InvoiceInputSerializer(DocumentInputSerializer):
    quote_id = serializers.UUIDField(required=False, allow_null=True)
    due_date = serializers.DateField(required=False)
    payment_terms = serializers.ChoiceField(choices=PaymentTerms.choices, required=False)
    status = serializers.ChoiceField(choices=InvoiceStatus.choices, required=False)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        issue_date, due_date = attrs.get("issue_date"), attrs.get("due_date")
        if issue_date and due_date and due_date < issue_date:
            raise serializers.ValidationError({"due_date": "Due date cannot be before issue date."})
        if attrs.get("quote_id"):
            attrs["quote_id"] = str(attrs["quote_id"])
        return attrs


class QuoteStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=QuoteStatus.choices)


class ConvertQuoteSerializer(serializers.Serializer):
    payment_terms = serializers.ChoiceField(choices=PaymentTerms.choices, required=False)


class PaymentInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0.01"))
    payment_date = serializers.DateField(required=False)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False, default=PaymentMethod.OTHER)
    reference = serializers.CharField(max_length=255, required=False, allow_blank=True)
    transaction_id = serializers.CharField(max_length=255, required=False, allow_null=True, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class RecurringScheduleInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    company_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    client_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    frequency = serializers.ChoiceField(choices=RecurringFrequency.choices, default=RecurringFrequency.MONTHLY)
    interval_count = serializers.IntegerField(min_value=1, required=False, default=1)
    day_of_month = serializers.IntegerField(min_value=1, max_value=31, required=False, allow_null=True)
    day_of_week = serializers.IntegerField(min_value=0, max_value=6, required=False, allow_null=True)
    start_date = serializers.DateField(required=False)
    next_run_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False, allow_null=True)
    max_occurrences = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    auto_send = serializers.BooleanField(required=False, default=False)
    is_active = serializers.BooleanField(required=False, default=True)
    template_data = serializers.DictField()


class RecurringFromInvoiceSerializer(RecurringScheduleInputSerializer):
    invoice_id = serializers.UUIDField()
    name = serializers.CharField(max_length=200, required=False)
    template_data = None


class ProcessRecurringSerializer(serializers.Serializer):
    date = serializers.DateField(required=False)


# ------------------------------
# Output serializers (engine records are dicts)
# ------------------------------
class LineItemSerializer(serializers.Serializer):
    id = serializers.CharField()
    catalogue_item_id = serializers.CharField(allow_null=True)
    description = serializers.CharField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=4)
    unit_price = serializers.DecimalField(max_digits=15, decimal_places=2)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    line_total = serializers.DecimalField(max_digits=15, decimal_places=2)
    sort_order = serializers.IntegerField()


class PaymentSerializer(serializers.Serializer):
    id = serializers.CharField()
    invoice_id = serializers.CharField()
    amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    payment_date = serializers.DateField()
    payment_method = serializers.CharField()
    reference = serializers.CharField(allow_blank=True)
    transaction_id = serializers.CharField(allow_null=True)
    notes = serializers.CharField(allow_blank=True)
    created_at = serializers.DateTimeField()


class DocumentSerializer(serializers.Serializer):
    id = serializers.CharField()
    company_id = serializers.CharField(allow_null=True)
    client_id = serializers.CharField(allow_null=True)
    status = serializers.CharField()
    issue_date = serializers.DateField()
    subtotal = serializers.DecimalField(max_digits=15, decimal_places=2)
    tax_total = serializers.DecimalField(max_digits=15, decimal_places=2)
    discount_value = serializers.DecimalField(max_digits=15, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=15, decimal_places=2)
    discount_type = serializers.CharField()
    total = serializers.DecimalField(max_digits=15, decimal_places=2)
    notes = serializers.CharField(allow_blank=True)
    terms = serializers.CharField(allow_blank=True)
    version = serializers.IntegerField()
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()
    line_items = LineItemSerializer(many=True, required=False)


class QuoteSerializer(DocumentSerializer):
    quote_number = serializers.CharField()
    expiry_date = serializers.DateField(allow_null=True)
    converted_to_invoice_id = serializers.CharField(allow_null=True)


class InvoiceSerializer(DocumentSerializer):
    invoice_number = serializers.CharField()
    quote_id = serializers.CharField(allow_null=True)
    due_date = serializers.DateField()
    payment_terms = serializers.CharField()
    amount_paid = serializers.DecimalField(max_digits=15, decimal_places=2)
    balance_due = serializers.DecimalField(max_digits=15, decimal_places=2)
    is_recurring = serializers.BooleanField()
    recurring_schedule_id = serializers.CharField(allow_null=True)
    recurring_run_date = serializers.DateField(allow_null=True)
    sent_at = serializers.DateTimeField(allow_null=True)
    paid_at = serializers.DateTimeField(allow_null=True)
    voided_at = serializers.DateTimeField(allow_null=True)
    payments = PaymentSerializer(many=True, required=False)


class InvoiceSummarySerializer(serializers.Serializer):
    total_count = serializers.IntegerField()
    draft_count = serializers.IntegerField()
    sent_count = serializers.IntegerField()
    overdue_count = serializers.IntegerField()
    paid_count = serializers.IntegerField()
    void_count = serializers.IntegerField()
    total_outstanding = serializers.DecimalField(max_digits=15, decimal_places=2)
    total_overdue = serializers.DecimalField(max_digits=15, decimal_places=2)
    total_paid = serializers.DecimalField(max_digits=15, decimal_places=2)


class RecurringScheduleSerializer(serializers.Serializer):
    id = serializers.CharField()
    company_id = serializers.CharField(allow_null=True)
    client_id = serializers.CharField(allow_null=True)
    name = serializers.CharField()
    frequency = serializers.CharField()
    interval_count = serializers.IntegerField()
    day_of_month = serializers.IntegerField(allow_null=True)
    day_of_week = serializers.IntegerField(allow_null=True)
    start_date = serializers.DateField()
    next_run_date = serializers.DateField()
    last_run_date = serializers.DateField(allow_null=True)
    end_date = serializers.DateField(allow_null=True)
    max_occurrences = serializers.IntegerField(allow_null=True)
    occurrences_generated = serializers.IntegerField()
    auto_send = serializers.BooleanField()
    is_active = serializers.BooleanField()
    template_data = serializers.DictField()
    version = serializers.IntegerField()
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()
