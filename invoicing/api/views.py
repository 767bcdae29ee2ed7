from typing import Any, Dict, Optional, cast

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from invoicing.engine import InvoicingEngine, get_engine

from .response import APIResponse
from .serializers import (
    ConvertQuoteSerializer,
    InvoiceInputSerializer,
    InvoiceSerializer,
    InvoiceSummarySerializer,
    PaymentInputSerializer,
    PaymentSerializer,
    ProcessRecurringSerializer,
    QuoteInputSerializer,
    QuoteSerializer,
    QuoteStatusSerializer,
    RecurringFromInvoiceSerializer,
    RecurringScheduleInputSerializer,
    RecurringScheduleSerializer,
)

# Define common path parameters
DOCUMENT_ID_PARAM = OpenApiParameter(
    name="pk",
    description="Document ID",
    required=True,
    type=OpenApiTypes.UUID,
    location=OpenApiParameter.PATH,
)

DOCUMENT_FILTER_PARAMS = [
    OpenApiParameter(name="status", description="Filter by status", required=False, type=str),
    OpenApiParameter(name="company_id", description="Filter by company", required=False, type=str),
    OpenApiParameter(name="client_id", description="Filter by client", required=False, type=str),
    OpenApiParameter(name="date_from", description="Issue date on or after (YYYY-MM-DD)", required=False, type=str),
    OpenApiParameter(name="date_to", description="Issue date on or before (YYYY-MM-DD)", required=False, type=str),
]

TRUTHY = ("1", "true", "yes", "on")


class EngineViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]

    @property
    def engine(self) -> InvoicingEngine:
        if not hasattr(self, "_engine"):
            self._engine = get_engine()
        return self._engine

    def user_id(self, request: Request) -> str:
        return str(request.user.pk)

    @staticmethod
    def validated(serializer_class, request: Request, partial: bool = False) -> Dict[str, Any]:
        serializer = serializer_class(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        return dict(cast(Dict[str, Any], serializer.validated_data))

    @staticmethod
    def list_filters(request: Request) -> Dict[str, Any]:
        keys = ("status", "company_id", "client_id", "date_from", "date_to")
        return {key: request.query_params.get(key) for key in keys if request.query_params.get(key)}


# ------------------------------
# Quote ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List quotes",
        description="List the caller's quotes, newest first. Sent quotes past their expiry date are marked expired.",
        parameters=DOCUMENT_FILTER_PARAMS,
        responses={200: QuoteSerializer(many=True)},
    ),
    retrieve=extend_schema(summary="Get quote", parameters=[DOCUMENT_ID_PARAM], responses={200: QuoteSerializer}),
    create=extend_schema(summary="Create quote", request=QuoteInputSerializer, responses={201: QuoteSerializer}),
    partial_update=extend_schema(summary="Edit quote", request=QuoteInputSerializer, parameters=[DOCUMENT_ID_PARAM]),
    update=extend_schema(summary="Edit quote", request=QuoteInputSerializer, parameters=[DOCUMENT_ID_PARAM]),
    destroy=extend_schema(summary="Delete quote", parameters=[DOCUMENT_ID_PARAM]),
)
class QuoteViewSet(EngineViewSet):

    def list(self, request: Request) -> Response:
        quotes = self.engine.quotes.list_quotes(self.user_id(request), self.list_filters(request))
        return APIResponse.success(data=QuoteSerializer(quotes, many=True).data, message="Quotes retrieved.")

    def retrieve(self, request: Request, pk: Optional[str] = None) -> Response:
        quote = self.engine.quotes.get_quote(self.user_id(request), pk)
        return APIResponse.success(data=QuoteSerializer(quote).data, message="Quote retrieved.")

    def create(self, request: Request) -> Response:
        data = self.validated(QuoteInputSerializer, request)
        quote = self.engine.quotes.create_quote(self.user_id(request), data)
        return APIResponse.success(
            data=QuoteSerializer(quote).data, message="Quote created.", status_code=status.HTTP_201_CREATED
        )

    def partial_update(self, request: Request, pk: Optional[str] = None) -> Response:
        data = self.validated(QuoteInputSerializer, request, partial=True)
        quote = self.engine.quotes.update_quote(self.user_id(request), pk, data)
        return APIResponse.success(data=QuoteSerializer(quote).data, message="Quote updated.")

    def update(self, request: Request, pk: Optional[str] = None) -> Response:
        return self.partial_update(request, pk)

    def destroy(self, request: Request, pk: Optional[str] = None) -> Response:
        self.engine.quotes.delete_quote(self.user_id(request), pk)
        return APIResponse.success(message="Quote deleted.")

    @extend_schema(
        summary="Update quote status",
        description="Set the quote status (accepted, declined, ...). Converted quotes cannot change.",
        request=QuoteStatusSerializer,
        responses={200: QuoteSerializer},
        parameters=[DOCUMENT_ID_PARAM],
    )
    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request: Request, pk: Optional[str] = None) -> Response:
        data = self.validated(QuoteStatusSerializer, request)
        quote = self.engine.quotes.update_quote_status(self.user_id(request), pk, data["status"])
        return APIResponse.success(data=QuoteSerializer(quote).data, message="Quote status updated.")

    @extend_schema(summary="Mark quote as sent", request=None, responses={200: QuoteSerializer}, parameters=[DOCUMENT_ID_PARAM])
    @action(detail=True, methods=["post"], url_path="send")
    def send(self, request: Request, pk: Optional[str] = None) -> Response:
        quote = self.engine.quotes.mark_sent(self.user_id(request), pk)
        return APIResponse.success(data=QuoteSerializer(quote).data, message="Quote marked as sent.")

    @extend_schema(summary="Duplicate quote", request=None, responses={201: QuoteSerializer}, parameters=[DOCUMENT_ID_PARAM])
    @action(detail=True, methods=["post"], url_path="duplicate")
    def duplicate(self, request: Request, pk: Optional[str] = None) -> Response:
        quote = self.engine.quotes.duplicate_quote(self.user_id(request), pk)
        return APIResponse.success(
            data=QuoteSerializer(quote).data, message="Quote duplicated.", status_code=status.HTTP_201_CREATED
        )

    @extend_schema(
        summary="Convert quote to invoice",
        description="Create an invoice from an accepted quote. A quote converts at most once.",
        request=ConvertQuoteSerializer,
        responses={201: InvoiceSerializer},
        parameters=[DOCUMENT_ID_PARAM],
    )
    @action(detail=True, methods=["post"], url_path="convert")
    def convert(self, request: Request, pk: Optional[str] = None) -> Response:
        data = self.validated(ConvertQuoteSerializer, request)
        invoice = self.engine.converter.convert(self.user_id(request), pk, data.get("payment_terms"))
        return APIResponse.success(
            data=InvoiceSerializer(invoice).data, message="Quote converted to invoice.", status_code=status.HTTP_201_CREATED
        )


# ------------------------------
# Invoice ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List invoices",
        description="List the caller's invoices, newest first. Open invoices past their due date are marked overdue.",
        parameters=DOCUMENT_FILTER_PARAMS + [
            OpenApiParameter(name="overdue", description="Only overdue invoices", required=False, type=bool),
        ],
        responses={200: InvoiceSerializer(many=True)},
    ),
    retrieve=extend_schema(summary="Get invoice", parameters=[DOCUMENT_ID_PARAM], responses={200: InvoiceSerializer}),
    create=extend_schema(summary="Create invoice", request=InvoiceInputSerializer, responses={201: InvoiceSerializer}),
    partial_update=extend_schema(summary="Edit invoice", request=InvoiceInputSerializer, parameters=[DOCUMENT_ID_PARAM]),
    update=extend_schema(summary="Edit invoice", request=InvoiceInputSerializer, parameters=[DOCUMENT_ID_PARAM]),
    destroy=extend_schema(
        summary="Void or delete invoice",
        description="Voids the invoice. With ?permanent=true the invoice, its payments and line items are removed.",
        parameters=[
            DOCUMENT_ID_PARAM,
            OpenApiParameter(name="permanent", description="Remove instead of voiding", required=False, type=bool),
        ],
    ),
)
class InvoiceViewSet(EngineViewSet):

    def list(self, request: Request) -> Response:
        filters = self.list_filters(request)
        if request.query_params.get("overdue", "").lower() in TRUTHY:
            filters["overdue"] = True
        invoices = self.engine.invoices.list_invoices(self.user_id(request), filters)
        return APIResponse.success(data=InvoiceSerializer(invoices, many=True).data, message="Invoices retrieved.")

    def retrieve(self, request: Request, pk: Optional[str] = None) -> Response:
        invoice = self.engine.invoices.get_invoice(self.user_id(request), pk)
        return APIResponse.success(data=InvoiceSerializer(invoice).data, message="Invoice retrieved.")

    def create(self, request: Request) -> Response:
        data = self.validated(InvoiceInputSerializer, request)
        invoice = self.engine.invoices.create_invoice(self.user_id(request), data)
        return APIResponse.success(
            data=InvoiceSerializer(invoice).data, message="Invoice created.", status_code=status.HTTP_201_CREATED
        )

    def partial_update(self, request: Request, pk: Optional[str] = None) -> Response:
        data = self.validated(InvoiceInputSerializer, request, partial=True)
        data.pop("quote_id", None)
        invoice = self.engine.invoices.update_invoice(self.user_id(request), pk, data)
        return APIResponse.success(data=InvoiceSerializer(invoice).data, message="Invoice updated.")

    def update(self, request: Request, pk: Optional[str] = None) -> Response:
        return self.partial_update(request, pk)

    def destroy(self, request: Request, pk: Optional[str] = None) -> Response:
        permanent = request.query_params.get("permanent", "").lower() in TRUTHY
        invoice = self.engine.invoices.delete_invoice(self.user_id(request), pk, permanent=permanent)
        if invoice is None:
            return APIResponse.success(message="Invoice deleted.")
        return APIResponse.success(data=InvoiceSerializer(invoice).data, message="Invoice voided.")

    @extend_schema(summary="Mark invoice as sent", request=None, responses={200: InvoiceSerializer}, parameters=[DOCUMENT_ID_PARAM])
    @action(detail=True, methods=["post"], url_path="send")
    def send(self, request: Request, pk: Optional[str] = None) -> Response:
        invoice = self.engine.invoices.mark_sent(self.user_id(request), pk)
        return APIResponse.success(data=InvoiceSerializer(invoice).data, message="Invoice marked as sent.")

    @extend_schema(summary="Mark invoice as viewed", request=None, responses={200: InvoiceSerializer}, parameters=[DOCUMENT_ID_PARAM])
    @action(detail=True, methods=["post"], url_path="viewed")
    def viewed(self, request: Request, pk: Optional[str] = None) -> Response:
        invoice = self.engine.invoices.mark_viewed(self.user_id(request), pk)
        return APIResponse.success(data=InvoiceSerializer(invoice).data, message="Invoice marked as viewed.")

    @extend_schema(
        summary="List or record payments",
        description="GET lists payments newest first. POST records a payment; overpayment and void invoices are rejected.",
        request=PaymentInputSerializer,
        responses={200: PaymentSerializer(many=True), 201: InvoiceSerializer},
        parameters=[DOCUMENT_ID_PARAM],
    )
    @action(detail=True, methods=["get", "post"], url_path="payments")
    def payments(self, request: Request, pk: Optional[str] = None) -> Response:
        if request.method == "GET":
            payments = self.engine.payments.list_payments(self.user_id(request), pk)
            return APIResponse.success(data=PaymentSerializer(payments, many=True).data, message="Payments retrieved.")

        data = self.validated(PaymentInputSerializer, request)
        invoice, payment = self.engine.payments.record_payment(self.user_id(request), pk, data)
        return APIResponse.success(
            data={"invoice": InvoiceSerializer(invoice).data, "payment": PaymentSerializer(payment).data},
            message="Payment recorded.",
            status_code=status.HTTP_201_CREATED,
        )

    @extend_schema(
        summary="Delete payment",
        description="Remove a payment and reverse its effect on the invoice balance and status.",
        request=None,
        responses={200: InvoiceSerializer},
        parameters=[
            DOCUMENT_ID_PARAM,
            OpenApiParameter(name="payment_id", type=OpenApiTypes.UUID, location=OpenApiParameter.PATH),
        ],
    )
    @action(detail=True, methods=["delete"], url_path=r"payments/(?P<payment_id>[^/.]+)")
    def delete_payment(self, request: Request, pk: Optional[str] = None, payment_id: Optional[str] = None) -> Response:
        invoice = self.engine.payments.delete_payment(self.user_id(request), pk, payment_id)
        return APIResponse.success(data=InvoiceSerializer(invoice).data, message="Payment deleted.")

    @extend_schema(
        summary="Invoice summary",
        description="Counts and outstanding/overdue/paid totals for the filtered invoices.",
        parameters=DOCUMENT_FILTER_PARAMS,
        responses={200: InvoiceSummarySerializer},
    )
    @action(detail=False, methods=["get"], url_path="summary")
    def summary(self, request: Request) -> Response:
        summary = self.engine.invoices.get_summary(self.user_id(request), self.list_filters(request))
        return APIResponse.success(data=InvoiceSummarySerializer(summary).data, message="Invoice summary loaded.")


# ------------------------------
# Recurring schedule ViewSet
# ------------------------------
@extend_schema_view(
    list=extend_schema(
        summary="List recurring schedules",
        parameters=[OpenApiParameter(name="include_inactive", required=False, type=bool)],
        responses={200: RecurringScheduleSerializer(many=True)},
    ),
    retrieve=extend_schema(summary="Get recurring schedule", parameters=[DOCUMENT_ID_PARAM]),
    create=extend_schema(summary="Create recurring schedule", request=RecurringScheduleInputSerializer),
    partial_update=extend_schema(summary="Edit recurring schedule", request=RecurringScheduleInputSerializer),
    update=extend_schema(summary="Edit recurring schedule", request=RecurringScheduleInputSerializer),
    destroy=extend_schema(summary="Delete recurring schedule", parameters=[DOCUMENT_ID_PARAM]),
)
class RecurringScheduleViewSet(EngineViewSet):

    def get_permissions(self):
        if self.action == "process":
            return [IsAdminUser()]
        return super().get_permissions()

    def list(self, request: Request) -> Response:
        include_inactive = request.query_params.get("include_inactive", "").lower() in TRUTHY
        schedules = self.engine.recurring.list_schedules(self.user_id(request), include_inactive=include_inactive)
        return APIResponse.success(
            data=RecurringScheduleSerializer(schedules, many=True).data, message="Recurring schedules retrieved."
        )

    def retrieve(self, request: Request, pk: Optional[str] = None) -> Response:
        schedule = self.engine.recurring.get_schedule(self.user_id(request), pk)
        return APIResponse.success(data=RecurringScheduleSerializer(schedule).data, message="Recurring schedule retrieved.")

    def create(self, request: Request) -> Response:
        data = self.validated(RecurringScheduleInputSerializer, request)
        schedule = self.engine.recurring.create_schedule(self.user_id(request), data)
        return APIResponse.success(
            data=RecurringScheduleSerializer(schedule).data,
            message="Recurring schedule created.",
            status_code=status.HTTP_201_CREATED,
        )

    def partial_update(self, request: Request, pk: Optional[str] = None) -> Response:
        data = self.validated(RecurringScheduleInputSerializer, request, partial=True)
        schedule = self.engine.recurring.update_schedule(self.user_id(request), pk, data)
        return APIResponse.success(data=RecurringScheduleSerializer(schedule).data, message="Recurring schedule updated.")

    def update(self, request: Request, pk: Optional[str] = None) -> Response:
        return self.partial_update(request, pk)

    def destroy(self, request: Request, pk: Optional[str] = None) -> Response:
        self.engine.recurring.delete_schedule(self.user_id(request), pk)
        return APIResponse.success(message="Recurring schedule deleted.")

    @extend_schema(summary="Pause schedule", request=None, responses={200: RecurringScheduleSerializer}, parameters=[DOCUMENT_ID_PARAM])
    @action(detail=True, methods=["post"], url_path="pause")
    def pause(self, request: Request, pk: Optional[str] = None) -> Response:
        schedule = self.engine.recurring.pause_schedule(self.user_id(request), pk)
        return APIResponse.success(data=RecurringScheduleSerializer(schedule).data, message="Recurring schedule paused.")

    @extend_schema(summary="Resume schedule", request=None, responses={200: RecurringScheduleSerializer}, parameters=[DOCUMENT_ID_PARAM])
    @action(detail=True, methods=["post"], url_path="resume")
    def resume(self, request: Request, pk: Optional[str] = None) -> Response:
        schedule = self.engine.recurring.resume_schedule(self.user_id(request), pk)
        return APIResponse.success(data=RecurringScheduleSerializer(schedule).data, message="Recurring schedule resumed.")

    @extend_schema(
        summary="Create schedule from invoice",
        description="Use an existing invoice's client, line items and terms as the schedule template.",
        request=RecurringFromInvoiceSerializer,
        responses={201: RecurringScheduleSerializer},
    )
    @action(detail=False, methods=["post"], url_path="from-invoice")
    def from_invoice(self, request: Request) -> Response:
        data = self.validated(RecurringFromInvoiceSerializer, request)
        invoice_id = str(data.pop("invoice_id"))
        schedule = self.engine.recurring.create_from_invoice(self.user_id(request), invoice_id, data)
        return APIResponse.success(
            data=RecurringScheduleSerializer(schedule).data,
            message="Recurring schedule created.",
            status_code=status.HTTP_201_CREATED,
        )

    @extend_schema(
        summary="Process due schedules",
        description="Generate invoices for every due schedule. Staff only.",
        request=ProcessRecurringSerializer,
    )
    @action(detail=False, methods=["post"], url_path="process")
    def process(self, request: Request) -> Response:
        data = self.validated(ProcessRecurringSerializer, request)
        results = self.engine.recurring.process_due_schedules(data.get("date"))
        return APIResponse.success(data=results, message="Recurring schedules processed.")
