"""API URL routing for LedgerFlow."""
from rest_framework.routers import DefaultRouter
from .views import InvoiceViewSet, QuoteViewSet, RecurringScheduleViewSet

router = DefaultRouter()
router.register(r'quotes', QuoteViewSet, basename='api-quotes')
router.register(r'invoices', InvoiceViewSet, basename='api-invoices')
router.register(r'recurring-schedules', RecurringScheduleViewSet, basename='api-recurring-schedules')

urlpatterns = router.urls
