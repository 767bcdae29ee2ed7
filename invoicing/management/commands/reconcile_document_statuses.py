"""
Persist time-driven status changes: sent quotes past expiry and open
invoices past their due date. Optionally rebuilds every invoice balance
from its payment rows.
"""

import logging

from django.core.management.base import BaseCommand

from invoicing.constants import INVOICES
from invoicing.engine import get_engine
from invoicing.exceptions import InvoicingError

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Expire overdue quotes, mark overdue invoices and optionally rebuild balances"

    def add_arguments(self, parser):
        parser.add_argument(
            "--rebuild-balances",
            action="store_true",
            help="Recompute amount paid and balance due of every invoice from its payments",
        )

    def handle(self, *args, **options):
        engine = get_engine()

        expired = engine.quotes.expire_quotes()
        self.stdout.write(f"Quotes expired: {expired}")

        overdue = engine.invoices.reconcile_statuses()
        self.stdout.write(f"Invoice statuses changed: {overdue}")

        if not options["rebuild_balances"]:
            return

        rebuilt = 0
        failed = 0
        for invoice in engine.store.query(INVOICES):
            try:
                before = (invoice["amount_paid"], invoice["balance_due"], invoice["status"])
                after = engine.payments.recalculate_balance(invoice["user_id"], invoice["id"])
                if before != (after["amount_paid"], after["balance_due"], after["status"]):
                    rebuilt += 1
            except InvoicingError as e:
                failed += 1
                logger.error(f"Balance rebuild failed for invoice {invoice['id']}: {e}")
                self.stdout.write(self.style.ERROR(f"✗ {invoice['invoice_number']}: {e}"))

        self.stdout.write(self.style.SUCCESS(f"Balances rebuilt: {rebuilt} changed, {failed} failed"))
