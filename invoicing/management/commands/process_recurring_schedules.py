import logging
from datetime import date

from django.core.management.base import BaseCommand

from invoicing.engine import get_engine

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Process recurring schedules and generate invoices for due schedules"

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            type=str,
            help='Target date for processing (YYYY-MM-DD). Defaults to today.',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be processed without actually generating invoices.',
        )

    def handle(self, *args, **options):
        engine = get_engine()
        target_date = None
        if options['date']:
            try:
                target_date = date.fromisoformat(options['date'])
            except ValueError:
                self.stderr.write(self.style.ERROR(f"Invalid date format: {options['date']}"))
                return

        target_date = target_date or engine.recurring.today()

        self.stdout.write(f"Processing recurring schedules for {target_date}")

        if options['dry_run']:
            schedules = engine.recurring.get_due_schedules(target_date)
            self.stdout.write(f"[DRY RUN] Found {len(schedules)} schedules due for processing:")
            for schedule in schedules:
                self.stdout.write(
                    f"  - Schedule {schedule['id']}: {schedule['name']} "
                    f"({schedule['frequency']}) - next run {schedule['next_run_date']}"
                )
            return

        results = engine.recurring.process_due_schedules(target_date)

        self.stdout.write(self.style.SUCCESS(
            f"Processing complete: "
            f"{results['created']} created, "
            f"{results['advanced']} advanced, "
            f"{results['deactivated']} deactivated, "
            f"{results['skipped']} skipped, "
            f"{len(results['errors'])} failed "
            f"(of {results['processed']} total)"
        ))

        for error in results['errors']:
            self.stdout.write(self.style.WARNING(f"  ✗ Schedule {error['schedule_id']}: {error['error']}"))
