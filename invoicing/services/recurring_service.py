import json
import logging
from typing import Any, Callable, Dict, List, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from ..constants import INVOICES, RECURRING_SCHEDULES, InvoiceStatus, RecurringFrequency
from ..exceptions import NotFoundError, ValidationError
from ..store.base import RecordStore, RetryingService
from .dates import as_date, calculate_due_date, calculate_next_run_date, current_date
from .invoice_service import InvoiceService
from .line_items import normalize_line_items, strip_line_items
from .totals import compute_document_totals

logger = logging.getLogger(__name__)


class RecurringScheduleService(RetryingService):
    UPDATABLE_FIELDS = (
        'name', 'frequency', 'interval_count', 'day_of_month', 'day_of_week',
        'next_run_date', 'end_date', 'max_occurrences', 'auto_send', 'is_active',
        'template_data', 'company_id', 'client_id',
    )
    TEMPLATE_FIELDS = (
        'company_id', 'client_id', 'line_items', 'discount_value', 'discount_type',
        'notes', 'terms', 'payment_terms',
    )

    def __init__(self, store: RecordStore, invoices: InvoiceService, clock: Optional[Callable] = None,
                 retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.store = store
        self.invoices = invoices
        self.clock = clock or timezone.now
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def today(self):
        return current_date(self.clock)

    @staticmethod
    def _json_safe(template: Dict[str, Any]) -> Dict[str, Any]:
        return json.loads(json.dumps(template, cls=DjangoJSONEncoder))

    def _validate_template(self, template: Any) -> Dict[str, Any]:
        if not isinstance(template, dict):
            raise ValidationError('Template must be an object', {'template_data': ['Template must be an object']})
        template = {k: v for k, v in template.items() if k not in ('quote_id', 'status', 'invoice_number')}
        if 'discount_amount' in template and 'discount_value' not in template:
            template['discount_value'] = template.pop('discount_amount')
        items = normalize_line_items(template.get('line_items'))
        compute_document_totals(items, template.get('discount_value', 0), template.get('discount_type') or 'fixed')
        if template.get('payment_terms'):
            self.invoices._validate_terms(template['payment_terms'])
        return self._json_safe(template)

    def _validate_fields(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        existing = existing or {}
        errors: Dict[str, List[str]] = {}
        cleaned: Dict[str, Any] = {}

        if 'name' in data or not existing:
            name = str(data.get('name') or '').strip()
            if not name:
                errors['name'] = ['Name is required']
            cleaned['name'] = name

        if 'frequency' in data or not existing:
            frequency = data.get('frequency') or RecurringFrequency.MONTHLY.value
            if frequency not in RecurringFrequency.values:
                errors['frequency'] = [f'Must be one of: {", ".join(RecurringFrequency.values)}']
            cleaned['frequency'] = str(frequency)

        if 'interval_count' in data or not existing:
            try:
                interval_count = int(data.get('interval_count') or 1)
            except (TypeError, ValueError):
                interval_count = 0
            if interval_count < 1:
                errors['interval_count'] = ['Must be a whole number of at least 1']
            cleaned['interval_count'] = interval_count

        for field, low, high in (('day_of_month', 1, 31), ('day_of_week', 0, 6)):
            if field in data:
                value = data.get(field)
                if value in (None, ''):
                    cleaned[field] = None
                    continue
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    value = None
                if value is None or not low <= value <= high:
                    errors[field] = [f'Must be between {low} and {high}']
                cleaned[field] = value

        if 'max_occurrences' in data:
            value = data.get('max_occurrences')
            if value in (None, ''):
                cleaned['max_occurrences'] = None
            else:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    value = 0
                if value < 1:
                    errors['max_occurrences'] = ['Must be at least 1']
                cleaned['max_occurrences'] = value

        for field in ('start_date', 'next_run_date', 'end_date'):
            if field in data:
                cleaned[field] = as_date(data.get(field), field)

        for field in ('auto_send', 'is_active'):
            if field in data:
                cleaned[field] = bool(data[field])

        for field in ('company_id', 'client_id'):
            if field in data:
                cleaned[field] = data[field]

        if 'template_data' in data:
            cleaned['template_data'] = self._validate_template(data['template_data'])

        start = cleaned.get('start_date') or as_date(existing.get('start_date'))
        end = cleaned['end_date'] if 'end_date' in cleaned else as_date(existing.get('end_date'))
        if start and end and end < start:
            errors['end_date'] = ['End date cannot be before start date']

        if errors:
            raise ValidationError('Invalid recurring schedule', errors)
        return cleaned

    def _owned(self, user_id: str, schedule_id: str) -> Dict[str, Any]:
        schedule = self.store.get_by_id(RECURRING_SCHEDULES, schedule_id)
        if schedule is None or str(schedule.get('user_id')) != str(user_id):
            raise NotFoundError('recurring schedule', schedule_id)
        return schedule

    def create_schedule(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        data = {**data, 'template_data': data.get('template_data')}
        cleaned = self._validate_fields(data)
        start_date = cleaned.get('start_date') or self.today()
        template = cleaned['template_data']

        record = {
            'user_id': str(user_id),
            'company_id': cleaned.get('company_id', template.get('company_id')),
            'client_id': cleaned.get('client_id', template.get('client_id')),
            'name': cleaned['name'],
            'frequency': cleaned['frequency'],
            'interval_count': cleaned['interval_count'],
            'day_of_month': cleaned.get('day_of_month'),
            'day_of_week': cleaned.get('day_of_week'),
            'start_date': start_date,
            'next_run_date': cleaned.get('next_run_date') or start_date,
            'last_run_date': None,
            'end_date': cleaned.get('end_date'),
            'max_occurrences': cleaned.get('max_occurrences'),
            'occurrences_generated': 0,
            'auto_send': cleaned.get('auto_send', False),
            'is_active': cleaned.get('is_active', True),
            'template_data': template,
        }
        schedule = self._retry(lambda: self.store.create(RECURRING_SCHEDULES, record),
                               f"create recurring schedule for user {user_id}")
        logger.info(f"Recurring schedule {schedule['id']} ({schedule['frequency']}) created for user {user_id}")
        return schedule

    def create_from_invoice(self, user_id: str, invoice_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        invoice = self.invoices.get_invoice(user_id, invoice_id)
        template = {field: invoice.get(field) for field in self.TEMPLATE_FIELDS if field != 'line_items'}
        template['line_items'] = strip_line_items(invoice['line_items'])
        payload = {
            'name': data.get('name') or f"Recurring {invoice['invoice_number']}",
            **{k: v for k, v in data.items() if k != 'template_data'},
            'template_data': template,
        }
        return self.create_schedule(user_id, payload)

    def get_schedule(self, user_id: str, schedule_id: str) -> Dict[str, Any]:
        return self._owned(user_id, schedule_id)

    def list_schedules(self, user_id: str, include_inactive: bool = False) -> List[Dict[str, Any]]:
        query = {'user_id': str(user_id)}
        if not include_inactive:
            query['is_active'] = True
        schedules = self.store.query(RECURRING_SCHEDULES, query)
        return sorted(schedules, key=lambda s: as_date(s['next_run_date']))

    def update_schedule(self, user_id: str, schedule_id: str, data: Dict[str, Any],
                        expected_version: Optional[int] = None) -> Dict[str, Any]:
        allowed = {k: v for k, v in data.items() if k in self.UPDATABLE_FIELDS}

        def apply():
            existing = self._owned(user_id, schedule_id)
            patch = self._validate_fields(allowed, existing)
            version = expected_version if expected_version is not None else existing.get('version')
            return patch, self.store.update(RECURRING_SCHEDULES, schedule_id, patch, expected_version=version)

        patch, schedule = self._retry(apply, f"update recurring schedule {schedule_id}",
                                      retry_conflicts=expected_version is None)
        logger.info(f"Recurring schedule {schedule_id} updated ({', '.join(sorted(patch)) or 'no changes'})")
        return schedule

    def delete_schedule(self, user_id: str, schedule_id: str) -> None:
        self._owned(user_id, schedule_id)
        self._retry(lambda: self.store.delete(RECURRING_SCHEDULES, schedule_id),
                    f"delete recurring schedule {schedule_id}")
        logger.info(f"Recurring schedule {schedule_id} deleted by user {user_id}")

    def pause_schedule(self, user_id: str, schedule_id: str) -> Dict[str, Any]:
        def apply():
            existing = self._owned(user_id, schedule_id)
            return self.store.update(RECURRING_SCHEDULES, schedule_id, {'is_active': False},
                                     expected_version=existing.get('version'))

        schedule = self._retry(apply, f"pause recurring schedule {schedule_id}")
        logger.info(f"Recurring schedule {schedule_id} paused")
        return schedule

    def resume_schedule(self, user_id: str, schedule_id: str) -> Dict[str, Any]:
        """Reactivate; a next run date left in the past moves up to today."""
        today = self.today()

        def apply():
            existing = self._owned(user_id, schedule_id)
            patch = {'is_active': True}
            if as_date(existing['next_run_date']) < today:
                patch['next_run_date'] = today
            return self.store.update(RECURRING_SCHEDULES, schedule_id, patch,
                                     expected_version=existing.get('version'))

        schedule = self._retry(apply, f"resume recurring schedule {schedule_id}")
        logger.info(f"Recurring schedule {schedule_id} resumed (next run {schedule['next_run_date']})")
        return schedule

    def get_due_schedules(self, now: Any = None) -> List[Dict[str, Any]]:
        today = as_date(now) or self.today()
        schedules = self.store.query(RECURRING_SCHEDULES, {'is_active': True})
        due = [s for s in schedules if as_date(s['next_run_date']) <= today]
        return sorted(due, key=lambda s: as_date(s['next_run_date']))

    @staticmethod
    def is_exhausted(schedule: Dict[str, Any], run_date) -> bool:
        max_occurrences = schedule.get('max_occurrences')
        if max_occurrences and (schedule.get('occurrences_generated') or 0) >= max_occurrences:
            return True
        end_date = as_date(schedule.get('end_date'))
        return bool(end_date and run_date > end_date)

    def _invoice_payload(self, schedule: Dict[str, Any], run_date) -> Dict[str, Any]:
        template = schedule['template_data']
        payment_terms = template.get('payment_terms') or self.invoices.default_payment_terms
        return {
            **{k: v for k, v in template.items() if k in self.TEMPLATE_FIELDS},
            'company_id': template.get('company_id') or schedule.get('company_id'),
            'client_id': template.get('client_id') or schedule.get('client_id'),
            'payment_terms': payment_terms,
            'issue_date': run_date,
            'due_date': calculate_due_date(run_date, payment_terms),
            'status': InvoiceStatus.SENT.value if schedule.get('auto_send') else InvoiceStatus.DRAFT.value,
            'is_recurring': True,
            'recurring_schedule_id': schedule['id'],
            'recurring_run_date': run_date,
        }

    def _fire(self, schedule_id: str, today) -> str:
        """
        Fire one due schedule. Invoice creation and the schedule advance
        commit together; a run whose invoice already exists only advances.
        """
        with self.store.atomic():
            schedule = self.store.get_by_id(RECURRING_SCHEDULES, schedule_id)
            if schedule is None or not schedule.get('is_active'):
                return 'skipped'
            run_date = as_date(schedule['next_run_date'])
            if run_date > today:
                return 'skipped'

            if self.is_exhausted(schedule, run_date):
                self.store.update(RECURRING_SCHEDULES, schedule_id, {'is_active': False},
                                  expected_version=schedule.get('version'))
                logger.info(f"Recurring schedule {schedule_id} exhausted, deactivated")
                return 'deactivated'

            template = schedule.get('template_data') or {}
            if not template.get('line_items'):
                logger.warning(f"Recurring schedule {schedule_id} has no template line items, skipping")
                return 'skipped'

            existing = self.store.query(INVOICES, {
                'recurring_schedule_id': schedule_id,
                'recurring_run_date': run_date,
            })
            if existing:
                outcome = 'advanced'
                logger.warning(
                    f"Recurring schedule {schedule_id} already produced invoice "
                    f"{existing[0]['invoice_number']} for {run_date}, advancing only"
                )
            else:
                invoice = self.invoices.create_invoice(
                    schedule['user_id'], self._invoice_payload(schedule, run_date), retry=False
                )
                outcome = 'created'
                logger.info(f"Recurring schedule {schedule_id} generated invoice {invoice['invoice_number']} for {run_date}")

            anchor_day = schedule.get('day_of_month') or as_date(schedule['start_date']).day
            next_run_date = calculate_next_run_date(
                run_date, schedule['frequency'], schedule.get('interval_count') or 1, anchor_day
            )
            self.store.update(RECURRING_SCHEDULES, schedule_id, {
                'next_run_date': next_run_date,
                'last_run_date': today,
                'occurrences_generated': (schedule.get('occurrences_generated') or 0) + 1,
            }, expected_version=schedule.get('version'))
        return outcome

    def process_due_schedules(self, now: Any = None) -> Dict[str, Any]:
        """Fire every due schedule; one schedule's failure never stops the batch."""
        today = as_date(now) or self.today()
        results = {'processed': 0, 'created': 0, 'advanced': 0, 'skipped': 0, 'deactivated': 0, 'errors': []}

        for schedule in self.get_due_schedules(today):
            results['processed'] += 1
            try:
                outcome = self._retry(
                    lambda: self._fire(schedule['id'], today), f"recurring schedule {schedule['id']}"
                )
            except Exception as e:
                logger.exception(f"Recurring schedule {schedule['id']} failed")
                results['errors'].append({'schedule_id': schedule['id'], 'error': str(e)})
                continue
            if outcome in results:
                results[outcome] += 1

        logger.info(
            f"Recurring run for {today}: {results['processed']} processed, {results['created']} created, "
            f"{results['advanced']} advanced, {results['skipped']} skipped, "
            f"{results['deactivated']} deactivated, {len(results['errors'])} failed"
        )
        return results
