import calendar
from datetime import date, datetime, timedelta
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from ..constants import DEFAULT_TERMS_DAYS, PAYMENT_TERMS_DAYS, PaymentTerms, RecurringFrequency
from ..exceptions import ValidationError


FREQUENCY_STEPS = {
    RecurringFrequency.DAILY: relativedelta(days=1),
    RecurringFrequency.WEEKLY: relativedelta(weeks=1),
    RecurringFrequency.BIWEEKLY: relativedelta(weeks=2),
    RecurringFrequency.MONTHLY: relativedelta(months=1),
    RecurringFrequency.QUARTERLY: relativedelta(months=3),
    RecurringFrequency.SEMI_ANNUAL: relativedelta(months=6),
    RecurringFrequency.ANNUAL: relativedelta(years=1),
}

MONTH_BASED_FREQUENCIES = (
    RecurringFrequency.MONTHLY,
    RecurringFrequency.QUARTERLY,
    RecurringFrequency.SEMI_ANNUAL,
    RecurringFrequency.ANNUAL,
)


def as_date(value: Any, field: str = 'date') -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", {field: ['Invalid date format']})


def payment_terms_days(payment_terms: Optional[str]) -> int:
    days = PAYMENT_TERMS_DAYS.get(payment_terms)
    return DEFAULT_TERMS_DAYS if days is None else days


def calculate_due_date(issue_date: date, payment_terms: Optional[str],
                       custom_due_date: Optional[date] = None) -> date:
    """Due date from the terms table; ``custom`` terms use ``custom_due_date`` when given."""
    if payment_terms == PaymentTerms.CUSTOM and custom_due_date:
        return custom_due_date
    return issue_date + timedelta(days=payment_terms_days(payment_terms))


def calculate_next_run_date(current: Any, frequency: str, interval_count: int = 1,
                            anchor_day: Optional[int] = None) -> date:
    """
    Advance ``current`` by ``interval_count`` periods of ``frequency``.

    Month arithmetic clamps to the last day of the target month. With an
    ``anchor_day`` the result moves back to that day whenever the target
    month is long enough, so a schedule anchored on the 31st runs
    Jan 31, Feb 28, Mar 31, Apr 30.
    """
    current = as_date(current, 'next_run_date')
    if current is None:
        raise ValidationError('A run date is required', {'next_run_date': ['This field is required']})

    step = FREQUENCY_STEPS.get(frequency)
    if step is None:
        raise ValidationError(
            f"Unknown frequency: {frequency}",
            {'frequency': [f'Must be one of: {", ".join(RecurringFrequency.values)}']},
        )

    try:
        interval_count = int(interval_count or 1)
    except (TypeError, ValueError):
        raise ValidationError('interval_count must be a whole number', {'interval_count': ['Must be a whole number']})
    if interval_count < 1:
        raise ValidationError('interval_count must be at least 1', {'interval_count': ['Must be at least 1']})

    next_date = current + step * interval_count

    if anchor_day and frequency in MONTH_BASED_FREQUENCIES:
        last_day = calendar.monthrange(next_date.year, next_date.month)[1]
        next_date = next_date.replace(day=min(int(anchor_day), last_day))

    return next_date


def current_date(clock) -> date:
    now = clock()
    if isinstance(now, datetime):
        if timezone.is_aware(now):
            now = timezone.localtime(now)
        return now.date()
    return now
