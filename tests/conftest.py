from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from invoicing.engine import InvoicingEngine
from invoicing.store import InMemoryRecordStore


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, year, month, day, hour=12):
        self.now = datetime(year, month, day, hour, tzinfo=dt_timezone.utc)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 1, 15, 12, tzinfo=dt_timezone.utc))


@pytest.fixture
def store(clock):
    return InMemoryRecordStore(clock=clock)


@pytest.fixture
def engine(store, clock):
    return InvoicingEngine.build(store, clock=clock, config={'STORE_RETRY_BACKOFF': 0})


@pytest.fixture
def user_id():
    return 'user-1'
