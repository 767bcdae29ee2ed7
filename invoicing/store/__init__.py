from .base import Record, RecordStore, RetryingService, run_with_retry
from .memory import InMemoryRecordStore

__all__ = [
    'Record',
    'RecordStore',
    'InMemoryRecordStore',
    'RetryingService',
    'run_with_retry',
]
