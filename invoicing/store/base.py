"""
Record store interface consumed by the invoicing engine.

Records are plain dicts keyed by the persisted field names. Every table
with a ``version`` column has it bumped on each update so callers can
guard writes with ``expected_version``.
"""

import time
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ..exceptions import ConcurrentUpdateError, TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar('T')

Record = Dict[str, Any]


class RecordStore(ABC):

    @abstractmethod
    def create(self, table: str, record: Record) -> Record:
        """Insert ``record`` and return it with ``id`` and timestamps filled in."""

    @abstractmethod
    def get_by_id(self, table: str, record_id: Any) -> Optional[Record]:
        pass

    @abstractmethod
    def query(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        """Exact-match filtering. A list or tuple value means "any of"."""

    @abstractmethod
    def update(self, table: str, record_id: Any, patch: Record,
               expected_version: Optional[int] = None) -> Record:
        """
        Apply ``patch`` and return the stored record.

        Raises NotFoundError when the row is gone and ConcurrentUpdateError
        when ``expected_version`` no longer matches.
        """

    @abstractmethod
    def delete(self, table: str, record_id: Any) -> None:
        pass

    @abstractmethod
    def increment(self, table: str, key: Dict[str, Any], field: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to ``field`` of the row matching ``key``, creating it at zero first."""

    @abstractmethod
    def atomic(self):
        """Context manager: everything inside commits or rolls back together."""


def matches(record: Record, filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    for field, expected in filters.items():
        value = record.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def run_with_retry(operation: Callable[[], T], attempts: int = 3, backoff: float = 0.05,
                   description: str = 'store operation', retry_conflicts: bool = True) -> T:
    """
    Run ``operation``, retrying TransientStoreError with exponential backoff.

    ConcurrentUpdateError is a TransientStoreError, so optimistic version
    conflicts are retried the same way unless ``retry_conflicts`` is off
    (the caller pinned a version and a conflict means its read is stale).
    """
    attempts = max(int(attempts), 1)
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except TransientStoreError as e:
            if isinstance(e, ConcurrentUpdateError) and not retry_conflicts:
                raise
            if attempt >= attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(f"{description} attempt {attempt}/{attempts} failed, retrying in {delay:.2f}s: {e}")
            if delay > 0:
                time.sleep(delay)


class RetryingService:
    """Gives a service a ``_retry`` bound to its configured retry policy."""

    retry_attempts = 3
    retry_backoff = 0.05

    def _retry(self, operation: Callable[[], T], description: str, retry_conflicts: bool = True) -> T:
        return run_with_retry(operation, attempts=self.retry_attempts, backoff=self.retry_backoff,
                              description=description, retry_conflicts=retry_conflicts)
