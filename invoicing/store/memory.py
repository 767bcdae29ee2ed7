import copy
import uuid
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from django.utils import timezone

from ..exceptions import ConcurrentUpdateError, NotFoundError
from .base import Record, RecordStore, matches

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed store for tests and scripts.

    Records are deep-copied on the way in and out so callers never share
    state with the store. ``atomic()`` snapshots every table and restores
    the snapshot if the block raises.
    """

    VERSIONED_TABLES = ('quotes', 'invoices', 'recurring_schedules')

    def __init__(self, clock: Optional[Callable] = None):
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()
        self._clock = clock or timezone.now

    def _table(self, table: str) -> Dict[str, Record]:
        return self._tables.setdefault(table, {})

    def create(self, table: str, record: Record) -> Record:
        with self._lock:
            row = copy.deepcopy(record)
            row['id'] = str(row.get('id') or uuid.uuid4())
            now = self._clock()
            row.setdefault('created_at', now)
            row['updated_at'] = now
            if table in self.VERSIONED_TABLES:
                row['version'] = 1
            self._table(table)[row['id']] = row
            return copy.deepcopy(row)

    def get_by_id(self, table: str, record_id: Any) -> Optional[Record]:
        with self._lock:
            row = self._table(table).get(str(record_id))
            return copy.deepcopy(row) if row is not None else None

    def query(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._table(table).values() if matches(row, filters)]

    def update(self, table: str, record_id: Any, patch: Record,
               expected_version: Optional[int] = None) -> Record:
        with self._lock:
            row = self._table(table).get(str(record_id))
            if row is None:
                raise NotFoundError(table, record_id)
            if expected_version is not None and row.get('version') != expected_version:
                raise ConcurrentUpdateError(
                    f"{table} {record_id} changed (expected version {expected_version}, found {row.get('version')})",
                    table=table, record_id=str(record_id),
                )
            row.update(copy.deepcopy({k: v for k, v in patch.items() if k not in ('id', 'version')}))
            row['updated_at'] = self._clock()
            if 'version' in row:
                row['version'] += 1
            return copy.deepcopy(row)

    def delete(self, table: str, record_id: Any) -> None:
        with self._lock:
            self._table(table).pop(str(record_id), None)

    def increment(self, table: str, key: Dict[str, Any], field: str, amount: int = 1) -> int:
        with self._lock:
            rows = [row for row in self._table(table).values() if matches(row, key)]
            if rows:
                row = rows[0]
            else:
                row_id = str(uuid.uuid4())
                row = {**key, 'id': row_id, field: 0}
                self._table(table)[row_id] = row
            row[field] = row.get(field, 0) + amount
            return row[field]

    @contextmanager
    def atomic(self):
        with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                yield self
            except BaseException:
                self._tables = snapshot
                logger.debug("In-memory transaction rolled back")
                raise
