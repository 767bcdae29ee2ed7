import logging
from typing import Callable, Optional

from django.utils import timezone

from ..constants import DOCUMENT_SEQUENCES, NUMBER_PREFIXES
from ..store.base import RecordStore

logger = logging.getLogger(__name__)


class DocumentNumberAssigner:
    """
    Hands out ``{PREFIX}-{year}-{n:04d}`` numbers per user, document type and year.

    The counter lives in ``document_sequences`` and is advanced with the
    store's atomic increment, so concurrent creations never share a number.
    """

    def __init__(self, store: RecordStore, clock: Optional[Callable] = None):
        self.store = store
        self.clock = clock or timezone.now

    @staticmethod
    def prefix_for(document_type: str) -> str:
        try:
            return NUMBER_PREFIXES[document_type]
        except KeyError:
            raise ValueError(f"Unknown document type: {document_type}")

    def next_number(self, user_id: str, document_type: str, year: Optional[int] = None) -> str:
        prefix = self.prefix_for(document_type)
        year = year or self.clock().year
        try:
            value = self.store.increment(
                DOCUMENT_SEQUENCES,
                {'user_id': str(user_id), 'document_type': document_type, 'year': int(year)},
                'last_value',
            )
        except Exception as e:
            fallback = f"{prefix}-{int(self.clock().timestamp() * 1000)}"
            logger.warning(
                f"Sequence unavailable for {document_type} user={user_id} year={year}, using {fallback}: {e}",
                exc_info=True,
            )
            return fallback
        return f"{prefix}-{year}-{value:04d}"
