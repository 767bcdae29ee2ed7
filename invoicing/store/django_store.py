import uuid
import logging
from functools import wraps
from typing import Any, Dict, List, Optional, Type

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, models, transaction
from django.db.models import F
from django.utils import timezone

from .. import constants
from ..exceptions import ConcurrentUpdateError, NotFoundError, TransientStoreError
from ..models import (
    DocumentSequence,
    Invoice,
    InvoiceLineItem,
    InvoicePayment,
    Quote,
    QuoteLineItem,
    RecurringSchedule,
)
from .base import Record, RecordStore

logger = logging.getLogger(__name__)


TABLE_MODELS: Dict[str, Type[models.Model]] = {
    constants.QUOTES: Quote,
    constants.QUOTE_LINE_ITEMS: QuoteLineItem,
    constants.INVOICES: Invoice,
    constants.INVOICE_LINE_ITEMS: InvoiceLineItem,
    constants.INVOICE_PAYMENTS: InvoicePayment,
    constants.RECURRING_SCHEDULES: RecurringSchedule,
    constants.DOCUMENT_SEQUENCES: DocumentSequence,
}

# Maintained by the database, never written from a record.
AUTO_FIELDS = ('id', 'version', 'created_at', 'updated_at')


def translate_db_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError as e:
            raise ConcurrentUpdateError(f"Integrity conflict in {func.__name__}: {e}") from e
        except DatabaseError as e:
            raise TransientStoreError(f"Database error in {func.__name__}: {e}") from e
    return wrapper


class DjangoRecordStore(RecordStore):
    """Record store backed by the ``invoicing`` ORM models."""

    def _model(self, table: str) -> Type[models.Model]:
        try:
            return TABLE_MODELS[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}")

    @staticmethod
    def _field_names(model: Type[models.Model]) -> List[str]:
        return [f.attname for f in model._meta.concrete_fields]

    @staticmethod
    def _to_record(instance: models.Model) -> Record:
        record = {}
        for field in instance._meta.concrete_fields:
            value = getattr(instance, field.attname)
            if isinstance(value, uuid.UUID):
                value = str(value)
            record[field.attname] = value
        return record

    def _writable(self, model: Type[models.Model], data: Record) -> Record:
        names = set(self._field_names(model))
        return {k: v for k, v in data.items() if k in names and k not in AUTO_FIELDS}

    def _filter_kwargs(self, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        kwargs = {}
        for field, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set, frozenset)):
                kwargs[f"{field}__in"] = list(value)
            elif value is None:
                kwargs[f"{field}__isnull"] = True
            else:
                kwargs[field] = value
        return kwargs

    @translate_db_errors
    def create(self, table: str, record: Record) -> Record:
        model = self._model(table)
        data = self._writable(model, record)
        if record.get('id'):
            data['id'] = record['id']
        instance = model.objects.create(**data)
        instance.refresh_from_db()
        return self._to_record(instance)

    @translate_db_errors
    def get_by_id(self, table: str, record_id: Any) -> Optional[Record]:
        model = self._model(table)
        try:
            instance = model.objects.get(pk=record_id)
        except (model.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            # Malformed ids are treated like missing rows.
            return None
        return self._to_record(instance)

    @translate_db_errors
    def query(self, table: str, filters: Optional[Dict[str, Any]] = None) -> List[Record]:
        model = self._model(table)
        return [self._to_record(obj) for obj in model.objects.filter(**self._filter_kwargs(filters))]

    @translate_db_errors
    def update(self, table: str, record_id: Any, patch: Record,
               expected_version: Optional[int] = None) -> Record:
        model = self._model(table)
        names = self._field_names(model)
        changes = self._writable(model, patch)

        qs = model.objects.filter(pk=record_id)
        if expected_version is not None:
            qs = qs.filter(version=expected_version)
        if 'version' in names:
            changes['version'] = F('version') + 1
        if 'updated_at' in names:
            changes['updated_at'] = timezone.now()

        with transaction.atomic():
            updated = qs.update(**changes)
            if not updated:
                if model.objects.filter(pk=record_id).exists():
                    raise ConcurrentUpdateError(
                        f"{table} {record_id} changed (expected version {expected_version})",
                        table=table, record_id=str(record_id),
                    )
                raise NotFoundError(table, record_id)
            return self._to_record(model.objects.get(pk=record_id))

    @translate_db_errors
    def delete(self, table: str, record_id: Any) -> None:
        self._model(table).objects.filter(pk=record_id).delete()

    @translate_db_errors
    def increment(self, table: str, key: Dict[str, Any], field: str, amount: int = 1) -> int:
        model = self._model(table)
        with transaction.atomic():
            row, _ = model.objects.select_for_update().get_or_create(**key)
            model.objects.filter(pk=row.pk).update(**{field: F(field) + amount})
            row.refresh_from_db(fields=[field])
            return getattr(row, field)

    def atomic(self):
        return transaction.atomic()
