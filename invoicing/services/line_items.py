"""Persistence helpers for the line items shared by quotes and invoices."""

from typing import Any, Dict, List

from ..exceptions import ValidationError
from ..store.base import RecordStore
from .totals import compute_line_total, to_decimal

LINE_ITEM_FIELDS = ('catalogue_item_id', 'description', 'quantity', 'unit_price', 'tax_rate', 'sort_order')


def normalize_line_items(items: Any) -> List[Dict[str, Any]]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError('At least one line item is required', {'line_items': ['At least one line item is required']})

    errors: Dict[str, List[str]] = {}
    normalized = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            errors[f'line_items.{index}'] = ['Line item must be an object']
            continue
        description = str(item.get('description') or '').strip()
        if not description:
            errors[f'line_items.{index}.description'] = ['Description is required']
        try:
            quantity = to_decimal(item.get('quantity', 1), 'quantity')
            unit_price = to_decimal(item.get('unit_price', 0), 'unit_price')
            tax_rate = to_decimal(item.get('tax_rate', 0), 'tax_rate')
        except ValidationError as e:
            errors.update({f'line_items.{index}.{k}': v for k, v in e.errors.items()})
            continue
        normalized.append({
            'catalogue_item_id': item.get('catalogue_item_id') or None,
            'description': description,
            'quantity': quantity,
            'unit_price': unit_price,
            'tax_rate': tax_rate,
            'sort_order': int(item.get('sort_order', index) or 0),
        })

    if errors:
        raise ValidationError('Invalid line items', errors)
    return normalized


def write_line_items(store: RecordStore, table: str, parent_field: str, parent_id: str,
                     items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    created = []
    for item in items:
        line = compute_line_total(item['quantity'], item['unit_price'], item['tax_rate'])
        created.append(store.create(table, {
            parent_field: parent_id,
            'catalogue_item_id': item.get('catalogue_item_id'),
            'description': item['description'],
            'quantity': item['quantity'],
            'unit_price': item['unit_price'],
            'tax_rate': item['tax_rate'],
            'line_total': line.total,
            'sort_order': item.get('sort_order', 0),
        }))
    return sorted(created, key=lambda row: row.get('sort_order') or 0)


def read_line_items(store: RecordStore, table: str, parent_field: str, parent_id: str) -> List[Dict[str, Any]]:
    rows = store.query(table, {parent_field: parent_id})
    return sorted(rows, key=lambda row: row.get('sort_order') or 0)


def delete_line_items(store: RecordStore, table: str, parent_field: str, parent_id: str) -> int:
    rows = store.query(table, {parent_field: parent_id})
    for row in rows:
        store.delete(table, row['id'])
    return len(rows)


def strip_line_items(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy line items for another document, dropping ids and parent keys."""
    return [{field: row.get(field) for field in LINE_ITEM_FIELDS} for row in rows]
