"""
Line-item and document totals.

All money is Decimal, rounded to cents with ROUND_HALF_UP at the point each
value is computed. Nothing downstream re-derives a total by subtraction.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from ..constants import DiscountType
from ..exceptions import ValidationError

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field: str = 'value') -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", {field: ['Must be a number']})
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", {field: ['Must be a number']})
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", {field: ['Must be a finite number']})
    return result


@dataclass(frozen=True)
class LineTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax_total: Decimal
    discount_value: Decimal
    discount_amount: Decimal
    discount_type: str
    total: Decimal

    def as_record(self) -> Dict[str, Any]:
        return {
            'subtotal': self.subtotal,
            'tax_total': self.tax_total,
            'discount_value': self.discount_value,
            'discount_amount': self.discount_amount,
            'discount_type': self.discount_type,
            'total': self.total,
        }


def _line_errors(quantity: Decimal, unit_price: Decimal, tax_rate: Decimal, prefix: str = '') -> Dict[str, List[str]]:
    errors = {}
    if quantity <= 0:
        errors[f'{prefix}quantity'] = ['Quantity must be greater than 0']
    if unit_price < 0:
        errors[f'{prefix}unit_price'] = ['Unit price cannot be negative']
    if tax_rate < 0 or tax_rate > HUNDRED:
        errors[f'{prefix}tax_rate'] = ['Tax rate must be between 0 and 100']
    return errors


def compute_line_total(quantity: Any, unit_price: Any, tax_rate: Any = 0) -> LineTotals:
    quantity = to_decimal(quantity, 'quantity')
    unit_price = to_decimal(unit_price, 'unit_price')
    tax_rate = to_decimal(tax_rate, 'tax_rate')

    errors = _line_errors(quantity, unit_price, tax_rate)
    if errors:
        raise ValidationError('Invalid line item', errors)

    subtotal = round_money(quantity * unit_price)
    tax = round_money(subtotal * tax_rate / HUNDRED)
    return LineTotals(subtotal=subtotal, tax=tax, total=round_money(subtotal + tax))


def compute_document_totals(
    line_items: Iterable[Dict[str, Any]],
    discount_value: Any = 0,
    discount_type: Optional[str] = DiscountType.FIXED,
) -> DocumentTotals:
    """
    Sum the line items and apply the document discount.

    ``discount_value`` is a currency amount for ``fixed`` and a percent of
    the subtotal for ``percentage``. The total is floored at zero.
    """
    discount_type = discount_type or DiscountType.FIXED
    errors: Dict[str, List[str]] = {}
    subtotal = ZERO
    tax_total = ZERO

    for index, item in enumerate(line_items):
        prefix = f'line_items.{index}.'
        try:
            quantity = to_decimal(item.get('quantity', 1), 'quantity')
            unit_price = to_decimal(item.get('unit_price', 0), 'unit_price')
            tax_rate = to_decimal(item.get('tax_rate', 0), 'tax_rate')
        except ValidationError as e:
            errors.update({f'{prefix}{k}': v for k, v in e.errors.items()})
            continue

        item_errors = _line_errors(quantity, unit_price, tax_rate, prefix)
        if item_errors:
            errors.update(item_errors)
            continue

        line = compute_line_total(quantity, unit_price, tax_rate)
        subtotal += line.subtotal
        tax_total += line.tax

    try:
        discount_value = to_decimal(discount_value, 'discount_value')
    except ValidationError as e:
        errors.update(e.errors)
        discount_value = ZERO

    if discount_type not in DiscountType.values:
        errors['discount_type'] = [f'Discount type must be one of: {", ".join(DiscountType.values)}']
    elif discount_value < 0:
        errors['discount_value'] = ['Discount cannot be negative']
    elif discount_type == DiscountType.PERCENTAGE and discount_value > HUNDRED:
        errors['discount_value'] = ['Percentage discount cannot exceed 100']

    if errors:
        raise ValidationError('Invalid document totals', errors)

    subtotal = round_money(subtotal)
    tax_total = round_money(tax_total)
    if discount_type == DiscountType.PERCENTAGE:
        discount_amount = round_money(subtotal * discount_value / HUNDRED)
    else:
        discount_amount = round_money(discount_value)

    total = max(round_money(subtotal + tax_total - discount_amount), ZERO)

    return DocumentTotals(
        subtotal=subtotal,
        tax_total=tax_total,
        discount_value=round_money(discount_value),
        discount_amount=discount_amount,
        discount_type=str(discount_type),
        total=total,
    )
