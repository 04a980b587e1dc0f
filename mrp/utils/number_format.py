"""Quantity parsing and JSON formatting helpers."""
from decimal import Decimal, InvalidOperation

from mrp.exceptions import ValidationError

QTY_PLACES = Decimal('0.0001')


def parse_quantity(value, field='qty', allow_zero=False) -> Decimal:
    """
    Parse a JSON quantity (int, float or numeric string) into a Decimal.

    Rules:
    - Booleans are rejected (JSON true is not a quantity)
    - Negative values are rejected
    - Zero is rejected unless allow_zero is set
    - Rounded to 4 decimal places, matching the inventory columns

    Raises:
        ValidationError: if the value is missing or invalid.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f'{field} is required', {field: 'required'})

    try:
        qty = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', {field: 'must be a number'})

    if not qty.is_finite():
        raise ValidationError(f'{field} must be a number', {field: 'must be a number'})

    if qty < 0 or (qty == 0 and not allow_zero):
        message = 'must be zero or greater' if allow_zero else 'must be greater than 0'
        raise ValidationError(f'{field} {message}', {field: message})

    return qty.quantize(QTY_PLACES)


def to_number(value):
    """
    Convert a Decimal quantity to a JSON number.

    Integral values become int (10 instead of 10.0); everything else float.
    None passes through.
    """
    if value is None:
        return None
    dec = Decimal(str(value))
    if dec == dec.to_integral_value():
        return int(dec)
    return float(dec)
