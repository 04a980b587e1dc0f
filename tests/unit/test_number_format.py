"""
Unit tests for quantity parsing and JSON number formatting.
"""

import pytest
from decimal import Decimal
from mrp.exceptions import ValidationError
from mrp.utils.number_format import parse_quantity, to_number


class TestParseQuantity:
    """Tests for parse_quantity."""

    @pytest.mark.parametrize('value,expected', [
        (5, Decimal('5')),
        ('2.5', Decimal('2.5')),
        (0.25, Decimal('0.25')),
        (' 10 ', Decimal('10')),
    ])
    def test_valid(self, value, expected):
        assert parse_quantity(value) == expected

    @pytest.mark.parametrize('value', [None, True, 'abc', -1, '-0.5', 'NaN', 'Infinity'])
    def test_invalid(self, value):
        with pytest.raises(ValidationError) as exc:
            parse_quantity(value, 'qty')
        assert 'qty' in exc.value.errors

    def test_zero_rejected_by_default(self):
        with pytest.raises(ValidationError):
            parse_quantity(0)

    def test_zero_allowed_when_requested(self):
        assert parse_quantity(0, allow_zero=True) == Decimal('0')


class TestToNumber:
    """Tests for to_number."""

    def test_integral_becomes_int(self):
        assert to_number(Decimal('10.0000')) == 10
        assert isinstance(to_number(Decimal('10.0000')), int)

    def test_fraction_becomes_float(self):
        assert to_number(Decimal('2.5000')) == 2.5

    def test_none_passes_through(self):
        assert to_number(None) is None
