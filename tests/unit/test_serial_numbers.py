"""
Unit tests for serial number generation and serial status transitions.
"""

import pytest
from datetime import datetime
from mrp.models import SerialStatus
from mrp.services.serial_service import (
    generate_serial_number, serial_prefix, is_valid_serial_transition
)

FIXED_NOW = datetime(2024, 1, 15, 10, 30, 5)


class TestSerialPrefix:
    """Tests for the prefix taken from an assembly IPN."""

    @pytest.mark.parametrize('ipn,expected', [
        ('ASY-001', 'ASY'),
        ('PCA-MAIN-V1.0', 'PCA'),
        ('X-TEST', 'X'),
        ('BOARD-123', 'BOA'),
        ('pcb-rev2', 'PCB'),
        ('AB', 'AB'),
        ('MOTOR_ASSY 7', 'MOT'),
    ])
    def test_prefix_is_first_segment_truncated(self, ipn, expected):
        """First alphanumeric segment, upper-cased, at most 3 characters."""
        assert serial_prefix(ipn) == expected

    @pytest.mark.parametrize('ipn', ['', '---', None])
    def test_fallback_prefix(self, ipn):
        """An IPN with no alphanumerics falls back to SN."""
        assert serial_prefix(ipn) == 'SN'


class TestGenerateSerialNumber:
    """Tests for generate_serial_number."""

    def test_format_prefix_and_timestamp(self):
        """PREFIX followed by YYMMDDHHMMSS."""
        assert generate_serial_number('PCA-MAIN-V1.0', FIXED_NOW) == 'PCA240115103005'

    def test_minimum_length(self):
        """A generated serial is at least len(prefix) + 12 characters."""
        for ipn in ('ASY-001', 'PCA-MAIN-V1.0', 'X-TEST', 'BOARD-123'):
            serial = generate_serial_number(ipn)
            assert len(serial) >= len(serial_prefix(ipn)) + 12
            assert serial.startswith(serial_prefix(ipn))
            assert serial[len(serial_prefix(ipn)):].isdigit()

    def test_uses_current_time_by_default(self):
        """Without an explicit time the current time is used."""
        before = datetime.now().strftime('%y%m%d')
        serial = generate_serial_number('ASY-001')
        assert serial[3:9] >= before


class TestSerialTransitions:
    """Tests for is_valid_serial_transition."""

    @pytest.mark.parametrize('current,requested', [
        (SerialStatus.BUILDING, SerialStatus.TESTING),
        (SerialStatus.TESTING, SerialStatus.COMPLETE),
        (SerialStatus.BUILDING, SerialStatus.FAILED),
        (SerialStatus.BUILDING, SerialStatus.SCRAPPED),
    ])
    def test_allowed(self, current, requested):
        assert is_valid_serial_transition(current, requested) is True

    @pytest.mark.parametrize('current,requested', [
        (SerialStatus.BUILDING, SerialStatus.COMPLETE),
        (SerialStatus.TESTING, SerialStatus.BUILDING),
        (SerialStatus.COMPLETE, SerialStatus.TESTING),
        (SerialStatus.FAILED, SerialStatus.BUILDING),
        (SerialStatus.SCRAPPED, SerialStatus.TESTING),
    ])
    def test_rejected(self, current, requested):
        assert is_valid_serial_transition(current, requested) is False

    def test_string_values(self):
        assert is_valid_serial_transition('building', 'testing') is True
        assert is_valid_serial_transition('building', 'shipped') is False
