"""Unit tests for iCal date normalization helpers."""
from datetime import datetime, timezone

import pytest

from processor.date_normalizer import (
    calculate_nights,
    format_datetime,
    get_timezone,
    normalize,
    parse_timestamp,
)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestNormalize:
    """Test cases for normalize()."""

    def test_value_date_is_utc_midnight(self):
        """Test VALUE=DATE yields midnight UTC."""
        assert normalize("20240115", {"VALUE": "DATE"}) == utc(2024, 1, 15)

    def test_date_without_params_is_utc_midnight(self):
        """Test a bare date without time part."""
        assert normalize("20240115", {}) == utc(2024, 1, 15)

    def test_date_time_with_z(self):
        """Test a UTC date-time."""
        assert normalize("20240115T140000Z", {}) == utc(2024, 1, 15, 14, 0, 0)

    def test_floating_date_time_is_read_as_utc(self):
        """Test that a date-time without Z is taken as UTC."""
        assert normalize("20240115T093015", None) == utc(2024, 1, 15, 9, 30, 15)

    def test_tzid_is_not_resolved(self):
        """Test that a TZID parameter does not shift the instant."""
        result = normalize("20240115T140000", {"TZID": "America/New_York"})

        assert result == utc(2024, 1, 15, 14, 0, 0)

    def test_value_date_ignores_time_part(self):
        """Test VALUE=DATE wins over a time component."""
        assert normalize("20240115T140000Z", {"VALUE": "DATE"}) == utc(2024, 1, 15)

    @pytest.mark.parametrize("raw", ["2024-01-15", "20240115T1400", "", "tomorrow", "20241315"])
    def test_invalid_values_return_none(self, raw):
        """Test pattern mismatches and out-of-range dates."""
        assert normalize(raw, {}) is None


class TestCalculateNights:
    """Test cases for calculate_nights()."""

    def test_three_nights(self):
        """Test a plain three-night stay."""
        assert calculate_nights(utc(2024, 1, 10), utc(2024, 1, 13)) == 3

    def test_check_out_before_check_in_is_zero(self):
        """Test that negative durations clamp to zero."""
        assert calculate_nights(utc(2024, 1, 13), utc(2024, 1, 10)) == 0

    def test_same_day_is_zero(self):
        assert calculate_nights(utc(2024, 1, 10), utc(2024, 1, 10)) == 0

    def test_partial_days_round_half_up(self):
        """Test afternoon check-in to morning check-out rounding."""
        assert calculate_nights(utc(2024, 1, 10, 15), utc(2024, 1, 12, 11)) == 2
        assert calculate_nights(utc(2024, 1, 10, 0), utc(2024, 1, 11, 12)) == 2

    def test_missing_dates_are_zero(self):
        assert calculate_nights(None, utc(2024, 1, 10)) == 0


class TestTimestamps:
    """Test cases for ledger timestamp helpers."""

    def test_format_datetime_in_timezone(self):
        """Test rendering a UTC instant in another zone."""
        value = utc(2024, 1, 15, 23, 30, 0)

        assert format_datetime(value, "%Y-%m-%d", "UTC") == "2024-01-15"
        assert format_datetime(value, "%Y-%m-%d %H:%M:%S", "Asia/Taipei") == "2024-01-16 07:30:00"

    def test_parse_timestamp_round_trip_value(self):
        """Test parsing a stored ledger timestamp."""
        parsed = parse_timestamp("2024-01-15 14:00:00", "%Y-%m-%d %H:%M:%S")

        assert parsed == utc(2024, 1, 15, 14, 0, 0)

    @pytest.mark.parametrize("raw", ["", None, "not a time", "2024-01-15"])
    def test_parse_timestamp_invalid(self, raw):
        """Test blank and malformed stored timestamps."""
        assert parse_timestamp(raw, "%Y-%m-%d %H:%M:%S") is None

    def test_unknown_timezone_raises(self):
        with pytest.raises(ValueError):
            get_timezone("Not/AZone")
