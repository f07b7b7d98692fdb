"""Normalization of iCal DATE / DATE-TIME values."""
import logging
import math
import re
from datetime import date, datetime, timezone, tzinfo
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

ICAL_DATE_PATTERN = re.compile(
    r'^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?$'
)

SECONDS_PER_DAY = 24 * 60 * 60


def normalize(raw_value: str, params: Optional[Dict[str, str]] = None) -> Optional[datetime]:
    """
    Convert an iCal date or date-time value to an aware UTC datetime.

    Date-only values (or VALUE=DATE) become UTC midnight. Date-time values
    are always read as UTC; a trailing Z or a TZID parameter is not resolved.

    Args:
        raw_value: Property value, e.g. "20240115" or "20240115T140000Z"
        params: Property parameters with upper-cased names

    Returns:
        Aware UTC datetime or None if the value cannot be parsed
    """
    params = params or {}
    match = ICAL_DATE_PATTERN.match(raw_value.strip()) if raw_value else None
    if not match:
        logger.warning(f"Unable to parse iCal date value: {raw_value!r} params={params}")
        return None

    year, month, day = (int(part) for part in match.group(1, 2, 3))
    is_value_date = params.get('VALUE') == 'DATE'

    try:
        if not is_value_date and match.group(4):
            hour, minute, second = (int(part) for part in match.group(4, 5, 6))
            return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError as e:
        logger.warning(f"Out of range iCal date value {raw_value!r}: {e}")
        return None


def calculate_nights(check_in: Optional[datetime], check_out: Optional[datetime]) -> int:
    """
    Number of nights between two instants, rounded to whole days.

    Returns 0 when either side is missing or check-out precedes check-in.
    """
    if check_in is None or check_out is None:
        logger.warning(f"Invalid dates for nights calculation: in={check_in} out={check_out}")
        return 0

    days = (check_out - check_in).total_seconds() / SECONDS_PER_DAY
    nights = math.floor(days + 0.5)
    return nights if nights > 0 else 0


def get_timezone(name: str) -> tzinfo:
    """Resolve a zone name; raises ValueError for unknown zones."""
    if name.upper() == 'UTC':
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def format_datetime(value: datetime, fmt: str, tz_name: str = 'UTC') -> str:
    """Render an aware datetime in the ledger's reporting timezone."""
    return value.astimezone(get_timezone(tz_name)).strftime(fmt)


def parse_timestamp(value: object, fmt: str, tz_name: str = 'UTC') -> Optional[datetime]:
    """
    Parse a ledger timestamp written with format_datetime.

    Returns:
        Aware datetime or None when the stored value is blank or malformed
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=get_timezone(tz_name))
    if isinstance(value, date) or value is None:
        return None

    text = str(value).strip()
    if not text:
        return None
    try:
        parsed = datetime.strptime(text, fmt)
    except ValueError:
        return None
    return parsed.replace(tzinfo=get_timezone(tz_name))
