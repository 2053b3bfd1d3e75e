"""Quiet-hour windows — ``HH:MM`` parsing and minute-of-day window checks.

A window is inclusive at both ends. When ``start`` is later than ``end`` the
window wraps past midnight (``22:00``–``06:00``).
"""

import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from protean.exceptions import ValidationError

_HHMM = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str, field: str = "quiet_hours") -> int:
    """Return the minute of day for an ``HH:MM`` string."""
    match = _HHMM.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError({field: [f"Invalid time format: {value}. Use HH:MM"]})
    return int(match.group(1)) * 60 + int(match.group(2))


def validate_timezone(name: str, field: str = "quiet_hours_timezone") -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError({field: [f"Unknown time zone: {name}"]}) from None
    return name


def minute_of_day(now: datetime, timezone: str | None) -> int:
    """Minute of day of ``now`` as seen in ``timezone``.

    Naive datetimes are taken to be UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(ZoneInfo(timezone or "UTC"))
    return local.hour * 60 + local.minute


def in_window(start: int | None, end: int | None, current: int) -> bool:
    if start is None or end is None:
        return False
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def in_quiet_hours(
    start: str | None,
    end: str | None,
    now: datetime,
    timezone: str | None,
) -> bool:
    """Whether ``now`` falls inside the ``start``–``end`` window in ``timezone``."""
    if not start or not end:
        return False
    return in_window(parse_hhmm(start), parse_hhmm(end), minute_of_day(now, timezone))
