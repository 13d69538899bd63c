"""Normalization of amounts and date parts written on OREA forms."""

from __future__ import annotations

import re
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation

_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_ORDINAL_RE = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
_MERIDIEM_RE = re.compile(r"\b(a\.?m\.?|p\.?m\.?)", re.IGNORECASE)
_TIME_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)?", re.IGNORECASE)
_AMOUNT_NOISE_RE = re.compile(r"[^\d.\-]")

DEFAULT_HOUR = 12


def _clean_part(value: str) -> str:
    value = _ORDINAL_RE.sub(r"\1", value)
    value = _MERIDIEM_RE.sub("", value)
    return " ".join(value.split())


def parse_amount(value: str | None) -> float | None:
    """Parse an amount written with currency symbols and separators.

    Args:
        value (str | None): Raw amount, e.g. ``"$675,000.00"`` or ``"CAD 25 000"``.

    Returns:
        float | None: Parsed amount, or None when no number can be read.
    """
    if not value:
        return None
    compact = _AMOUNT_NOISE_RE.sub("", value)
    if not compact or compact in {".", "-"}:
        return None
    try:
        return float(Decimal(compact))
    except InvalidOperation:
        return None


def parse_month(value: str | None) -> int | None:
    """Return the month number for a name, an abbreviation or a digit string.

    Args:
        value (str | None): Raw month text.

    Returns:
        int | None: Month in 1..12, or None when unreadable.
    """
    if not value:
        return None
    cleaned = _clean_part(value).lower().rstrip(".")
    if cleaned.isdigit():
        month = int(cleaned)
        return month if 1 <= month <= 12 else None  # noqa: PLR2004
    prefix = cleaned[:3]
    if prefix in _MONTHS:
        return _MONTHS.index(prefix) + 1
    return None


def parse_time(value: str | None) -> tuple[int, int]:
    """Parse an ``h:mm AM/PM`` time, defaulting to noon.

    Args:
        value (str | None): Raw time text, e.g. ``"5:00 p.m."``.

    Returns:
        tuple[int, int]: Hour in 0..23 and minute.
    """
    if not value:
        return DEFAULT_HOUR, 0
    match = _TIME_RE.search(value)
    if not match:
        return DEFAULT_HOUR, 0

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").lower().replace(".", "")
    if meridiem == "pm" and hour < 12:  # noqa: PLR2004
        hour += 12
    elif meridiem == "am" and hour == 12:  # noqa: PLR2004
        hour = 0
    if not (0 <= hour <= 23 and 0 <= minute <= 59):  # noqa: PLR2004
        return DEFAULT_HOUR, 0
    return hour, minute


def parse_date_parts(
    day: str | None,
    month: str | None,
    year: str | None,
    *,
    time: str | None = None,
    tz: tzinfo | None = None,
) -> datetime | None:
    """Build a datetime from the separate day/month/year boxes of a form.

    Args:
        day (str | None): Day text, ordinals allowed (``"21st"``).
        month (str | None): Month name, abbreviation or number.
        year (str | None): Year, two or four digits.
        time (str | None): Optional time of day. Noon when absent.
        tz (tzinfo | None): Timezone attached to the result.

    Returns:
        datetime | None: The parsed moment, or None when any part is missing or invalid.
    """
    if not (day and month and year):
        return None

    day_text = _clean_part(day)
    year_text = _clean_part(year)
    month_number = parse_month(month)
    if month_number is None or not day_text.isdigit() or not year_text.isdigit():
        return None

    year_number = int(year_text)
    if year_number < 100:  # noqa: PLR2004
        year_number += 2000

    hour, minute = parse_time(time)
    try:
        return datetime(year_number, month_number, int(day_text), hour, minute, tzinfo=tz)
    except ValueError:
        return None
