"""
Visit-schedule normalization.

Pure functions: relative dates ("today", "tomorrow", "day after tomorrow")
are resolved against a caller-supplied ``now`` using UTC day boundaries.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Tuple, Union

from utils.clock import to_naive_utc, utcnow
from .text import clean_text, normalize_visit_text_to_english, strip_foreign_script, to_ascii_digits

MONTH_INDEX = {
    name: index
    for index, name in enumerate(
        [
            "january", "february", "march", "april", "may", "june",
            "july", "august", "september", "october", "november", "december",
        ],
        start=1,
    )
}
_MONTHS = "|".join(MONTH_INDEX)

_YEAR_FIRST = re.compile(r"\b(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})\b")
_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})\b")
_DAY_MONTH_TEXT = re.compile(rf"\b(\d{{1,2}})\s+({_MONTHS})\s+(\d{{4}})\b", re.IGNORECASE)
_MONTH_DAY_TEXT = re.compile(rf"\b({_MONTHS})\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE)

_TIME_MERIDIEM = re.compile(r"\b(?:at\s*)?(\d{1,2})(?::([0-5]\d))?\s*(am|pm)\b", re.IGNORECASE)
_TIME_24H = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_TIME_AT_HOUR = re.compile(r"\bat\s+([01]?\d|2[0-3])\b", re.IGNORECASE)

_RELATIVE_DAYS = (("day after tomorrow", 2), ("tomorrow", 1), ("today", 0))


@dataclass
class VisitSchedule:
    raw_text: Optional[str] = None
    english_text: Optional[str] = None
    visit_date: Optional[date] = None
    visit_datetime: Optional[datetime] = None

    @property
    def captured(self) -> bool:
        return bool(self.raw_text or self.english_text)


def _make_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _resolve_day_month(first: int, second: int, raw_year: int) -> Optional[date]:
    """d/m/y unless one part can only be a day."""
    year = 2000 + raw_year if raw_year < 100 else raw_year
    if first > 12:
        return _make_date(year, second, first)
    if second > 12:
        return _make_date(year, first, second)
    return _make_date(year, second, first)


def _parse_iso_datetime(text: str) -> Optional[datetime]:
    candidate = text.strip()
    if candidate.endswith("Z") or candidate.endswith("z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(candidate))
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(candidate), datetime.min.time())
    except ValueError:
        return None


def parse_date_input(value: Union[str, date, None]) -> Optional[date]:
    """Parse an explicit date hint (``YYYY-MM-DD``, ``D/M/Y`` or ISO instant)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value).date()
    if isinstance(value, date):
        return value

    cleaned = clean_text(to_ascii_digits(value))
    if not cleaned:
        return None

    match = re.fullmatch(r"(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})", cleaned)
    if match:
        return _make_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = re.fullmatch(r"(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})", cleaned)
    if match:
        return _resolve_day_month(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    parsed = _parse_iso_datetime(cleaned)
    return parsed.date() if parsed else None


def parse_datetime_input(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    cleaned = clean_text(to_ascii_digits(value))
    if not cleaned:
        return None
    return _parse_iso_datetime(cleaned)


def parse_date_from_visit_text(value: str, now: datetime) -> Optional[date]:
    text = value.lower()
    today = to_naive_utc(now).date()

    for phrase, days in _RELATIVE_DAYS:
        if phrase in text:
            return today + timedelta(days=days)

    match = _YEAR_FIRST.search(text)
    if match:
        return _make_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _DAY_MONTH_YEAR.search(text)
    if match:
        return _resolve_day_month(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _DAY_MONTH_TEXT.search(text)
    if match:
        return _make_date(int(match.group(3)), MONTH_INDEX[match.group(2).lower()], int(match.group(1)))

    match = _MONTH_DAY_TEXT.search(text)
    if match:
        return _make_date(int(match.group(3)), MONTH_INDEX[match.group(1).lower()], int(match.group(2)))

    parsed = _parse_iso_datetime(text)
    return parsed.date() if parsed else None


def parse_time_from_visit_text(value: str) -> Optional[Tuple[int, int]]:
    """Return (hour, minute) from 12-hour, 24-hour or "at H" phrases."""
    match = _TIME_MERIDIEM.search(value)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if hour < 1 or hour > 12:
            return None
        if match.group(3).lower() == "pm":
            return hour % 12 + 12, minute
        return hour % 12, minute

    match = _TIME_24H.search(value)
    if match:
        return int(match.group(1)), int(match.group(2))

    match = _TIME_AT_HOUR.search(value)
    if match:
        return int(match.group(1)), 0

    return None


def normalize_visit_schedule(
    raw_visit_time: Optional[str],
    english_visit_time: Optional[str] = None,
    visit_date: Union[str, date, None] = None,
    visit_datetime: Union[str, datetime, None] = None,
    now: Optional[datetime] = None,
) -> VisitSchedule:
    """
    Resolve a visit schedule from free text and structured hints.

    Precedence: explicit datetime, explicit date, a date read from the English
    text (combined with any time phrase), then a datetime read from the text.
    ``english_visit_time`` is expected to be Latin-script already; Arabic text
    in it is mapped through the visit vocabulary and anything left over from a
    non-Latin script is dropped.
    """
    now = now if now is not None else utcnow()
    raw_text = clean_text(raw_visit_time)

    english_source = clean_text(english_visit_time) or raw_text
    english_text = None
    if english_source:
        english_text = clean_text(strip_foreign_script(normalize_visit_text_to_english(english_source)))

    resolved_datetime = parse_datetime_input(visit_datetime)
    resolved_date = resolved_datetime.date() if resolved_datetime else parse_date_input(visit_date)

    if resolved_date is None and english_text:
        resolved_date = parse_date_from_visit_text(english_text, now)

    if resolved_datetime is None and resolved_date is not None and english_text:
        time_parts = parse_time_from_visit_text(english_text)
        if time_parts:
            resolved_datetime = datetime.combine(resolved_date, datetime.min.time()).replace(
                hour=time_parts[0], minute=time_parts[1]
            )

    if resolved_datetime is None and english_text:
        resolved_datetime = _parse_iso_datetime(english_text)
        if resolved_datetime is not None and resolved_date is None:
            resolved_date = resolved_datetime.date()

    if resolved_date is None and resolved_datetime is not None:
        resolved_date = resolved_datetime.date()

    return VisitSchedule(
        raw_text=raw_text,
        english_text=english_text,
        visit_date=resolved_date,
        visit_datetime=resolved_datetime,
    )
