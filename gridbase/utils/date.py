"""
Date parsing utilities for CSV imports.

Day-first input is preferred over month-first: "03/04/2024" is the 3rd of
April. Parsed values are standardized to ISO 8601 UTC strings for storage.
"""

import pandas as pd
from typing import Any, Optional
import re
from datetime import datetime
import logging

from gridbase.core.config import settings

logger = logging.getLogger(__name__)

FAILED_SAMPLE_LIMIT = 5
SUPPRESSION_NOTICE_EVERY = 100

_failure_stats: dict = {}

_MONTHS = ('jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'oct', 'nov', 'dec')
_MONTH_ALTERNATION = "|".join(_MONTHS)
_TIME_SUFFIX = r'(?:[ T](\d{1,2}):(\d{2})(?::(\d{2}))?)?'

_DAY_FIRST_RE = re.compile(r'^(\d{1,2})[/-](\d{1,2})[/-](\d{4})' + _TIME_SUFFIX + r'$')
_YEAR_FIRST_RE = re.compile(r'^(\d{4})[/-](\d{1,2})[/-](\d{1,2})' + _TIME_SUFFIX + r'$')
_ISO_DATETIME_RE = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}')
_DAY_MONTH_NAME_RE = re.compile(
    r'(\d{1,2})\s+(' + _MONTH_ALTERNATION + r')[a-z]*\.?,?\s+(\d{4})', re.IGNORECASE
)
_MONTH_NAME_DAY_RE = re.compile(
    r'(' + _MONTH_ALTERNATION + r')[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})', re.IGNORECASE
)
# Shape a value must have before the permissive pandas parser is trusted with it
_DATE_SHAPE_RE = re.compile(r'\d{1,2}[/-]\d{1,2}[/-]\d{2,4}')
MAX_DATE_TEXT_LENGTH = 50

# Patterns used by column type inference
DATE_PATTERNS = (
    re.compile(r'^\d{4}[-/]\d{1,2}[-/]\d{1,2}'),
    re.compile(r'^\d{1,2}[-/]\d{1,2}[-/](?:\d{4}|\d{2})(?!\d)'),
    _ISO_DATETIME_RE,
    re.compile(r'^\d{1,2}\s+(?:' + _MONTH_ALTERNATION + r')', re.IGNORECASE),
    re.compile(r'^(?:' + _MONTH_ALTERNATION + r')[a-z]*\.?\s+\d{1,2}', re.IGNORECASE),
)


def _record_parse_failure(value: Any, context: Optional[str], error: Exception) -> None:
    """
    Collect failure stats and emit limited logs (sampled warnings + periodic summaries).
    """
    key = context or "default"
    stats = _failure_stats.setdefault(key, {"count": 0, "samples": []})
    stats["count"] += 1
    count = stats["count"]

    if len(stats["samples"]) < FAILED_SAMPLE_LIMIT:
        stats["samples"].append(value)
        logger.warning("Failed to parse date%s value '%s': %s", f" ({key})" if context else "", value, error)
        return

    if count == FAILED_SAMPLE_LIMIT + 1 or count % SUPPRESSION_NOTICE_EVERY == 0:
        logger.info(
            "Suppressed additional date parse warnings after %d failures%s; sample values=%s",
            count,
            f" ({key})" if context else "",
            stats["samples"],
        )


def _year_in_range(year: int) -> bool:
    return settings.date_year_min <= year <= settings.date_year_max


def _build(year: int, month: int, day: int, match: re.Match, time_group: int) -> Optional[datetime]:
    """Build a datetime from regex groups, rejecting impossible dates like 31/02."""
    if not _year_in_range(year):
        return None
    hour = int(match.group(time_group) or 0)
    minute = int(match.group(time_group + 1) or 0)
    second = int(match.group(time_group + 2) or 0)
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def _to_naive_utc(timestamp: Any) -> Optional[datetime]:
    if timestamp is None or pd.isna(timestamp):
        return None
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert('UTC').tz_localize(None)
    result = timestamp.to_pydatetime()
    if not _year_in_range(result.year):
        return None
    return result


def parse_import_date(value: Any, *, log_context: Optional[str] = None, log_failures: bool = False) -> Optional[datetime]:
    """
    Parse a date cell from a CSV file.

    Tried in order:
    - dd/mm/yyyy (also with "-" and an optional time)
    - yyyy-mm-dd
    - mm/dd/yyyy, only when the first number is a valid month
    - ISO 8601 datetime
    - "01 Jan 2024" and "Jan 01, 2024"
    - pandas inference, for date-shaped values within the year bounds

    Returns:
        A naive datetime in UTC, or None when the value is not a date.
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    if isinstance(value, datetime):
        return value

    text = str(value).strip()
    if not text:
        return None

    match = _DAY_FIRST_RE.match(text)
    if match:
        day, month, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        parsed = _build(year, month, day, match, 4)
        if parsed:
            return parsed

    match = _YEAR_FIRST_RE.match(text)
    if match:
        year, month, day = int(match.group(1)), int(match.group(2)), int(match.group(3))
        parsed = _build(year, month, day, match, 4)
        if parsed:
            return parsed

    match = _DAY_FIRST_RE.match(text)
    if match and int(match.group(1)) <= 12:
        month, day, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
        parsed = _build(year, month, day, match, 4)
        if parsed:
            return parsed

    if 'T' in text or _ISO_DATETIME_RE.match(text):
        try:
            parsed = _to_naive_utc(pd.to_datetime(text, utc=True, errors='raise'))
            if parsed:
                return parsed
        except (ValueError, TypeError, OverflowError):
            pass

    for pattern, order in ((_DAY_MONTH_NAME_RE, "dmy"), (_MONTH_NAME_DAY_RE, "mdy")):
        match = pattern.search(text)
        if not match:
            continue
        if order == "dmy":
            day, month_name, year = match.group(1), match.group(2), match.group(3)
        else:
            month_name, day, year = match.group(1), match.group(2), match.group(3)
        year_value = int(year)
        if not _year_in_range(year_value):
            continue
        try:
            return datetime(year_value, _MONTHS.index(month_name[:3].lower()) + 1, int(day))
        except ValueError:
            continue

    if _DATE_SHAPE_RE.search(text) and len(text) <= MAX_DATE_TEXT_LENGTH:
        try:
            parsed = _to_naive_utc(pd.to_datetime(text, dayfirst=True, errors='raise'))
            if parsed:
                return parsed
        except (ValueError, TypeError, OverflowError) as exc:
            if log_failures:
                _record_parse_failure(value, log_context, exc)
            return None

    if log_failures:
        _record_parse_failure(value, log_context, ValueError("Unable to determine format"))
    return None


def format_iso_utc(value: datetime) -> str:
    """Render a parsed date the way it is stored: YYYY-MM-DDTHH:MM:SSZ."""
    return value.strftime('%Y-%m-%dT%H:%M:%SZ')


def looks_like_date(value: str) -> bool:
    """
    True when a sample value reads as a date: it has a known date shape and
    actually parses to a date within the year bounds.
    """
    text = str(value).strip()
    if not text or len(text) > MAX_DATE_TEXT_LENGTH:
        return False
    if not (any(p.match(text) for p in DATE_PATTERNS) or _DATE_SHAPE_RE.search(text)):
        return False
    return parse_import_date(text) is not None
