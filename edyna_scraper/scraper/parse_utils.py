"""Normalisation helpers for text scraped from the Edyna portal."""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Optional, Union

from dateutil import parser as date_parser

from edyna_scraper.scraper.models import DateParseError

_MISSING_TOKENS = {"-", "--", "n/a", "na"}
_THOUSANDS_GROUPING = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
_STRAY_CHARS = re.compile(r"[^\d.\-]")

_DAY_FIRST_DATE = re.compile(r"(\d{1,2})[/.](\d{1,2})[/.](\d{4})")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_YEAR = re.compile(r"\d{4}")
_HOUR_LABEL = re.compile(r"(\d{1,2}):\d{2}")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Normalize whitespace and strip strings."""
    if value is None:
        return None
    return " ".join(value.split()).strip() or None


def parse_locale_number(raw: Optional[str]) -> Optional[float]:
    """Convert an Italian-formatted number ("1.234,56") to a float.

    Returns None for empty, placeholder or unparsable cells; never raises.
    A None result means "no reading" and must not be confused with 0.0.
    """
    text = clean_text(raw)
    if not text or text.lower() in _MISSING_TOKENS:
        return None

    text = text.replace(" ", "")
    if "," in text:
        text = text.replace(".", "").replace(",", ".", 1)
    elif _THOUSANDS_GROUPING.match(_STRAY_CHARS.sub("", text)):
        text = text.replace(".", "")

    text = _STRAY_CHARS.sub("", text)
    negative = text.startswith("-")
    if negative:
        text = text[1:]
    if not text or "-" in text:
        return None

    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return -value if negative else value


def parse_source_date(raw: Optional[str]) -> Union[date, DateParseError]:
    """Interpret a portal date cell as a calendar date.

    Tries DD/MM/YYYY (or DD.MM.YYYY), then YYYY-MM-DD, then a day-first
    dateutil parse. Failures come back as a DateParseError value.
    """
    text = clean_text(raw)
    if not text:
        return DateParseError(raw=raw, reason="empty date text")

    match = _DAY_FIRST_DATE.fullmatch(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _build_date(raw, year, month, day)

    match = _ISO_DATE.fullmatch(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _build_date(raw, year, month, day)

    try:
        parsed = date_parser.parse(text, dayfirst=True, default=datetime(1900, 1, 1))
    except (ValueError, OverflowError, TypeError) as exc:
        return DateParseError(raw=raw, reason=f"unrecognised date format: {exc}")
    return parsed.date()


def _build_date(raw: Optional[str], year: int, month: int, day: int) -> Union[date, DateParseError]:
    try:
        return date(year, month, day)
    except ValueError as exc:
        return DateParseError(raw=raw, reason=str(exc))


def extract_year(value: Optional[str]) -> Optional[int]:
    """Return the first four-digit group found in the text."""
    if not value:
        return None
    match = _YEAR.search(value)
    return int(match.group()) if match else None


def hour_from_label(label: str) -> Optional[int]:
    """Map an "HH:00" slot label to its hour index."""
    match = _HOUR_LABEL.fullmatch(label.strip())
    if not match:
        return None
    hour = int(match.group(1))
    return hour if 0 <= hour <= 23 else None
