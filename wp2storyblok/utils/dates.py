from __future__ import annotations

from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a date-like value into an aware UTC datetime.

    Accepts ``datetime``/``date`` objects, epoch seconds or milliseconds,
    ISO 8601 strings (with ``Z`` or an offset), WordPress
    ``YYYY-MM-DD HH:MM:SS`` and RFC 2822 strings.  Naive values are taken
    as UTC.  Returns ``None`` when nothing matches.
    """
    if value is None or isinstance(value, bool):
        return None
    dt: Optional[datetime] = None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) >= 1e11 else float(value)
        try:
            dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            try:
                dt = parsedate_to_datetime(value.strip())
            except (TypeError, ValueError, IndexError):
                return None
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_datetime(dt: datetime, fmt: Optional[str] = None) -> str:
    if fmt:
        return dt.strftime(fmt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
