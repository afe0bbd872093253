"""UTC-focused helpers for timestamps and calendar dates."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

_ISO_DATE_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")


def iso_date_prefix(value: object) -> str:
    """Calendar date from an ISO timestamp such as ``2024-03-01T00:00:00.000``."""
    if value is None:
        return ""
    match = _ISO_DATE_PREFIX_RE.match(str(value).strip())
    if not match:
        return ""
    try:
        return date.fromisoformat(match.group(1)).isoformat()
    except ValueError:
        return ""


def epoch_ms_to_iso_date(value: object) -> str:
    if value is None or value == "":
        return ""
    try:
        millis = float(value)
    except (TypeError, ValueError):
        return iso_date_prefix(value)
    try:
        moment = datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return ""
    return moment.date().isoformat()


def days_ago_iso(days: int, *, today: date | None = None) -> str:
    anchor = today or datetime.now(tz=timezone.utc).date()
    return (anchor - timedelta(days=days)).isoformat()


def current_year() -> int:
    return datetime.now(tz=timezone.utc).year
