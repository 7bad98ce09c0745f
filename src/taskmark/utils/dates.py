"""
Timestamp helpers.

Task files store timestamps as ISO 8601 strings in UTC with millisecond
precision and a trailing ``Z`` (e.g. ``2025-10-22T10:00:00.000Z``).
"""

from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as the canonical task timestamp string."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    """Return the current time as a canonical task timestamp string."""
    return format_timestamp(now_utc())


def parse_timestamp(value: str | datetime | date) -> datetime:
    """
    Parse a stored timestamp or date into an aware datetime.

    Accepts full ISO 8601 timestamps (with ``Z`` or an offset), naive
    timestamps and plain ``YYYY-MM-DD`` dates. Naive values are treated
    as UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_timestamp(value: object) -> object:
    """
    Normalise YAML-loaded dates back to strings.

    PyYAML turns unquoted ISO timestamps into ``datetime``/``date`` objects;
    task fields keep them as strings so files round-trip unchanged.
    """
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    return value
