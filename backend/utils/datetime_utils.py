from datetime import datetime, date, timedelta, timezone

from services.errors import InvalidDateFormat


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_midnight(value: datetime | date) -> datetime:
    """Return UTC midnight of the UTC calendar day containing ``value``.

    Naive datetimes are read as UTC. Plain dates are taken as-is.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        return value.replace(hour=0, minute=0, second=0, microsecond=0)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def parse_date(value) -> datetime | date:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a date/datetime through."""
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateFormat()
    text = value.strip()
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidDateFormat() from None


def normalize_date(value) -> datetime:
    """Canonical form for every habit date: aware UTC midnight."""
    return to_utc_midnight(parse_date(value))


def today_utc_midnight(now: datetime | None = None) -> datetime:
    return to_utc_midnight(now or utcnow())


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def days_between(start: datetime, end: datetime) -> int:
    """Whole UTC calendar days from ``start`` to ``end`` (negative when end is earlier)."""
    return (to_utc_midnight(end) - to_utc_midnight(start)).days


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
