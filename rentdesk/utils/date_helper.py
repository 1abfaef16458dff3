import re
from datetime import date, datetime, time, timezone
from typing import Any, Optional

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ACCESSORS = ("as_datetime", "to_datetime", "toDate")
# fromisoformat before 3.11 only takes 3 or 6 fraction digits
_FRACTION = re.compile(r"([T ]\d{2}:\d{2}:\d{2})\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes coming out of the store are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_datetime(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        # default to midnight
        return datetime.combine(value, time.min)
    return value


def _pad_fraction(match) -> str:
    digits = match.group(2)[:6].ljust(6, "0")
    return f"{match.group(1)}.{digits}"


def to_date(value: Any) -> Optional[datetime]:
    """
    Normalise a stored date value into an aware UTC datetime.

    Handles native datetimes and dates, timestamp wrappers exposing a
    conversion accessor (bson ``Timestamp.as_datetime`` and friends), Mongo
    extended JSON ``{"$date": ...}``, epoch milliseconds and ISO-8601 strings.
    Returns None for absent or unparseable values.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    for accessor in _ACCESSORS:
        convert = getattr(value, accessor, None)
        if callable(convert):
            try:
                return to_date(convert())
            except (TypeError, ValueError, OverflowError):
                return None

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return ensure_utc(ensure_datetime(value))
    if isinstance(value, dict) and "$date" in value:
        return to_date(value["$date"])
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(_pad_fraction, text)
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def is_in_range_inclusive(value: Any, start: datetime, end: datetime) -> bool:
    d = to_date(value)
    if d is None:
        return False
    return start <= d <= end


def sort_key_or_epoch(value: Any) -> datetime:
    """Sort key for optional dates; missing or bad dates sort as the epoch."""
    return to_date(value) or _EPOCH
