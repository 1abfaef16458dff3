import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from rentdesk.utils.date_helper import ensure_utc, utc_now


@dataclass(frozen=True)
class PeriodRange:
    start: datetime
    end: datetime
    label: str

    @property
    def rental_period_key(self) -> str:
        """``YYYY-MM`` key payments are attributed to"""
        return f"{self.start.year:04d}-{self.start.month:02d}"


def month_range(year: int, month: int) -> PeriodRange:
    """Whole calendar month in UTC, both ends inclusive."""
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year, month, last_day, 23, 59, 59, 999000, tzinfo=timezone.utc)
    label = f"{start.date().isoformat()} to {end.date().isoformat()}"
    return PeriodRange(start=start, end=end, label=label)


def previous_month_range(now: Optional[datetime] = None) -> PeriodRange:
    """
    The calendar month before ``now`` (UTC).

    The job fires on the 1st and reports on the month that just closed;
    January rolls back to December of the previous year.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    if now.month == 1:
        return month_range(now.year - 1, 12)
    return month_range(now.year, now.month - 1)
