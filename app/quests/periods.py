"""Calendar windows for recurring quests. Pure functions, UTC only."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from app.quests.models import Cadence


@dataclass(frozen=True, slots=True)
class Period:
    start: datetime
    end: datetime  # exclusive

    def contains(self, instant: datetime) -> bool:
        return self.start <= as_utc(instant) < self.end

    @property
    def inclusive_end(self) -> date:
        """Last calendar day inside the window."""
        return (self.end - timedelta(days=1)).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(instant: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken to already be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _utc_midnight(instant: datetime) -> datetime:
    return datetime(instant.year, instant.month, instant.day, tzinfo=timezone.utc)


def month_period(instant: datetime) -> Period:
    instant = as_utc(instant)
    start = datetime(instant.year, instant.month, 1, tzinfo=timezone.utc)
    if instant.month == 12:
        end = datetime(instant.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(instant.year, instant.month + 1, 1, tzinfo=timezone.utc)
    return Period(start, end)


def iso_week_period(instant: datetime) -> Period:
    """Monday 00:00 UTC at or before ``instant`` through the following Monday."""
    today = _utc_midnight(as_utc(instant))
    start = today - timedelta(days=today.weekday())  # weekday(): Monday=0 .. Sunday=6
    return Period(start, start + timedelta(days=7))


def period_for(cadence: Cadence, instant: datetime) -> Period:
    if cadence is Cadence.WEEKLY:
        return iso_week_period(instant)
    if cadence is Cadence.MONTHLY:
        return month_period(instant)
    raise ValueError(f"Unsupported cadence: {cadence!r}")
