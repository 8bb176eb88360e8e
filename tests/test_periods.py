"""Tests for calendar window computation."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from app.quests.models import Cadence
from app.quests.periods import Period, as_utc, iso_week_period, month_period, period_for
from tests.conftest import utc


class TestWeeklyPeriod:
    def test_monday_midnight_starts_its_own_week(self):
        p = period_for(Cadence.WEEKLY, utc(2025, 3, 3, 0, 0))
        assert p == Period(utc(2025, 3, 3), utc(2025, 3, 10))

    def test_last_millisecond_of_sunday_same_week(self):
        instant = datetime(2025, 3, 9, 23, 59, 59, 999000, tzinfo=timezone.utc)
        assert period_for(Cadence.WEEKLY, instant) == Period(utc(2025, 3, 3), utc(2025, 3, 10))

    def test_every_day_of_the_week_coalesces(self):
        expected = iso_week_period(utc(2025, 3, 3))
        for offset in range(7):
            instant = utc(2025, 3, 3, 15, 30) + timedelta(days=offset)
            assert iso_week_period(instant) == expected

    def test_next_monday_is_next_window(self):
        p = period_for(Cadence.WEEKLY, utc(2025, 3, 10))
        assert p.start == utc(2025, 3, 10)
        assert p.end == utc(2025, 3, 17)

    def test_week_spanning_year_end(self):
        # 2025-01-01 is a Wednesday
        p = period_for(Cadence.WEEKLY, utc(2025, 1, 1, 8))
        assert p == Period(utc(2024, 12, 30), utc(2025, 1, 6))

    def test_offset_timezone_uses_utc_day(self):
        # Sunday evening in UTC-02:00 is already Monday in UTC
        instant = datetime(2025, 3, 9, 23, 30, tzinfo=timezone(timedelta(hours=-2)))
        assert period_for(Cadence.WEEKLY, instant).start == utc(2025, 3, 10)

    def test_bounds_are_utc_midnight(self):
        p = period_for(Cadence.WEEKLY, utc(2025, 3, 6, 17, 45, 12))
        assert p.start.tzinfo == timezone.utc
        assert (p.start.hour, p.start.minute, p.start.second, p.start.microsecond) == (0, 0, 0, 0)


class TestMonthlyPeriod:
    def test_mid_february(self):
        p = period_for(Cadence.MONTHLY, utc(2025, 2, 15, 12))
        assert p == Period(utc(2025, 2, 1), utc(2025, 3, 1))

    def test_first_of_month_midnight_starts_its_own_month(self):
        p = period_for(Cadence.MONTHLY, utc(2025, 3, 1))
        assert p.start == utc(2025, 3, 1)

    def test_december_rolls_into_next_year(self):
        p = month_period(utc(2025, 12, 31, 23, 59))
        assert p == Period(utc(2025, 12, 1), utc(2026, 1, 1))

    def test_leap_february(self):
        p = month_period(utc(2024, 2, 29, 6))
        assert p.end == utc(2024, 3, 1)
        assert p.inclusive_end == date(2024, 2, 29)


class TestPeriodHelpers:
    def test_inclusive_end_is_last_day(self):
        assert iso_week_period(utc(2025, 3, 5)).inclusive_end == date(2025, 3, 9)

    def test_contains_is_half_open(self):
        p = iso_week_period(utc(2025, 3, 5))
        assert p.contains(utc(2025, 3, 3))
        assert not p.contains(utc(2025, 3, 10))

    def test_naive_instant_is_utc(self):
        assert as_utc(datetime(2025, 3, 3, 1)) == utc(2025, 3, 3, 1)

    def test_aware_instant_converted(self):
        instant = datetime(2025, 3, 3, 1, tzinfo=timezone(timedelta(hours=3)))
        assert as_utc(instant) == utc(2025, 3, 2, 22)
