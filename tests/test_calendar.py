"""Tests für den Periodenkalender und die Wochen-Hilfen."""

from datetime import date, datetime

import pytest

from config.schema import SeasonConfig
from config.defaults import default_calendar
from models.session import Session
from timetable.calendar import (
    date_for_weekday,
    is_summer,
    is_weekday,
    monday_of,
    period_label,
    periods_for,
    session_status,
    session_time_range,
    week_dates,
    week_no_of,
)


class TestSummerWindow:
    @pytest.mark.parametrize("day,expected", [
        (date(2025, 4, 30), False),
        (date(2025, 5, 1), True),      # erster Sommertag (inklusive)
        (date(2025, 7, 15), True),
        (date(2025, 10, 7), True),     # letzter Sommertag (inklusive)
        (date(2025, 10, 8), False),
        (date(2025, 1, 10), False),
    ])
    def test_boundaries_inclusive(self, day, expected):
        assert is_summer(day) is expected

    def test_window_recomputed_per_year(self):
        """Grenzen gelten für jedes Kalenderjahr, nicht nur für eines."""
        assert is_summer(date(2031, 5, 1))
        assert not is_summer(date(2031, 10, 8))

    def test_leap_day_boundary(self):
        season = SeasonConfig(summer_start="02-29", summer_end="10-07")
        assert season.bounds(2024)[0] == date(2024, 2, 29)
        assert season.bounds(2025)[0] == date(2025, 2, 28)

    def test_window_over_new_year_rejected(self):
        with pytest.raises(ValueError):
            SeasonConfig(summer_start="11-01", summer_end="03-01")


class TestPeriodsFor:
    def test_always_eight_ordered(self):
        for day in (date(2025, 1, 6), date(2025, 6, 2)):
            periods = periods_for(day)
            assert [p.index for p in periods] == list(range(1, 9))

    def test_morning_independent_of_season(self):
        winter = periods_for(date(2025, 1, 6))
        summer = periods_for(date(2025, 6, 2))
        assert winter[:4] == summer[:4]

    def test_afternoon_depends_on_season(self):
        assert periods_for(date(2025, 1, 6))[4].start == "14:00"
        assert periods_for(date(2025, 6, 2))[4].start == "14:30"

    def test_period_label(self):
        assert period_label(date(2025, 3, 3), 1) == "08:00-08:50"
        assert period_label(date(2025, 6, 2), 8) == "17:40-18:30"

    def test_period_label_out_of_range(self):
        with pytest.raises(ValueError):
            period_label(date(2025, 3, 3), 9)

    def test_explicit_calendar(self):
        cal = default_calendar()
        assert periods_for(date(2025, 3, 3), cal) == periods_for(date(2025, 3, 3))


class TestWeekHelpers:
    def test_monday_of_sunday_belongs_to_previous_week(self):
        assert monday_of(date(2025, 3, 9)) == date(2025, 3, 3)
        assert monday_of(date(2025, 3, 3)) == date(2025, 3, 3)

    def test_week_dates(self):
        days = week_dates(date(2025, 3, 3))
        assert len(days) == 7
        assert days[0].isoweekday() == 1 and days[-1].isoweekday() == 7

    def test_date_for_weekday(self):
        assert date_for_weekday(date(2025, 3, 5), 5) == date(2025, 3, 7)
        with pytest.raises(ValueError):
            date_for_weekday(date(2025, 3, 3), 8)

    def test_week_no(self):
        start = date(2025, 2, 24)
        assert week_no_of(date(2025, 2, 24), start) == 1
        assert week_no_of(date(2025, 3, 9), start) == 2
        assert week_no_of(date(2025, 2, 1), start) == 0

    def test_is_weekday(self):
        assert is_weekday(date(2025, 3, 7))
        assert not is_weekday(date(2025, 3, 8))


class TestSessionStatus:
    def _session(self) -> Session:
        # Mo 03.03.2025, Perioden 3-4 → 10:10 bis 12:00
        return Session(id=1, date=date(2025, 3, 3), weekday=1, start_period=3,
                       duration=2, course="Digitaltechnik", teacher="Dr. Weber")

    def test_time_range(self):
        start, end = session_time_range(self._session())
        assert start == datetime(2025, 3, 3, 10, 10)
        assert end == datetime(2025, 3, 3, 12, 0)

    @pytest.mark.parametrize("now,expected", [
        (datetime(2025, 3, 3, 9, 0), "upcoming"),
        (datetime(2025, 3, 3, 10, 10), "ongoing"),
        (datetime(2025, 3, 3, 11, 30), "ongoing"),
        (datetime(2025, 3, 3, 12, 1), "completed"),
    ])
    def test_status(self, now, expected):
        assert session_status(self._session(), now) == expected
