"""Periodenkalender: Datum → acht Perioden mit Uhrzeiten, plus Wochen-Hilfen.

Alle Funktionen sind rein und deterministisch. Ohne explizite Konfiguration
gilt das Standardraster aus `config.defaults`.
"""

from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Literal, Optional

from config.schema import CalendarConfig
from models.period import Period
from models.session import MAX_PERIOD, Session

SessionStatus = Literal["upcoming", "ongoing", "completed"]

WEEKDAY_NAMES = ["Mo", "Di", "Mi", "Do", "Fr", "Sa", "So"]


@lru_cache(maxsize=1)
def _default_calendar() -> CalendarConfig:
    from config.defaults import default_calendar
    return default_calendar()


def _calendar(calendar: Optional[CalendarConfig]) -> CalendarConfig:
    return calendar if calendar is not None else _default_calendar()


# ─── Sommerfenster + Perioden ─────────────────────────────────────────────────

def is_summer(day: date, calendar: Optional[CalendarConfig] = None) -> bool:
    """True wenn `day` im Sommerfenster seines Kalenderjahres liegt (inklusive)."""
    first, last = _calendar(calendar).season.bounds(day.year)
    return first <= day <= last


def periods_for(day: date, calendar: Optional[CalendarConfig] = None) -> list[Period]:
    """Gibt die acht Perioden des Tages in Reihenfolge zurück.

    Vormittag (1-4) ist datumsunabhängig, der Nachmittag (5-8) hängt vom
    Sommerfenster ab.
    """
    cal = _calendar(calendar)
    afternoon = cal.summer_afternoon if is_summer(day, cal) else cal.winter_afternoon
    return [Period(index=p.index, start=p.start, end=p.end)
            for p in cal.morning + afternoon]


def period_label(day: date, index: int, calendar: Optional[CalendarConfig] = None) -> str:
    """"HH:MM-HH:MM" der Periode `index` am Tag `day`."""
    if not 1 <= index <= MAX_PERIOD:
        raise ValueError(f"Periode {index} außerhalb von 1-{MAX_PERIOD}")
    return periods_for(day, calendar)[index - 1].label


# ─── Wochen-Hilfen ────────────────────────────────────────────────────────────

def monday_of(day: date) -> date:
    """Montag der Woche, in der `day` liegt (Sonntag gehört zur Vorwoche)."""
    return day - timedelta(days=day.weekday())


def week_dates(monday: date) -> list[date]:
    """Die sieben Tage Mo..So ab `monday`."""
    return [monday + timedelta(days=i) for i in range(7)]


def date_for_weekday(monday: date, weekday: int) -> date:
    """Datum des Wochentags (1=Mo .. 7=So) in der Woche ab `monday`."""
    if not 1 <= weekday <= 7:
        raise ValueError(f"Wochentag {weekday} außerhalb von 1-7")
    return monday_of(monday) + timedelta(days=weekday - 1)


def week_no_of(day: date, semester_start_monday: date) -> int:
    """Semesterwoche (1-basiert); 0 für Tage vor Semesterbeginn."""
    diff = (day - monday_of(semester_start_monday)).days
    if diff < 0:
        return 0
    return diff // 7 + 1


def is_weekday(day: date) -> bool:
    """Montag bis Freitag."""
    return day.isoweekday() <= 5


# ─── Sitzungszeiten ───────────────────────────────────────────────────────────

def session_time_range(
    session: Session, calendar: Optional[CalendarConfig] = None
) -> tuple[datetime, datetime]:
    """Beginn der ersten und Ende der letzten belegten Periode."""
    periods = periods_for(session.date, calendar)
    first = periods[session.start_period - 1]
    last = periods[session.end_period - 1]
    return (
        datetime.combine(session.date, first.start_time),
        datetime.combine(session.date, last.end_time),
    )


def session_status(
    session: Session, now: datetime, calendar: Optional[CalendarConfig] = None
) -> SessionStatus:
    """upcoming / ongoing / completed relativ zu `now` (naive Ortszeit)."""
    start, end = session_time_range(session, calendar)
    if now < start:
        return "upcoming"
    if now <= end:
        return "ongoing"
    return "completed"
