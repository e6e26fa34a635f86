"""Antwortformat von fetch_week: eine Laborwoche (7 Tage × 8 Perioden)."""

from datetime import date as Date
from typing import Optional

from pydantic import BaseModel

from models.lab import Lab
from models.session import Session


class WeekSlot(BaseModel):
    """Eine Periode eines Tages; `session` ist None wenn frei.

    Ist `session.start_period` kleiner als `period`, handelt es sich um ein
    vom Backend angelegtes Fragment einer mehrperiodigen Sitzung.
    """

    period: int
    start: str
    end: str
    session: Optional[Session] = None

    @property
    def is_fragment(self) -> bool:
        return self.session is not None and self.session.start_period != self.period


class WeekDay(BaseModel):
    date: Date
    weekday: int          # 1=Mo .. 7=So
    slots: list[WeekSlot]


class WeekSchedule(BaseModel):
    """Vollständige Woche eines Labors, wie sie der Speicher liefert."""

    lab: Lab
    monday: Date
    sunday: Date
    days: list[WeekDay]

    def day(self, weekday: int) -> Optional[WeekDay]:
        return next((d for d in self.days if d.weekday == weekday), None)

    def head_sessions(self) -> list[Session]:
        """Nur Kopf-Datensätze (Fragmente ausgeschlossen)."""
        return [
            slot.session
            for d in self.days for slot in d.slots
            if slot.session is not None and not slot.is_fragment
        ]
