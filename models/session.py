"""Datenmodelle für Laborsitzungen (Pydantic v2).

Eine Sitzung ist ein einzelner Kurstermin in einem Labor an einem Tag und
belegt eine oder mehrere zusammenhängende Perioden.
"""

import re
from datetime import date as Date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Perioden pro Tag
MAX_PERIOD = 8
# Wochentage 1=Montag .. 7=Sonntag
WEEKDAYS = range(1, 8)

_CLASS_SPLIT = re.compile(r"[,，、;]")


def split_class_names(raw: Optional[str]) -> list[str]:
    """Zerlegt "Informatik 1, Informatik 2" in einzelne Klassennamen."""
    if not raw:
        return []
    return [name.strip() for name in _CLASS_SPLIT.split(raw) if name.strip()]


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class SessionPayload(BaseModel):
    """Nutzdaten für create/update im Speicher.

    Kapazität und Nachhol-Flag werden nie gesendet; beide leitet das
    Backend aus der Laborkapazität ab.
    """

    course: str
    teacher: str
    content: Optional[str] = None
    # None = Backend leitet die Zahl aus den Klassenstärken ab
    enrolled: Optional[int] = Field(default=None, ge=0)
    duration: int = Field(default=2, ge=1, le=MAX_PERIOD)
    class_names: Optional[str] = None

    @field_validator("content", "class_names", mode="before")
    @classmethod
    def _blank_optional(cls, v):
        return _blank_to_none(v)

    def wire_enrolled(self) -> Optional[int]:
        """Teilnehmerzahl, wie sie an das Backend geht.

        Explizite Zahl (> 0) gewinnt. Fehlt sie oder ist sie 0 und sind
        Klassen angegeben, entscheidet das Backend (None). Sonst 0.
        """
        if self.enrolled:
            return self.enrolled
        if self.class_names:
            return None
        return self.enrolled or 0


class Session(BaseModel):
    """Ein gespeicherter (oder noch zu speichernder) Kurstermin.

    `id` existiert erst nach dem Speichern. Ein Verschieben ist Löschen +
    Neuanlegen, die id ändert sich dabei.
    """

    id: Optional[int] = None
    lab_id: Optional[int] = None
    date: Date
    weekday: int = Field(ge=1, le=7)          # 1=Mo .. 7=So
    start_period: int = Field(ge=1, le=MAX_PERIOD)
    duration: int = Field(default=2, ge=1, le=MAX_PERIOD)
    course: str
    teacher: str
    content: Optional[str] = None
    enrolled: int = Field(default=0, ge=0)
    class_names: Optional[str] = None
    # Aus der Laborkapazität abgeleitet
    capacity: int = Field(default=0, ge=0)

    @field_validator("content", "class_names", mode="before")
    @classmethod
    def _blank_optional(cls, v):
        return _blank_to_none(v)

    @model_validator(mode='after')
    def _check_bounds(self):
        if self.end_period > MAX_PERIOD:
            raise ValueError(
                f"Sitzung ab Periode {self.start_period} mit {self.duration} Perioden "
                f"überschreitet das Tagesende (Periode {MAX_PERIOD})")
        if self.date.isoweekday() != self.weekday:
            raise ValueError(
                f"Wochentag {self.weekday} passt nicht zum Datum {self.date.isoformat()}")
        return self

    @property
    def end_period(self) -> int:
        """Letzte belegte Periode (inklusive)."""
        return self.start_period + self.duration - 1

    @property
    def periods(self) -> range:
        return range(self.start_period, self.end_period + 1)

    @property
    def allow_makeup(self) -> bool:
        """Nachholen möglich, solange noch Plätze frei sind."""
        return self.enrolled < self.capacity

    def covers(self, period: int) -> bool:
        return self.start_period <= period <= self.end_period

    def payload(self) -> SessionPayload:
        return SessionPayload(
            course=self.course,
            teacher=self.teacher,
            content=self.content,
            enrolled=self.enrolled,
            duration=self.duration,
            class_names=self.class_names,
        )

    def __str__(self) -> str:
        return (f"{self.course} ({self.teacher}) {self.date.isoformat()} "
                f"P{self.start_period}-{self.end_period}")


class DesiredEdit(BaseModel):
    """Der vom Benutzer gewünschte Zielzustand einer Zelle."""

    weekday: int = Field(ge=1, le=7)
    start_period: int = Field(ge=1, le=MAX_PERIOD)
    # Nicht nach oben begrenzt: wird beim Abgleich auf das Tagesende gekürzt
    duration: int = Field(default=2, ge=1)
    course: str
    teacher: str
    content: Optional[str] = None
    enrolled: Optional[int] = Field(default=None, ge=0)
    class_names: Optional[str] = None

    @field_validator("content", "class_names", mode="before")
    @classmethod
    def _blank_optional(cls, v):
        return _blank_to_none(v)

    @classmethod
    def from_session(cls, session: Session, **changes) -> "DesiredEdit":
        """Zielzustand = bestehende Sitzung mit einzelnen Änderungen."""
        base = {
            "weekday": session.weekday,
            "start_period": session.start_period,
            "duration": session.duration,
            "course": session.course,
            "teacher": session.teacher,
            "content": session.content,
            "enrolled": session.enrolled,
            "class_names": session.class_names,
        }
        base.update({k: v for k, v in changes.items() if v is not None})
        return cls(**base)

    def payload(self, duration: Optional[int] = None) -> SessionPayload:
        return SessionPayload(
            course=self.course,
            teacher=self.teacher,
            content=self.content,
            enrolled=self.enrolled,
            duration=duration if duration is not None else self.duration,
            class_names=self.class_names,
        )
