from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ─── ZEITRASTER (Unterrichtsstunden eines Labortages) ───

class PeriodTimeDef(BaseModel):
    """Eine Unterrichtsstunde (Periode) mit Uhrzeiten."""
    # Laufende Nummer der Periode, 1-basiert (1..8)
    index: int = Field(ge=1, le=8)
    # Beginn im Format "HH:MM"
    start: str
    # Ende im Format "HH:MM"
    end: str

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, v: str) -> str:
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Uhrzeit '{v}' ist nicht im Format HH:MM")
        hh, mm = int(parts[0]), int(parts[1])
        if not (0 <= hh <= 23 and 0 <= mm <= 59):
            raise ValueError(f"Uhrzeit '{v}' liegt außerhalb von 00:00-23:59")
        return f"{hh:02d}:{mm:02d}"

    @model_validator(mode='after')
    def _check_order(self):
        if self.start >= self.end:
            raise ValueError(
                f"Periode {self.index}: Beginn {self.start} liegt nicht vor Ende {self.end}")
        return self


class SeasonConfig(BaseModel):
    """Sommerfenster (inklusive beider Grenzen), jedes Jahr neu berechnet.

    Innerhalb des Fensters beginnen die Nachmittagsperioden (5-8) früher
    bzw. später gemäß `summer_afternoon`.
    """
    # Erster Sommertag im Format "MM-DD"
    summer_start: str = "05-01"
    # Letzter Sommertag im Format "MM-DD"
    summer_end: str = "10-07"

    @field_validator("summer_start", "summer_end")
    @classmethod
    def _check_month_day(cls, v: str) -> str:
        try:
            month, day = (int(x) for x in v.split("-"))
            # Schaltjahr 2000, damit auch 02-29 zulässig ist
            date(2000, month, day)
        except ValueError as e:
            raise ValueError(f"Ungültiges Datum '{v}' (erwartet MM-DD)") from e
        return f"{month:02d}-{day:02d}"

    @model_validator(mode='after')
    def _check_window(self):
        if self.summer_start > self.summer_end:
            raise ValueError("Sommerfenster darf nicht über den Jahreswechsel gehen")
        return self

    def bounds(self, year: int) -> tuple[date, date]:
        """Gibt (erster, letzter) Sommertag für das angegebene Jahr zurück."""
        sm, sd = (int(x) for x in self.summer_start.split("-"))
        em, ed = (int(x) for x in self.summer_end.split("-"))
        # 02-29 in Nicht-Schaltjahren auf 02-28 abbilden
        if (sm, sd) == (2, 29) and not _is_leap(year):
            sd = 28
        if (em, ed) == (2, 29) and not _is_leap(year):
            ed = 28
        return date(year, sm, sd), date(year, em, ed)


def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


class CalendarConfig(BaseModel):
    """Periodenraster: Vormittag fest, Nachmittag abhängig von der Jahreszeit."""
    morning: list[PeriodTimeDef] = Field(
        description="Perioden 1-4 (datumsunabhängig)")
    summer_afternoon: list[PeriodTimeDef] = Field(
        description="Perioden 5-8 im Sommerfenster")
    winter_afternoon: list[PeriodTimeDef] = Field(
        description="Perioden 5-8 außerhalb des Sommerfensters")
    season: SeasonConfig = Field(default_factory=SeasonConfig)

    @model_validator(mode='after')
    def _check_indices(self):
        """Vormittag muss genau 1-4, beide Nachmittage genau 5-8 enthalten,
        jeweils aufsteigend und ohne Überschneidung."""
        expected = {
            "morning": [1, 2, 3, 4],
            "summer_afternoon": [5, 6, 7, 8],
            "winter_afternoon": [5, 6, 7, 8],
        }
        for name, indices in expected.items():
            periods = getattr(self, name)
            if [p.index for p in periods] != indices:
                raise ValueError(
                    f"{name}: Perioden {indices} erwartet, "
                    f"gefunden {[p.index for p in periods]}")
        for afternoon in (self.summer_afternoon, self.winter_afternoon):
            day = self.morning + afternoon
            for prev, nxt in zip(day, day[1:]):
                if prev.end > nxt.start:
                    raise ValueError(
                        f"Periode {prev.index} endet ({prev.end}) nach "
                        f"Beginn von Periode {nxt.index} ({nxt.start})")
        return self


# ─── LABORE + KLASSEN ───

class LabDef(BaseModel):
    """Ein Labor mit Platzkapazität (gilt für jede Sitzung im Labor)."""
    id: int = Field(ge=1)
    name: str
    capacity: int = Field(ge=0)


class ClassRosterDef(BaseModel):
    """Klassenstärke, aus der das Backend die Teilnehmerzahl ableitet."""
    name: str
    student_count: int = Field(ge=0)


# ─── SPEICHER-BACKEND ───

class StoreBackend(str, Enum):
    MEMORY = "memory"
    REST = "rest"


class StoreConfig(BaseModel):
    """Anbindung an den Sitzungsspeicher."""
    backend: StoreBackend = StoreBackend.MEMORY
    # JSON-Datei des lokalen Speichers (nur backend=memory)
    data_path: str = "output/laborplan_store.json"
    # Basis-URL der REST-API (nur backend=rest)
    base_url: str = "http://localhost:3000/api"
    # Transport-Timeout; der Abgleich selbst kennt kein eigenes Timeout
    timeout_seconds: float = Field(10.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unbekanntes Log-Level: {v}")
        return v


# ─── GESAMTKONFIGURATION ───

class AppConfig(BaseModel):
    """Vollständige Konfiguration der Laborplan-Verwaltung."""
    title: str = "Laborplan"
    calendar: CalendarConfig
    labs: list[LabDef]
    classes: list[ClassRosterDef] = []
    # Montag der ersten Semesterwoche (für Wochennummern)
    semester_start_monday: Optional[date] = None
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def _check_unique_labs(self):
        ids = [lab.id for lab in self.labs]
        names = [lab.name for lab in self.labs]
        if len(set(ids)) != len(ids):
            raise ValueError("Labor-IDs müssen eindeutig sein")
        if len(set(names)) != len(names):
            raise ValueError("Labornamen müssen eindeutig sein")
        if self.semester_start_monday and self.semester_start_monday.weekday() != 0:
            raise ValueError(
                f"semester_start_monday ({self.semester_start_monday}) ist kein Montag")
        return self

    def get_lab(self, lab_id: int) -> Optional[LabDef]:
        return next((lab for lab in self.labs if lab.id == lab_id), None)

    @property
    def class_rosters(self) -> dict[str, int]:
        return {c.name: c.student_count for c in self.classes}
