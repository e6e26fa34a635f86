"""Vertrag des Sitzungsspeichers.

Der Speicher bietet nur unabhängige, nicht-transaktionale Einzeloperationen
(create/update/delete pro Sitzung) plus Stapel-Endpunkte mit Vorabprüfung.
Er ist dafür zuständig, eine Sitzung mit duration > 1 beim Anlegen über die
folgenden Perioden auszudehnen; der Abgleich verlässt sich darauf.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from models.lab import Lab
from models.session import SessionPayload, Session
from models.week import WeekSchedule
from timetable.errors import ClampWarning


class BatchRow(BaseModel):
    """Eine Zeile eines Stapelimports (über Wochen und Labore hinweg)."""

    date: Optional[str] = None          # YYYY-MM-DD
    period: Optional[int] = None
    course: Optional[str] = None
    teacher: Optional[str] = None
    content: Optional[str] = None
    class_names: Optional[str] = None
    # None = Backend leitet aus den Klassen ab
    enrolled: Optional[int] = None
    duration: int = 2
    lab_id: Optional[int] = None
    lab: Optional[str] = None           # Laborname


class BatchRowError(BaseModel):
    """Fehler einer Importzeile (index 1-basiert)."""

    index: int
    field: Optional[str] = None
    message: str

    def describe(self) -> str:
        field = f"{self.field}: " if self.field else ""
        return f"Zeile {self.index} {field}{self.message}"


class BatchResult(BaseModel):
    """Antwort der Stapel-Endpunkte (Vorabprüfung und Übernahme)."""

    success: int = 0
    failed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: list[BatchRowError] = Field(default_factory=list)
    # vor der Vorabprüfung gekürzte Zeilen
    warnings: list[ClampWarning] = Field(default_factory=list)


class SessionStore(ABC):
    """Abstrakter Sitzungsspeicher (Transport ist Sache der Implementierung).

    `week_anchor` ist ein beliebiges Datum der Zielwoche (üblich: Montag).
    Jeder Aufruf ist eine I/O-Grenze und kann mit `StoreError` scheitern.
    """

    @abstractmethod
    def list_labs(self) -> list[Lab]:
        ...

    def get_lab(self, lab_id: int) -> Optional[Lab]:
        return next((lab for lab in self.list_labs() if lab.id == lab_id), None)

    @abstractmethod
    def fetch_week(self, lab_id: int, monday: date) -> WeekSchedule:
        """Ganze Woche: 7 Tage × 8 Perioden, freie Perioden mit session=None."""

    @abstractmethod
    def create_session(self, lab_id: int, weekday: int, period: int,
                       payload: SessionPayload, week_anchor: date) -> Session:
        """Legt eine Sitzung an der Kopfperiode an; das Backend belegt die
        folgenden duration-1 Perioden selbst."""

    @abstractmethod
    def update_session(self, lab_id: int, weekday: int, period: int,
                       payload: SessionPayload, week_anchor: date) -> Session:
        """Aktualisiert den Datensatz an (weekday, period)."""

    @abstractmethod
    def delete_session(self, lab_id: int, session_id: int, week_anchor: date) -> None:
        ...

    @abstractmethod
    def dry_run_batch(self, lab_id: int, week_anchor: date,
                      rows: list[BatchRow]) -> BatchResult:
        """Prüft einen Stapel wie `commit_batch`, speichert aber nichts."""

    @abstractmethod
    def commit_batch(self, lab_id: int, week_anchor: date,
                     rows: list[BatchRow]) -> BatchResult:
        ...
