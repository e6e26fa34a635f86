"""Fehler- und Warnungstaxonomie des Wochenplan-Abgleichs.

Warnungen (ClampWarning, PartialDeleteWarning) werden gesammelt und
angezeigt, ändern aber den Ablauf nicht. Fehler (ConflictError,
MoveInconsistencyError, OverwriteInconsistencyError,
DryRunValidationError) brechen die laufende Operation ab.
"""

from typing import TYPE_CHECKING, Literal, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from models.session import Session
    from store.base import BatchRowError


# ─── Warnungen ────────────────────────────────────────────────────────────────

class ClampWarning(BaseModel):
    """Gewünschte Dauer ragte über das Tagesende und wurde gekürzt."""

    start_period: int
    requested: int
    clamped: int
    # Importzeile (1-basiert), nur im Stapelimport gesetzt
    row: Optional[int] = None

    @property
    def message(self) -> str:
        return (f"Dauer auf {self.clamped} gekürzt: ab Periode {self.start_period} "
                f"sind höchstens {self.clamped} Perioden möglich "
                f"(angefragt: {self.requested})")


class PartialDeleteWarning(BaseModel):
    """Ein einzelner Perioden-Aufruf (delete oder update) ist fehlgeschlagen.

    Die übrigen Perioden wurden trotzdem bearbeitet; ein Neuladen der Woche
    zeigt eventuell liegengebliebene Fragmente.
    """

    operation: Literal["delete", "update"]
    weekday: int
    period: int
    session_id: Optional[int] = None
    reason: str

    @property
    def message(self) -> str:
        verb = "Löschen" if self.operation == "delete" else "Aktualisieren"
        return (f"{verb} von Tag {self.weekday} Periode {self.period} "
                f"(id={self.session_id}) fehlgeschlagen: {self.reason}")


# ─── Fehler ───────────────────────────────────────────────────────────────────

class TimetableError(Exception):
    """Basisklasse aller Fehler der Laborplan-Verwaltung."""


class StoreError(TimetableError):
    """Ein Aufruf an den Sitzungsspeicher ist fehlgeschlagen."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SessionNotFoundError(StoreError):
    """Sitzung oder Zelle existiert im Speicher nicht."""

    def __init__(self, message: str):
        super().__init__(message, status=404)


class ConflictError(TimetableError):
    """Zielzellen sind von einer anderen Sitzung belegt.

    Der Aufrufer muss explizit bestätigen (overwrite=True), bevor die
    belegende Sitzung gelöscht wird.
    """

    def __init__(self, conflicting_session: "Session", weekday: int,
                 start_period: int, duration: int):
        self.conflicting_session = conflicting_session
        self.weekday = weekday
        self.start_period = start_period
        self.duration = duration
        super().__init__(
            f"Tag {weekday} Perioden {start_period}-{start_period + duration - 1} "
            f"überschneiden sich mit '{conflicting_session.course}' "
            f"(Perioden {conflicting_session.start_period}-{conflicting_session.end_period})"
        )


class InconsistentEditError(TimetableError):
    """Datensätze wurden gelöscht, der folgende Schreibaufruf scheiterte.

    Gemeinsame Basis für Verschieben und bestätigtes Überschreiben.
    `snapshot` ist der gewünschte Zielzustand, `overwritten` die bereits
    gelöschten fremden Sitzungen, `warnings` die bis dahin gesammelten
    Einzelfehler (z. B. liegengebliebene Fragmente).
    """

    def __init__(self, message: str, snapshot, deleted_ids: list[int], cause: Exception,
                 overwritten: Optional[list["Session"]] = None,
                 warnings: Optional[list[PartialDeleteWarning]] = None):
        self.snapshot = snapshot
        self.deleted_ids = list(deleted_ids)
        self.cause = cause
        self.overwritten = list(overwritten or [])
        self.warnings = list(warnings or [])
        super().__init__(message)


class MoveInconsistencyError(InconsistentEditError):
    """Verschieben: Löschen gelang, Neuanlegen nicht.

    Die Sitzung fehlt jetzt am alten und am neuen Ort und muss von Hand
    neu angelegt werden; `snapshot` enthält alle Daten dafür.
    """

    def __init__(self, snapshot, deleted_ids: list[int], cause: Exception,
                 overwritten: Optional[list["Session"]] = None,
                 warnings: Optional[list[PartialDeleteWarning]] = None):
        super().__init__(
            f"Sitzung '{snapshot.course}' wurde am alten Ort gelöscht, "
            f"aber nicht an Tag {snapshot.weekday} Periode {snapshot.start_period} "
            f"angelegt: {cause}",
            snapshot, deleted_ids, cause, overwritten=overwritten, warnings=warnings,
        )


class OverwriteInconsistencyError(InconsistentEditError):
    """Überschreiben: die belegenden Sitzungen sind gelöscht, aber Anlegen
    bzw. Aktualisieren des Kopfes scheiterte.

    Die überschriebenen Sitzungen stehen in `overwritten`; sie sind weg,
    ohne dass die neue Belegung gespeichert wurde.
    """

    def __init__(self, snapshot, overwritten: list["Session"], deleted_ids: list[int],
                 cause: Exception, warnings: Optional[list[PartialDeleteWarning]] = None):
        names = ", ".join(f"'{s.course}'" for s in overwritten) or "–"
        super().__init__(
            f"Überschriebene Sitzung(en) {names} wurden gelöscht, aber "
            f"'{snapshot.course}' an Tag {snapshot.weekday} Periode {snapshot.start_period} "
            f"wurde nicht gespeichert: {cause}",
            snapshot, deleted_ids, cause, overwritten=overwritten, warnings=warnings,
        )


class DryRunValidationError(TimetableError):
    """Die Vorabprüfung eines Stapelimports meldete Zeilenfehler.

    Es wird nichts übernommen, bis alle Zeilen korrigiert oder entfernt sind.
    """

    def __init__(self, errors: list["BatchRowError"]):
        self.errors = list(errors)
        preview = "; ".join(e.describe() for e in self.errors[:5])
        more = f" (und {len(self.errors) - 5} weitere)" if len(self.errors) > 5 else ""
        super().__init__(f"Vorabprüfung: {len(self.errors)} fehlerhafte Zeile(n): {preview}{more}")


class EditInFlightError(TimetableError):
    """Ein Abgleich läuft bereits; doppelte Übermittlung wird abgewiesen."""
