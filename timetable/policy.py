"""Konflikt- und Kürzungsregeln für Platzierungen im Wochenraster.

Reine Funktionen; sie entscheiden nur, der Abgleich führt aus.
"""

from dataclasses import dataclass
from typing import Optional

from models.session import MAX_PERIOD, Session
from timetable.errors import ClampWarning
from timetable.grid import WeekGrid


@dataclass(frozen=True)
class Placement:
    """Gewünschte Lage einer Sitzung: Tag, erste Periode, Dauer."""

    weekday: int
    start_period: int
    duration: int

    @property
    def end_period(self) -> int:
        return self.start_period + self.duration - 1

    @property
    def periods(self) -> range:
        return range(self.start_period, self.end_period + 1)


@dataclass(frozen=True)
class PlacementResult:
    """ok=True: Platzierung frei (ggf. mit gekürzter Dauer).

    ok=False: `conflicting_session` belegt mindestens eine Zielzelle;
    überschreiben nur nach ausdrücklicher Bestätigung.
    """

    ok: bool
    placement: Placement
    conflicting_session: Optional[Session] = None
    warning: Optional[ClampWarning] = None

    @property
    def duration(self) -> int:
        """Wirksame (ggf. gekürzte) Dauer."""
        return self.placement.duration


def max_duration(start_period: int) -> int:
    """Höchste Dauer ab `start_period` bis zum Tagesende."""
    return MAX_PERIOD - start_period + 1


def clamp_duration(start_period: int, duration: int) -> tuple[int, Optional[ClampWarning]]:
    """Kürzt die Dauer auf das Tagesende.

    Gibt (wirksame Dauer, Warnung oder None) zurück; die Warnung ist nie
    blockierend.
    """
    if not 1 <= start_period <= MAX_PERIOD:
        raise ValueError(f"Periode {start_period} außerhalb von 1-{MAX_PERIOD}")
    if duration < 1:
        raise ValueError(f"Dauer muss mindestens 1 sein (war {duration})")
    limit = max_duration(start_period)
    if duration <= limit:
        return duration, None
    return limit, ClampWarning(start_period=start_period, requested=duration, clamped=limit)


def evaluate_placement(
    grid: WeekGrid,
    target: Placement,
    excluding_session_id: Optional[int] = None,
) -> PlacementResult:
    """Prüft, ob `target` frei ist.

    Die Dauer wird zuerst gekürzt; danach wird jede Zielzelle auf ihren
    Kopf aufgelöst. Eine Zelle der Sitzung `excluding_session_id` (die
    gerade bearbeitete) zählt nicht als Konflikt. Die erste fremde
    Sitzung wird zurückgegeben, nie stillschweigend überschrieben.
    """
    duration, warning = clamp_duration(target.start_period, target.duration)
    effective = Placement(target.weekday, target.start_period, duration)

    for period in effective.periods:
        occupant = grid.occupant(target.weekday, period)
        if occupant is None:
            continue
        if excluding_session_id is not None and occupant.id == excluding_session_id:
            continue
        return PlacementResult(ok=False, placement=effective,
                               conflicting_session=occupant, warning=warning)
    return PlacementResult(ok=True, placement=effective, warning=warning)
