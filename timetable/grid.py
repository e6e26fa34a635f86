"""Wochenraster: dünn besetzte Belegungstabelle (Wochentag 1-7) × (Periode 1-8).

Eine mehrperiodige Sitzung belegt eine Kopfzelle (mit vollständigen Daten)
und duration-1 Folgezellen (nur Rückverweis auf den Kopf). Das Raster wird
nach jeder Änderung aus einer neu geladenen Woche gebaut und nie lokal
fortgeschrieben.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Iterable, Mapping, Optional, Union

from models.session import MAX_PERIOD, Session
from models.week import WeekSchedule

logger = logging.getLogger(__name__)

Coord = tuple[int, int]   # (weekday, period)


@dataclass(frozen=True)
class CellRef:
    """Inhalt einer belegten Zelle.

    Kopfzelle: `session` trägt die Sitzung, `head_at` ist die eigene Position.
    Folgezelle: `session` ist None, `head_at` verweist auf den Kopf;
    `fragment_id` ist die id des Fragment-Datensatzes, falls das Backend
    die Folgeperiode als eigenen Datensatz führt.
    """

    is_head: bool
    head_at: Coord
    session: Optional[Session] = None
    fragment_id: Optional[int] = None

    @classmethod
    def head(cls, weekday: int, session: Session) -> "CellRef":
        return cls(is_head=True, head_at=(weekday, session.start_period),
                   session=session, fragment_id=session.id)

    @classmethod
    def continuation(cls, head_at: Coord, fragment_id: Optional[int] = None) -> "CellRef":
        return cls(is_head=False, head_at=head_at, fragment_id=fragment_id)

    @property
    def record_id(self) -> Optional[int]:
        """id des Datensatzes genau dieser Zelle (Kopf oder Fragment)."""
        return self.fragment_id


@dataclass(frozen=True)
class ResolvedCell:
    """Ergebnis der Auflösung: immer die Koordinaten des Kopfes."""

    weekday: int
    period: int
    session: Session
    is_continuation: bool = False


class WeekGrid:
    """Unveränderliche Projektion einer geladenen Woche."""

    def __init__(self, cells: Mapping[Coord, CellRef], lab_id: Optional[int] = None,
                 monday: Optional[date] = None, capacity: int = 0) -> None:
        self._cells: dict[Coord, CellRef] = dict(cells)
        self.lab_id = lab_id
        self.monday = monday
        self.capacity = capacity

    # ─── Aufbau ───

    @classmethod
    def build(
        cls,
        days_of_week: Iterable[int],
        sessions_by_day: Mapping[int, Iterable[Session]],
        **meta,
    ) -> "WeekGrid":
        """Baut das Raster aus Kopf-Sitzungen pro Wochentag.

        Jede Sitzung markiert ihre start_period als Kopf und die folgenden
        duration-1 Perioden als Folgezellen.
        """
        heads = [(weekday, s) for weekday in days_of_week
                 for s in sessions_by_day.get(weekday, [])]
        return cls(_assemble(heads, []), **meta)

    @classmethod
    def from_week(cls, week: WeekSchedule) -> "WeekGrid":
        """Raster aus der Antwort von fetch_week.

        Datensätze mit start_period == Slot-Periode sind Köpfe; Fragmente
        (vom Backend angelegte Folgeperioden) werden zu Folgezellen mit
        eigener id. Führt das Backend nur den Kopf, werden die Folgezellen
        aus dessen Dauer ergänzt.
        """
        heads: list[tuple[int, Session]] = []
        fragments: list[tuple[Coord, Session]] = []
        for day in week.days:
            for slot in day.slots:
                if slot.session is None:
                    continue
                if slot.is_fragment:
                    fragments.append(((day.weekday, slot.period), slot.session))
                else:
                    heads.append((day.weekday, slot.session))
        return cls(_assemble(heads, fragments), lab_id=week.lab.id,
                   monday=week.monday, capacity=week.lab.capacity)

    # ─── Abfragen ───

    def get(self, weekday: int, period: int) -> Optional[CellRef]:
        return self._cells.get((weekday, period))

    def is_empty(self, weekday: int, period: int) -> bool:
        return (weekday, period) not in self._cells

    def resolve(self, weekday: int, period: int) -> Optional[ResolvedCell]:
        """Löst eine Zelle auf ihren Kopf auf.

        1. Kopf → direkt zurück; leer → None.
        2. Folgezelle → rückwärts ab period-1 den ersten Kopf suchen, dessen
           Bereich `period` enthält (is_continuation=True).
        3. Kein passender Kopf → inkonsistentes Raster; wird wie leer
           behandelt (der Aufrufer sollte neu laden, siehe `is_stale`).
        """
        ref = self._cells.get((weekday, period))
        if ref is None:
            return None
        if ref.is_head:
            return ResolvedCell(weekday, period, ref.session)
        for p in range(period - 1, 0, -1):
            candidate = self._cells.get((weekday, p))
            if candidate is not None and candidate.is_head and candidate.session.covers(period):
                return ResolvedCell(weekday, p, candidate.session, is_continuation=True)
        logger.warning(
            f"Folgezelle Tag {weekday} Periode {period} ohne Kopf – Raster veraltet")
        return None

    def is_stale(self, weekday: int, period: int) -> bool:
        """True wenn die Zelle belegt ist, sich aber nicht auflösen lässt."""
        return not self.is_empty(weekday, period) and self.resolve(weekday, period) is None

    def occupant(self, weekday: int, period: int) -> Optional[Session]:
        """Kopf-Sitzung, die die Zelle belegt (oder None)."""
        resolved = self.resolve(weekday, period)
        return resolved.session if resolved else None

    def fragments_of(self, weekday: int, start_period: int) -> list[tuple[int, CellRef]]:
        """Live-Zellen (Periode, CellRef), die zur Sitzung mit Kopf an
        (weekday, start_period) gehören, in Periodenreihenfolge.

        Lücken werden übersprungen: ein liegengebliebenes Fragment hinter
        einer leeren Zelle zählt weiter zur Sitzung.
        """
        head = self._cells.get((weekday, start_period))
        if head is None or not head.is_head:
            return []
        result = [(start_period, head)]
        for p in range(start_period + 1, MAX_PERIOD + 1):
            ref = self._cells.get((weekday, p))
            if ref is not None and not ref.is_head and ref.head_at == (weekday, start_period):
                result.append((p, ref))
        return result

    def sessions(self) -> list[tuple[Coord, Session]]:
        """Alle Köpfe, sortiert nach (Tag, Periode)."""
        return sorted(
            ((coord, ref.session) for coord, ref in self._cells.items() if ref.is_head),
            key=lambda item: item[0],
        )

    def find_session(self, session_id: int) -> Optional[ResolvedCell]:
        """Sucht den Kopf mit dieser id."""
        for (weekday, period), session in self.sessions():
            if session.id == session_id:
                return ResolvedCell(weekday, period, session)
        return None

    def __iter__(self):
        return iter(sorted(self._cells.items()))

    def __len__(self) -> int:
        return len(self._cells)

    def __eq__(self, other) -> bool:
        if not isinstance(other, WeekGrid):
            return NotImplemented
        return (self._cells == other._cells and self.lab_id == other.lab_id
                and self.monday == other.monday)

    def __repr__(self) -> str:
        return f"WeekGrid(lab={self.lab_id}, monday={self.monday}, {len(self._cells)} Zellen)"


def _assemble(heads: Iterable[tuple[int, Session]],
              fragments: Iterable[tuple[Coord, Session]]) -> dict[Coord, CellRef]:
    cells: dict[Coord, CellRef] = {}
    for weekday, s in heads:
        coord = (weekday, s.start_period)
        if coord in cells:
            logger.warning(f"Doppelter Kopf an Tag {weekday} Periode {s.start_period} "
                           f"(id={s.id}) wird ignoriert")
            continue
        cells[coord] = CellRef.head(weekday, s)
    for coord, s in fragments:
        cells.setdefault(coord, CellRef.continuation((coord[0], s.start_period),
                                                     fragment_id=s.id))
    for (weekday, period), ref in list(cells.items()):
        if not ref.is_head:
            continue
        for p in range(period + 1, min(ref.session.end_period, MAX_PERIOD) + 1):
            cells.setdefault((weekday, p), CellRef.continuation((weekday, period)))
    return cells


# ─── Reducer ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EditStarted:
    pass


@dataclass(frozen=True)
class WeekFetched:
    week: WeekSchedule


@dataclass(frozen=True)
class GridInvalidated:
    reason: str = ""


@dataclass(frozen=True)
class EditSettled:
    pass


@dataclass(frozen=True)
class EditFailed:
    reason: str = ""


GridEvent = Union[EditStarted, WeekFetched, GridInvalidated, EditSettled, EditFailed]


@dataclass(frozen=True)
class GridState:
    """Zustand der Ansicht: aktuelles Raster + Flags für die Oberfläche.

    `in_flight` sperrt doppelte Übermittlung, `stale` erzwingt Neuladen.
    """

    grid: WeekGrid = field(default_factory=lambda: WeekGrid({}))
    in_flight: bool = False
    stale: bool = True


def reduce(state: GridState, event: GridEvent) -> GridState:
    """Reiner Reducer: (Zustand, Ereignis) → neuer Zustand."""
    if isinstance(event, EditStarted):
        return replace(state, in_flight=True)
    if isinstance(event, WeekFetched):
        return replace(state, grid=WeekGrid.from_week(event.week), stale=False)
    if isinstance(event, GridInvalidated):
        return replace(state, stale=True)
    if isinstance(event, (EditSettled, EditFailed)):
        return replace(state, in_flight=False)
    raise TypeError(f"Unbekanntes Ereignis: {event!r}")
