"""Gemeinsame Fixtures: Standardspeicher und ein aufzeichnender Speicher-Wrapper."""

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

import pytest

from config.defaults import default_app_config
from models.lab import Lab
from models.session import Session, SessionPayload
from store.base import SessionStore
from store.memory import InMemoryStore
from timetable.calendar import date_for_weekday
from timetable.errors import StoreError
from timetable.grid import WeekGrid

# Montag im Winterhalbjahr
MONDAY = date(2025, 3, 3)


@dataclass
class _Failure:
    op: str
    predicate: Callable[..., bool]
    times: int
    error: Optional[Exception]


class RecordingStore(SessionStore):
    """Zeichnet jeden Aufruf auf und kann gezielt Fehler einspielen."""

    def __init__(self, inner: SessionStore) -> None:
        self.inner = inner
        self.calls: list[tuple[str, dict]] = []
        self._failures: list[_Failure] = []

    def fail_when(self, op: str, predicate: Callable[..., bool] = lambda **kw: True,
                  times: int = 1, error: Optional[Exception] = None) -> None:
        self._failures.append(_Failure(op, predicate, times, error))

    def _record(self, op: str, **kw) -> None:
        self.calls.append((op, kw))
        for f in self._failures:
            if f.op == op and f.times > 0 and f.predicate(**kw):
                f.times -= 1
                raise f.error or StoreError(f"simulierter Fehler: {op}", status=500)

    def mutations(self) -> list[tuple[str, dict]]:
        """Alle Aufrufe außer fetch_week/list_labs."""
        return [(op, kw) for op, kw in self.calls if op not in ("fetch_week", "list_labs")]

    def ops(self) -> list[str]:
        return [op for op, _ in self.calls]

    def list_labs(self):
        self._record("list_labs")
        return self.inner.list_labs()

    def fetch_week(self, lab_id, monday):
        self._record("fetch_week", lab_id=lab_id, monday=monday)
        return self.inner.fetch_week(lab_id, monday)

    def create_session(self, lab_id, weekday, period, payload, week_anchor):
        self._record("create_session", lab_id=lab_id, weekday=weekday, period=period,
                     payload=payload)
        return self.inner.create_session(lab_id, weekday, period, payload, week_anchor)

    def update_session(self, lab_id, weekday, period, payload, week_anchor):
        self._record("update_session", lab_id=lab_id, weekday=weekday, period=period,
                     payload=payload)
        return self.inner.update_session(lab_id, weekday, period, payload, week_anchor)

    def delete_session(self, lab_id, session_id, week_anchor):
        self._record("delete_session", lab_id=lab_id, session_id=session_id)
        return self.inner.delete_session(lab_id, session_id, week_anchor)

    def dry_run_batch(self, lab_id, week_anchor, rows):
        self._record("dry_run_batch", lab_id=lab_id, rows=rows)
        return self.inner.dry_run_batch(lab_id, week_anchor, rows)

    def commit_batch(self, lab_id, week_anchor, rows):
        self._record("commit_batch", lab_id=lab_id, rows=rows)
        return self.inner.commit_batch(lab_id, week_anchor, rows)


def payload(course: str = "Embedded Lab", duration: int = 2, **kw) -> SessionPayload:
    return SessionPayload(course=course, teacher=kw.pop("teacher", "Dr. Weber"),
                          duration=duration, **kw)


def make_session(id: int, weekday: int, start: int, duration: int,
                 course: str = "Embedded Lab") -> Session:
    return Session(id=id, lab_id=1, date=date_for_weekday(MONDAY, weekday),
                   weekday=weekday, start_period=start, duration=duration,
                   course=course, teacher="Dr. Weber")


def grid_of(*sessions: Session) -> WeekGrid:
    """Raster aus Kopf-Sitzungen (Folgezellen ohne eigene id)."""
    by_day: dict[int, list[Session]] = {}
    for s in sessions:
        by_day.setdefault(s.weekday, []).append(s)
    return WeekGrid.build(range(1, 8), by_day, lab_id=1, monday=MONDAY)


@pytest.fixture
def config():
    return default_app_config()


@pytest.fixture
def memory_store(config) -> InMemoryStore:
    """Speicher mit Fragment-Datensätzen (wie ein Backend, das jede
    Folgeperiode als eigenen Datensatz führt)."""
    return InMemoryStore.from_config(config)


@pytest.fixture
def head_only_store(config) -> InMemoryStore:
    """Speicher, der nur den Kopf-Datensatz führt."""
    labs = [Lab(id=l.id, name=l.name, capacity=l.capacity) for l in config.labs]
    return InMemoryStore(labs, class_rosters=config.class_rosters,
                         calendar=config.calendar, expand_fragments=False)


@pytest.fixture
def recording(memory_store) -> RecordingStore:
    return RecordingStore(memory_store)
