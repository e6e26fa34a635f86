"""Tests für InMemoryStore, RestStore (gegen ein simuliertes Backend) und open_store."""

import json
import logging
from datetime import date, timedelta

import pytest
import requests

from conftest import MONDAY, payload
from config.schema import StoreBackend
from models.session import DesiredEdit
from store import InMemoryStore, RestStore, open_store
from store.base import BatchRow
from timetable.errors import SessionNotFoundError, StoreError
from timetable.grid import WeekGrid
from timetable.reconciler import SessionReconciler


# ─── InMemoryStore ───────────────────────────────────────────────────────────

class TestMemoryStore:
    def test_create_expands_fragments(self, memory_store):
        head = memory_store.create_session(1, 2, 3, payload(duration=3), MONDAY)
        assert len(memory_store) == 3
        day = memory_store.fetch_week(1, MONDAY).day(2)
        fragment = day.slots[3].session
        assert day.slots[3].is_fragment
        assert fragment.start_period == 3 and fragment.id != head.id

    def test_head_only_store(self, head_only_store):
        head_only_store.create_session(1, 2, 3, payload(duration=3), MONDAY)
        assert len(head_only_store) == 1
        day = head_only_store.fetch_week(1, MONDAY).day(2)
        assert day.slots[3].session is None

    def test_week_shape(self, memory_store):
        week = memory_store.fetch_week(1, date(2025, 3, 5))
        assert week.monday == MONDAY
        assert week.sunday == MONDAY + timedelta(days=6)
        assert [d.weekday for d in week.days] == list(range(1, 8))
        assert all(len(d.slots) == 8 for d in week.days)

    def test_capacity_from_lab(self, memory_store):
        memory_store.create_session(2, 1, 1, payload(enrolled=38), MONDAY)
        session = memory_store.fetch_week(2, MONDAY).head_sessions()[0]
        assert session.capacity == 36
        assert not session.allow_makeup

    def test_enrolled_from_classes(self, memory_store):
        session = memory_store.create_session(
            1, 1, 1, payload(class_names="Informatik 1, Informatik 2"), MONDAY)
        assert session.enrolled == 35

    def test_explicit_enrolled_wins(self, memory_store):
        session = memory_store.create_session(
            1, 1, 1, payload(class_names="Informatik 1", enrolled=12), MONDAY)
        assert session.enrolled == 12

    def test_unknown_class(self, memory_store):
        with pytest.raises(StoreError) as exc:
            memory_store.create_session(1, 1, 1, payload(class_names="Chemie 9"), MONDAY)
        assert exc.value.status == 400
        assert "Chemie 9" in str(exc.value)

    def test_occupied_slot(self, memory_store):
        memory_store.create_session(1, 1, 2, payload(duration=3), MONDAY)
        with pytest.raises(StoreError) as exc:
            memory_store.create_session(1, 1, 4, payload(duration=1), MONDAY)
        assert exc.value.status == 409

    def test_past_day_end(self, memory_store):
        with pytest.raises(StoreError) as exc:
            memory_store.create_session(1, 1, 7, payload(duration=3), MONDAY)
        assert exc.value.status == 400

    def test_unknown_lab(self, memory_store):
        with pytest.raises(StoreError) as exc:
            memory_store.fetch_week(99, MONDAY)
        assert exc.value.status == 404

    def test_update_missing_slot(self, memory_store):
        with pytest.raises(SessionNotFoundError):
            memory_store.update_session(1, 1, 1, payload(), MONDAY)

    def test_update_head_regrows_fragments(self, memory_store):
        memory_store.create_session(1, 3, 1, payload(duration=2), MONDAY)
        memory_store.update_session(1, 3, 1, payload(duration=4), MONDAY)
        assert len(memory_store) == 4
        memory_store.update_session(1, 3, 1, payload(duration=1), MONDAY)
        assert len(memory_store) == 1

    def test_update_growth_blocked(self, memory_store):
        memory_store.create_session(1, 3, 1, payload(duration=2), MONDAY)
        memory_store.create_session(1, 3, 4, payload("Regelungstechnik", 1), MONDAY)
        with pytest.raises(StoreError) as exc:
            memory_store.update_session(1, 3, 1, payload(duration=4), MONDAY)
        assert exc.value.status == 409

    def test_delete(self, memory_store):
        head = memory_store.create_session(1, 1, 1, payload(duration=1), MONDAY)
        memory_store.delete_session(1, head.id, MONDAY)
        assert len(memory_store) == 0
        with pytest.raises(SessionNotFoundError):
            memory_store.delete_session(1, head.id, MONDAY)

    def test_lab_lookup(self, memory_store):
        assert memory_store.resolve_lab_id("W108") == 2
        assert memory_store.resolve_lab_id(" W108 ") == 2
        assert memory_store.resolve_lab_id("X1") is None
        assert memory_store.get_lab(5).name == "O131"


class TestMemoryBatch:
    def _row(self, **kw) -> BatchRow:
        base = dict(date="2025-03-04", period=1, course="Digitaltechnik",
                    teacher="Dr. Weber", duration=2, lab="W116")
        base.update(kw)
        return BatchRow(**base)

    def test_dry_run_saves_nothing(self, memory_store):
        result = memory_store.dry_run_batch(1, MONDAY, [self._row(), self._row(period=5)])
        assert (result.success, result.failed) == (2, 0)
        assert len(memory_store) == 0

    @pytest.mark.parametrize("changes,field", [
        ({"course": None}, None),
        ({"lab": None}, "lab"),
        ({"lab": "X99"}, "lab"),
        ({"date": "04.03.2025"}, "date"),
        ({"date": "2025-02-30"}, "date"),
        ({"period": 9}, "period"),
        ({"period": 7, "duration": 3}, "duration"),
        ({"class_names": "Chemie 9"}, "class_names"),
    ])
    def test_row_errors(self, memory_store, changes, field):
        result = memory_store.dry_run_batch(1, MONDAY, [self._row(), self._row(**{"period": 5, **changes})])
        assert result.failed == 1 and result.success == 0
        error, = result.errors
        assert error.index == 2
        assert error.field == field

    def test_overlap_within_batch(self, memory_store):
        result = memory_store.dry_run_batch(1, MONDAY, [self._row(), self._row(period=2)])
        assert "Zeile 1" in result.errors[0].message

    def test_clash_with_existing(self, memory_store):
        memory_store.create_session(1, 2, 1, payload(duration=3), MONDAY)
        result = memory_store.dry_run_batch(1, MONDAY, [self._row(period=3)])
        assert result.errors[0].field == "period"

    def test_commit_inserts_then_updates(self, memory_store):
        first = memory_store.commit_batch(1, MONDAY, [self._row(), self._row(lab_id=2, lab=None)])
        assert (first.inserted, first.updated) == (2, 0)
        second = memory_store.commit_batch(1, MONDAY, [self._row(content="Flipflops")])
        assert (second.inserted, second.updated) == (0, 1)
        session = memory_store.fetch_week(1, MONDAY).head_sessions()[0]
        assert session.content == "Flipflops"

    def test_commit_with_errors_saves_nothing(self, memory_store):
        result = memory_store.commit_batch(1, MONDAY, [self._row(), self._row(period=0)])
        assert result.failed == 1
        assert len(memory_store) == 0

    def test_batch_spans_weeks(self, memory_store):
        memory_store.commit_batch(1, MONDAY, [self._row(), self._row(date="2025-03-12")])
        assert len(memory_store.fetch_week(1, date(2025, 3, 10)).head_sessions()) == 1


class TestPersistence:
    def test_json_roundtrip(self, memory_store, tmp_path):
        memory_store.create_session(1, 2, 3, payload(duration=3, content="Zähler"), MONDAY)
        memory_store.create_session(3, 5, 1, payload("Regelungstechnik", 1), MONDAY)
        path = tmp_path / "store.json"
        memory_store.save_json(path)

        loaded = InMemoryStore.load_json(path)
        assert len(loaded) == len(memory_store)
        assert loaded.fetch_week(1, MONDAY) == memory_store.fetch_week(1, MONDAY)
        # ids laufen weiter
        new = loaded.create_session(1, 1, 1, payload(duration=1), MONDAY)
        assert new.id == 5

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            InMemoryStore.load_json(tmp_path / "fehlt.json")

    def test_open_store_memory(self, config, tmp_path):
        config.store.data_path = str(tmp_path / "store.json")
        store = open_store(config)
        assert isinstance(store, InMemoryStore) and len(store) == 0
        store.create_session(1, 1, 1, payload(), MONDAY)
        store.save_json(config.store.data_path)
        assert len(open_store(config)) == 2

    def test_open_store_rest(self, config):
        config.store.backend = StoreBackend.REST
        config.store.base_url = "http://backend:3000/api/"
        store = open_store(config)
        assert isinstance(store, RestStore)
        assert store.base_url == "http://backend:3000/api"


# ─── RestStore ───────────────────────────────────────────────────────────────

BASE = "http://backend/api"


class FakeResponse:
    def __init__(self, status_code: int, body=None, raw: bytes = None, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        if raw is not None:
            self.content = raw
        else:
            self.content = json.dumps(body).encode() if body is not None else b""

    def json(self):
        return json.loads(self.content)


class FakeBackend:
    """Simuliert das HTTP-Backend: führt nur Kopf-Datensätze."""

    def __init__(self):
        self.sessions: dict[tuple[str, int], dict] = {}
        self.next_id = 100
        self.requests: list[tuple[str, str, dict]] = []
        self.batch_response = {"success": 0, "failed": 0}
        self.override = None

    def request(self, method, url, timeout=None, params=None, json=None):
        path = url[len(BASE):]
        self.requests.append((method, path, {"params": params, "json": json}))
        if self.override is not None:
            return self.override
        if path == "/labs":
            return FakeResponse(200, [{"id": 1, "name": "W116", "capacity": 40}])
        if path == "/labs/1/timetable" and method == "GET":
            return FakeResponse(200, self._week(date.fromisoformat(params["date"])))
        if path == "/labs/1/timetable" and method == "PUT":
            self._replace(date.fromisoformat(params["date"]), json["sessions"])
            return FakeResponse(200, {"ok": True})
        if path == "/labs/1/timetable/batch":
            return FakeResponse(200, self.batch_response)
        return FakeResponse(404, {"message": "Labor nicht gefunden"})

    def _replace(self, monday: date, sessions: list[dict]) -> None:
        week = {(monday + timedelta(days=i)).isoformat() for i in range(7)}
        old = {k: v for k, v in self.sessions.items() if k[0] in week}
        for key in old:
            del self.sessions[key]
        for s in sessions:
            key = (s["date"], s["period"])
            kept = old.get(key)
            sid = kept["id"] if kept else self._new_id()
            self.sessions[key] = {**s, "id": sid, "planned": s.get("planned", 0)}

    def _new_id(self) -> int:
        self.next_id += 1
        return self.next_id

    def _week(self, monday: date) -> dict:
        days = []
        for i in range(7):
            day = monday + timedelta(days=i)
            slots = []
            for p in range(1, 9):
                raw = self.sessions.get((day.isoformat(), p))
                slots.append({"period": p, "start": "08:00", "end": "08:50", "session": raw})
            days.append({"date": day.isoformat(), "dayOfWeek": i + 1, "slots": slots})
        return {
            "lab": {"id": 1, "name": "W116", "capacity": 40},
            "week": {"monday": monday.isoformat(), "sunday": (monday + timedelta(days=6)).isoformat()},
            "days": days,
        }


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def rest(backend):
    return RestStore(BASE + "/", session=backend)


class TestRestStore:
    def test_list_labs(self, rest):
        labs = rest.list_labs()
        assert [(l.id, l.name, l.capacity) for l in labs] == [(1, "W116", 40)]

    def test_create_and_fetch(self, rest, backend):
        head = rest.create_session(1, 2, 3, payload(duration=3, enrolled=20), MONDAY)
        assert head.id == 101 and head.start_period == 3
        methods = [m for m, _, _ in backend.requests]
        assert methods == ["GET", "PUT", "GET"]
        _, _, put = backend.requests[1]
        wire, = put["json"]["sessions"]
        assert wire["date"] == "2025-03-04" and wire["planned"] == 20
        assert put["params"] == {"date": "2025-03-03"}

        grid = WeekGrid.from_week(rest.fetch_week(1, MONDAY))
        assert grid.resolve(2, 5).period == 3
        assert grid.get(2, 5).record_id is None

    def test_planned_omitted_for_classes(self, rest, backend):
        rest.create_session(1, 1, 1, payload(class_names="Informatik 1"), MONDAY)
        wire = backend.requests[1][2]["json"]["sessions"][0]
        assert "planned" not in wire
        assert wire["classNames"] == "Informatik 1"

    def test_update_keeps_other_sessions(self, rest, backend):
        rest.create_session(1, 1, 1, payload("A", 1), MONDAY)
        rest.create_session(1, 1, 3, payload("B", 2), MONDAY)
        updated = rest.update_session(1, 1, 3, payload("B", 2, content="neu"), MONDAY)
        assert updated.content == "neu"
        courses = sorted(s["course"] for s in backend.sessions.values())
        assert courses == ["A", "B"]

    def test_update_missing(self, rest):
        with pytest.raises(SessionNotFoundError):
            rest.update_session(1, 1, 1, payload(), MONDAY)

    def test_delete(self, rest, backend):
        head = rest.create_session(1, 4, 2, payload(), MONDAY)
        rest.delete_session(1, head.id, MONDAY)
        assert backend.sessions == {}
        with pytest.raises(SessionNotFoundError):
            rest.delete_session(1, head.id, MONDAY)

    def test_http_error_message(self, rest, backend):
        backend.override = FakeResponse(409, {"message": ["Periode belegt", "Labor gesperrt"]},
                                        reason="Conflict")
        with pytest.raises(StoreError) as exc:
            rest.list_labs()
        assert exc.value.status == 409
        assert "Periode belegt; Labor gesperrt" in str(exc.value)

    def test_not_found(self, rest):
        with pytest.raises(SessionNotFoundError):
            rest.fetch_week(7, MONDAY)

    def test_invalid_json(self, rest, backend):
        backend.override = FakeResponse(200, raw=b"<html>")
        with pytest.raises(StoreError):
            rest.list_labs()

    def test_unexpected_week_shape(self, rest, backend):
        backend.override = FakeResponse(200, {"days": []})
        with pytest.raises(StoreError):
            rest.fetch_week(1, MONDAY)

    def test_transport_error(self, backend):
        class Broken:
            def request(self, *args, **kwargs):
                raise requests.ConnectionError("verbindung abgelehnt")

        with pytest.raises(StoreError) as exc:
            RestStore(BASE, session=Broken()).list_labs()
        assert "verbindung abgelehnt" in str(exc.value)

    def test_batch(self, rest, backend):
        backend.batch_response = {"success": 0, "failed": 2,
                                  "errors": ["Zeile 1: Labor fehlt",
                                             {"index": 2, "field": "date", "message": "falsch"}]}
        result = rest.dry_run_batch(1, MONDAY, [BatchRow(date="2025-03-03", period=1,
                                                         course="A", teacher="B", lab_id=1)])
        _, path, kw = backend.requests[-1]
        assert path == "/labs/1/timetable/batch"
        assert kw["params"]["dryRun"] == "true"
        assert kw["json"]["sessions"][0]["labId"] == 1
        assert result.failed == 2
        assert result.errors[0].message == "Zeile 1: Labor fehlt"
        assert result.errors[1].field == "date"

    def test_commit_has_no_dry_run_flag(self, rest, backend):
        backend.batch_response = {"success": 1, "inserted": 1}
        result = rest.commit_batch(1, MONDAY, [])
        assert "dryRun" not in backend.requests[-1][2]["params"]
        assert result.inserted == 1

    def test_reconciler_move_over_rest(self, rest, backend):
        """Verschieben gegen ein Backend ohne Fragmente: ein delete, ein create."""
        rest.create_session(1, 1, 1, payload(duration=2), MONDAY)
        rec = SessionReconciler(rest, lab_id=1, monday=MONDAY)
        old = rec.resolve_cell(1, 2).session
        backend.requests.clear()

        result = rec.reconcile(old, DesiredEdit.from_session(old, start_period=6))

        puts = [kw["json"] for m, _, kw in backend.requests if m == "PUT"]
        assert len(puts) == 2
        assert puts[0] == {"sessions": []}
        assert puts[1]["sessions"][0]["period"] == 6
        assert result.grid.resolve(1, 7).period == 6
        assert result.grid.is_empty(1, 1)

    def test_overlong_session_is_clamped_on_read(self, rest, backend, caplog):
        """Ein gespeicherter Datensatz über P8 hinaus macht die Woche nicht unlesbar."""
        backend.sessions[("2025-03-03", 7)] = {
            "id": 5, "date": "2025-03-03", "period": 7, "duration": 4,
            "course": "Regelungstechnik", "teacher": "Fr. Kaya", "planned": 0,
        }
        rec = SessionReconciler(rest, lab_id=1, monday=MONDAY)
        with caplog.at_level(logging.WARNING, logger="store.rest"):
            grid = rec.refresh()
        head = grid.occupant(1, 8)
        assert (head.id, head.start_period, head.duration) == (5, 7, 2)
        assert "gekürzt" in caplog.text

        result = rec.reconcile(head, DesiredEdit.from_session(head, enrolled=12))
        assert result.session.enrolled == 12
        assert backend.sessions[("2025-03-03", 7)]["duration"] == 2
