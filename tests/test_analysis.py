"""Tests für die Konsistenzprüfung einer Laborwoche."""

from io import StringIO

from rich.console import Console

from conftest import MONDAY, make_session, payload
from analysis.week_validator import WeekValidator


def _validate(store, lab_id=1):
    return WeekValidator().validate(store.fetch_week(lab_id, MONDAY))


class TestWeekValidator:
    def test_clean_week(self, memory_store):
        memory_store.create_session(1, 1, 1, payload(duration=3), MONDAY)
        memory_store.create_session(1, 4, 5, payload("Regelungstechnik", 2), MONDAY)
        report = _validate(memory_store)
        assert report.is_valid
        assert report.violations == []

    def test_orphan_fragment(self, memory_store):
        head = memory_store.create_session(1, 2, 3, payload(duration=2), MONDAY)
        memory_store.delete_session(1, head.id, MONDAY)
        report = _validate(memory_store)
        assert not report.is_valid
        orphan, = report.by_check("orphan_fragment")
        assert orphan.location == "Di P4"
        assert orphan.severity == "error"

    def test_fragment_mismatch_is_warning(self, memory_store):
        memory_store.create_session(1, 3, 1, payload(duration=2), MONDAY)
        # nur der Kopf wird geändert, das Fragment behält die alten Daten
        memory_store.update_session(1, 3, 1, payload(duration=2, content="neu"), MONDAY)
        report = _validate(memory_store)
        assert report.is_valid
        mismatch, = report.by_check("fragment_mismatch")
        assert mismatch.location == "Mi P2"

    def test_overlapping_heads(self, memory_store):
        memory_store.create_session(1, 1, 1, payload(duration=3), MONDAY)
        week = memory_store.fetch_week(1, MONDAY)
        # zweiter Kopf innerhalb der ersten Sitzung, am Speicher vorbei
        week.days[0].slots[2].session = make_session(99, 1, 3, 1, course="Fremd")
        report = WeekValidator().validate(week)
        assert not report.is_valid
        overlap, = report.by_check("overlap")
        assert "Fremd" in overlap.description
        assert overlap.location == "Mo P3"

    def test_capacity_warning(self, memory_store):
        memory_store.create_session(5, 5, 1, payload(enrolled=28), MONDAY)
        memory_store.create_session(5, 5, 3, payload(enrolled=27), MONDAY)
        report = _validate(memory_store, lab_id=5)
        assert report.is_valid
        warning, = report.by_check("over_capacity")
        assert warning.location == "Fr P1"

    def test_head_only_backend_has_no_fragment_findings(self, head_only_store):
        head_only_store.create_session(1, 2, 2, payload(duration=4), MONDAY)
        report = _validate(head_only_store)
        assert report.violations == []

    def test_print_rich(self, memory_store):
        head = memory_store.create_session(1, 2, 3, payload(duration=2), MONDAY)
        memory_store.delete_session(1, head.id, MONDAY)
        buf = StringIO()
        _validate(memory_store).print_rich(Console(file=buf, width=120))
        out = buf.getvalue()
        assert "INKONSISTENZEN" in out
        assert "orphan_fragment" in out
