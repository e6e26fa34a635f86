"""Tests für Export-Helfer, Terminal-Raster und Excel-Export."""

from datetime import date
from io import StringIO
from pathlib import Path

import pytest
from openpyxl import load_workbook
from rich.console import Console

from conftest import MONDAY, grid_of, make_session, payload
from export.excel_export import WeekExcelExporter
from export.helpers import (
    COURSE_PALETTE,
    course_color,
    format_cell,
    format_occupancy,
    format_span,
)
from export.tui_renderer import render_week_rows, render_week_table
from timetable.calendar import periods_for
from timetable.grid import WeekGrid


# ─── Helfer ───────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_format_span(self):
        assert format_span(make_session(1, 1, 3, 1)) == "P3"
        assert format_span(make_session(1, 1, 3, 2)) == "P3-4"

    def test_format_occupancy(self):
        s = make_session(1, 1, 1, 2).model_copy(update={"enrolled": 18, "capacity": 40})
        assert format_occupancy(s) == "18/40"
        assert format_occupancy(s, capacity=36) == "18/36"

    def test_format_cell(self):
        s = make_session(1, 1, 5, 2).model_copy(update={"class_names": "Informatik 1"})
        lines = format_cell(s, 40).split("\n")
        assert lines == ["Embedded Lab", "Dr. Weber", "Informatik 1", "0/40 · P5-6"]

    def test_course_color_stable(self):
        assert course_color("Digitaltechnik") == course_color("Digitaltechnik")
        assert course_color("Digitaltechnik") in COURSE_PALETTE


# ─── Terminal ─────────────────────────────────────────────────────────────────

class TestTuiRenderer:
    def test_rows(self):
        grid = grid_of(make_session(1, 2, 3, 3))
        rows = render_week_rows(grid, periods_for(MONDAY))
        assert len(rows) == 8
        assert rows[0][:2] == ["1", "08:00-08:50"]
        # Spalte 0/1 = Periode/Zeit, danach Mo..So
        assert rows[2][3].startswith("Embedded Lab")
        assert rows[3][3] == "↑ P3"
        assert rows[4][3] == "↑ P3"
        assert rows[5][3] == "—"

    def test_workdays_only(self):
        rows = render_week_rows(WeekGrid({}), periods_for(MONDAY), range(1, 6))
        assert all(len(r) == 7 for r in rows)

    def test_table_renders(self, memory_store):
        memory_store.create_session(1, 1, 1, payload(duration=2), MONDAY)
        grid = WeekGrid.from_week(memory_store.fetch_week(1, MONDAY))
        buf = StringIO()
        Console(file=buf, width=200).print(render_week_table(grid, title="W116"))
        out = buf.getvalue()
        assert "W116" in out
        assert "Mo 03.03." in out and "So 09.03." in out
        assert "0/40" in out


# ─── Excel ────────────────────────────────────────────────────────────────────

class TestExcelExport:
    def _seed(self, store):
        store.create_session(1, 1, 1, payload(duration=2, enrolled=40), MONDAY)
        store.create_session(1, 3, 5, payload("Regelungstechnik", 3), MONDAY)
        store.create_session(2, 2, 1, payload("Digitaltechnik", 1), date(2025, 3, 10))

    def test_collect_heads_only(self, memory_store):
        self._seed(memory_store)
        exporter = WeekExcelExporter(memory_store, memory_store.list_labs(),
                                     MONDAY, date(2025, 3, 16))
        sessions = exporter.collect(memory_store.get_lab(1))
        assert [(s.date, s.start_period) for s in sessions] == [
            (date(2025, 3, 3), 1), (date(2025, 3, 5), 5)]

    def test_range_filter(self, memory_store):
        self._seed(memory_store)
        exporter = WeekExcelExporter(memory_store, memory_store.list_labs(),
                                     date(2025, 3, 4), date(2025, 3, 11))
        assert len(exporter.collect(memory_store.get_lab(1))) == 1
        assert len(exporter.collect(memory_store.get_lab(2))) == 1

    def test_export_file(self, memory_store, tmp_path: Path):
        self._seed(memory_store)
        labs = memory_store.list_labs()[:2]
        path = tmp_path / "out" / "laborplan.xlsx"
        total = WeekExcelExporter(memory_store, labs, MONDAY, date(2025, 3, 16)).export(path)
        assert total == 3
        wb = load_workbook(str(path))
        assert wb.sheetnames == ["Übersicht", "Labor W116", "Labor W108"]

        ws = wb["Labor W116"]
        assert ws.cell(row=1, column=5).value == "Kurs"
        assert ws.cell(row=2, column=1).value == "2025-03-03"
        assert ws.cell(row=2, column=4).value == "08:00-09:50"
        assert ws.cell(row=3, column=4).value == "14:00-17:00"

        overview = wb["Übersicht"]
        assert overview.cell(row=5, column=1).value == "W116"
        assert overview.cell(row=5, column=3).value == 2
        assert overview.cell(row=5, column=4).value == 5
        assert overview.cell(row=5, column=5).value == 1

    def test_invalid_range(self, memory_store):
        with pytest.raises(ValueError):
            WeekExcelExporter(memory_store, [], date(2025, 3, 10), MONDAY)
