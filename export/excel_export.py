"""Excel-Export von Laborsitzungen (openpyxl).

Ein Übersichtsblatt plus je Labor ein Blatt mit allen Sitzungen im
gewählten Zeitraum (eine Zeile je Sitzung, nur Köpfe).
"""

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config.schema import CalendarConfig
from export.helpers import COLORS, course_color, today_str
from models.lab import Lab
from models.session import Session
from store.base import SessionStore
from timetable.calendar import WEEKDAY_NAMES, monday_of, period_label

logger = logging.getLogger(__name__)


class WeekExcelExporter:
    """Exportiert Sitzungen mehrerer Labore über einen Datumsbereich."""

    COLUMNS = [
        ("Datum", 12), ("Tag", 5), ("Periode", 8), ("Zeit", 13), ("Kurs", 24),
        ("Lehrkraft", 18), ("Inhalt", 28), ("Klassen", 26), ("Teilnehmer", 11),
        ("Dauer", 7), ("Labor", 10),
    ]
    ROW_HEADER_H = 22

    def __init__(self, store: SessionStore, labs: list[Lab], start: date, end: date,
                 calendar: Optional[CalendarConfig] = None, title: str = "Laborplan"):
        if end < start:
            raise ValueError(f"Ende {end} liegt vor Beginn {start}")
        self.store = store
        self.labs = labs
        self.start = start
        self.end = end
        self.calendar = calendar
        self.title = title

    # ─── Öffentliche API ──────────────────────────────────────────────────────

    def collect(self, lab: Lab) -> list[Session]:
        """Alle Kopf-Sitzungen des Labors im Zeitraum, nach Datum/Periode."""
        sessions: list[Session] = []
        monday = monday_of(self.start)
        while monday <= self.end:
            week = self.store.fetch_week(lab.id, monday)
            sessions += [s for s in week.head_sessions() if self.start <= s.date <= self.end]
            monday += timedelta(days=7)
        return sorted(sessions, key=lambda s: (s.date, s.start_period))

    def export(self, output_path: Path) -> int:
        """Erstellt die Excel-Datei; gibt die Anzahl exportierter Sitzungen zurück."""
        wb = Workbook()
        wb.remove(wb.active)   # Leeres Standard-Sheet entfernen

        per_lab = {lab.id: self.collect(lab) for lab in self.labs}
        self._sheet_uebersicht(wb, per_lab)
        for lab in self.labs:
            self._sheet_labor(wb, lab, per_lab[lab.id])

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)
        total = sum(len(v) for v in per_lab.values())
        logger.info(f"Excel-Export: {total} Sitzung(en) → {output_path}")
        return total

    # ─── Style-Helpers ────────────────────────────────────────────────────────

    def _fill(self, hex_color: str) -> PatternFill:
        return PatternFill(start_color=hex_color, end_color=hex_color, fill_type="solid")

    def _thin_border(self) -> Border:
        s = Side(border_style="thin", color="BBBBBB")
        return Border(left=s, right=s, top=s, bottom=s)

    def _write_header(self, ws, row: int, headers: list[str]) -> None:
        fill = self._fill(COLORS["header"])
        border = self._thin_border()
        for col, text in enumerate(headers, 1):
            cell = ws.cell(row=row, column=col, value=text)
            cell.fill = fill
            cell.font = Font(bold=True, color="FFFFFF", size=10)
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = border
        ws.row_dimensions[row].height = self.ROW_HEADER_H

    # ─── Sheet: Übersicht ─────────────────────────────────────────────────────

    def _sheet_uebersicht(self, wb, per_lab: dict[int, list[Session]]) -> None:
        ws = wb.create_sheet(title="Übersicht", index=0)
        ws.cell(row=1, column=1, value=self.title).font = Font(bold=True, size=14)
        ws.cell(row=2, column=1, value=f"Erstellt: {today_str()}")
        ws.cell(row=2, column=3,
                value=f"Zeitraum: {self.start.strftime('%d.%m.%Y')} – {self.end.strftime('%d.%m.%Y')}")

        self._write_header(ws, 4, ["Labor", "Kapazität", "Sitzungen", "Perioden", "Ausgebucht"])
        border = self._thin_border()
        row = 5
        for lab in self.labs:
            sessions = per_lab[lab.id]
            full = sum(1 for s in sessions if lab.capacity and s.enrolled >= lab.capacity)
            values = [lab.name, lab.capacity, len(sessions),
                      sum(s.duration for s in sessions), full]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=value).border = border
            if full:
                ws.cell(row=row, column=5).fill = self._fill(COLORS["full"])
            row += 1

        for col, width in enumerate([14, 10, 10, 10, 11], 1):
            ws.column_dimensions[get_column_letter(col)].width = width

    # ─── Sheet: Labor ─────────────────────────────────────────────────────────

    def _sheet_labor(self, wb, lab: Lab, sessions: list[Session]) -> None:
        ws = wb.create_sheet(title=f"Labor {lab.name}"[:31])
        self._write_header(ws, 1, [name for name, _ in self.COLUMNS])
        for col, (_, width) in enumerate(self.COLUMNS, 1):
            ws.column_dimensions[get_column_letter(col)].width = width
        ws.freeze_panes = "A2"

        border = self._thin_border()
        for row, s in enumerate(sessions, 2):
            first = period_label(s.date, s.start_period, self.calendar).split("-")[0]
            last = period_label(s.date, s.end_period, self.calendar).split("-")[1]
            values = [
                s.date.isoformat(), WEEKDAY_NAMES[s.weekday - 1], s.start_period, f"{first}-{last}",
                s.course, s.teacher, s.content or "", s.class_names or "",
                s.enrolled, s.duration, lab.name,
            ]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row, column=col, value=value)
                cell.border = border
            ws.cell(row=row, column=5).fill = self._fill(course_color(s.course))
            if lab.capacity and s.enrolled >= lab.capacity:
                ws.cell(row=row, column=9).fill = self._fill(COLORS["full"])
