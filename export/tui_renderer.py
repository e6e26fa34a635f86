"""Terminal-Darstellung einer Laborwoche (Rich)."""

from datetime import date
from typing import Optional

from rich import box
from rich.table import Table

from config.schema import CalendarConfig
from export.helpers import CONTINUATION_MARK, format_cell
from models.period import Period
from timetable.calendar import WEEKDAY_NAMES, periods_for, week_dates
from timetable.grid import WeekGrid


def render_week_rows(grid: WeekGrid, periods: list[Period],
                     weekdays: range = range(1, 8)) -> list[list[str]]:
    """Tabellenzeilen für das Wochenraster.

    Jede Zeile: [Periode, Zeit, Mo, Di, …]. Folgezellen zeigen einen
    Rückverweis auf den Kopf statt einer Kopie der Daten.
    """
    rows: list[list[str]] = []
    for period in periods:
        cells = [str(period.index), period.label]
        for weekday in weekdays:
            ref = grid.get(weekday, period.index)
            if ref is None:
                cells.append("—")
            elif ref.is_head:
                cells.append(format_cell(ref.session, grid.capacity or None))
            else:
                cells.append(f"{CONTINUATION_MARK} P{ref.head_at[1]}")
        rows.append(cells)
    return rows


def render_week_table(grid: WeekGrid, title: str = "",
                      calendar: Optional[CalendarConfig] = None,
                      weekend: bool = True) -> Table:
    """Rich-Tabelle der Woche; Zeiten nach dem Montag der Woche."""
    monday = grid.monday or date.today()
    days = week_dates(monday)
    weekdays = range(1, 8) if weekend else range(1, 6)

    table = Table(title=title or None, box=box.ROUNDED, show_lines=True)
    table.add_column("P", justify="right", style="bold", width=2)
    table.add_column("Zeit", style="dim", width=11)
    for weekday in weekdays:
        day = days[weekday - 1]
        table.add_column(f"{WEEKDAY_NAMES[weekday - 1]} {day.strftime('%d.%m.')}",
                         min_width=14)

    for row in render_week_rows(grid, periods_for(monday, calendar), weekdays):
        table.add_row(*[
            f"[dim]{c}[/dim]" if c.startswith(CONTINUATION_MARK) else c
            for c in row
        ])
    return table
