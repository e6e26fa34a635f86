"""Export-Modul: Rich-Terminalansicht und Excel (openpyxl) für den Laborplan."""

from export.excel_export import WeekExcelExporter
from export.tui_renderer import render_week_rows, render_week_table

__all__ = ["WeekExcelExporter", "render_week_rows", "render_week_table"]
