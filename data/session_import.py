"""Import von Laborsitzungen aus Excel/CSV und Vorlagen-Generator.

Import:  .xlsx (erstes Blatt, Kopfzeile 1) oder .csv → list[BatchRow]
Vorlage: leere Excel-Datei mit Pflichtspalten (mit * markiert)

Spaltennamen werden über Aliase normalisiert (deutsch, englisch,
chinesisch; Groß/Klein egal, ein abschließendes * wird ignoriert).
"""

import csv
import logging
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.datetime import from_excel

from store.base import BatchRow

logger = logging.getLogger(__name__)


class SessionImportError(Exception):
    """Datei nicht lesbar oder ohne verwertbare Kopfzeile."""


# ─── Spalten-Aliase ───────────────────────────────────────────────────────────

_ALIASES: dict[str, list[str]] = {
    "date":        ["datum", "date", "日期", "时间", "上课日期"],
    "period":      ["periode", "stunde", "period", "节次", "节", "第几节"],
    "course":      ["kurs", "course", "课程", "课程名称", "科目"],
    "teacher":     ["lehrkraft", "lehrer", "teacher", "教师", "讲师"],
    "content":     ["inhalt", "content", "内容", "实验内容"],
    "class_names": ["klassen", "klasse", "classnames", "classes", "上课班级",
                    "班级列表", "班级信息", "参与班级"],
    "enrolled":    ["teilnehmer", "enrolled", "planned", "报课人数", "报名人数", "计划人数"],
    "duration":    ["dauer", "duration", "课时", "课时数", "持续课时"],
    "lab":         ["labor", "lab", "教室", "实验室"],
    "lab_id":      ["labid", "labor-id", "labor_id", "教室id", "实验室id"],
}

_HEADER_MAP = {alias: key for key, aliases in _ALIASES.items() for alias in aliases}

# Vorlage: (Spaltenname, Pflicht, Breite)
TEMPLATE_COLUMNS = [
    ("Datum", True, 13),
    ("Periode", True, 9),
    ("Kurs", True, 24),
    ("Lehrkraft", True, 18),
    ("Inhalt", False, 28),
    ("Klassen", False, 28),
    ("Teilnehmer", False, 11),
    ("Dauer", False, 8),
    ("Labor", True, 12),
]

_DATE_SEP = re.compile(r"[./年月]")
_LOOSE_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def normalize_header(header: Any) -> Optional[str]:
    """"Datum*" → "date"; unbekannte Spalten → None."""
    if header is None:
        return None
    key = str(header).strip().lower()
    if key in _HEADER_MAP:
        return _HEADER_MAP[key]
    if key.endswith("*"):
        return _HEADER_MAP.get(key[:-1].strip())
    return None


def normalize_date(value: Any) -> Optional[str]:
    """Excel-Datum, Seriennummer oder Text ("2025/3/4", "2025.03.04") → "2025-03-04".

    Nicht erkennbare Werte werden unverändert als Text zurückgegeben; die
    Prüfung des Speichers meldet sie dann als Zeilenfehler.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return from_excel(value).date().isoformat()
    text = _DATE_SEP.sub("-", str(value).strip()).replace("日", "")
    m = _LOOSE_DATE.match(text)
    if m:
        return f"{m.group(1)}-{int(m.group(2)):02d}-{int(m.group(3)):02d}"
    return str(value).strip()


def _to_int(value: Any) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ─── Lesen ────────────────────────────────────────────────────────────────────

def read_rows(path: Path) -> list[dict[str, Any]]:
    """Liest eine Datei in Dicts mit normalisierten Schlüsseln.

    Leere Zeilen werden übersprungen, unbekannte Spalten ignoriert.
    """
    path = Path(path)
    if not path.exists():
        raise SessionImportError(f"Datei nicht gefunden: {path}")
    suffix = path.suffix.lower()
    if suffix == ".csv":
        raw_rows = _read_csv(path)
    elif suffix in (".xlsx", ".xlsm"):
        raw_rows = _read_xlsx(path)
    else:
        raise SessionImportError(f"Nicht unterstütztes Format: {suffix} (erwartet .xlsx oder .csv)")

    if not raw_rows:
        return []
    keys = [normalize_header(h) for h in raw_rows[0]]
    if "date" not in keys or "period" not in keys:
        raise SessionImportError(
            f"{path.name}: Kopfzeile ohne Datum/Periode – gefunden: "
            f"{', '.join(str(h) for h in raw_rows[0] if h is not None)}")
    ignored = [str(h) for h, k in zip(raw_rows[0], keys) if k is None and h not in (None, "")]
    if ignored:
        logger.debug(f"Ignorierte Spalten: {', '.join(ignored)}")

    result = []
    for row in raw_rows[1:]:
        if all(v is None or str(v).strip() == "" for v in row):
            continue
        result.append({k: v for k, v in zip(keys, row) if k is not None})
    return result


def _read_xlsx(path: Path) -> list[tuple]:
    try:
        wb = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
    except Exception as e:
        raise SessionImportError(f"Fehler beim Öffnen der Excel-Datei: {e}") from e
    try:
        ws = wb.worksheets[0]
        return [tuple(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _read_csv(path: Path) -> list[tuple]:
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            return [tuple(r) for r in csv.reader(f)]
    except UnicodeDecodeError as e:
        raise SessionImportError(f"{path.name}: keine UTF-8-Datei ({e})") from e


def rows_to_batch(rows: list[dict[str, Any]], default_lab_id: Optional[int] = None) -> list[BatchRow]:
    """Normalisierte Dicts → BatchRow.

    Ohne Laborspalte gilt `default_lab_id`. Fehlt die Teilnehmerzahl, bleibt
    sie None (das Backend leitet sie aus den Klassen ab). Dauer: Standard 2.
    """
    batch = []
    for row in rows:
        lab_name = _to_text(row.get("lab"))
        lab_id = _to_int(row.get("lab_id"))
        # Reine Zahl in der Laborspalte = Labor-id
        if lab_id is None and lab_name and lab_name.isdigit():
            lab_id, lab_name = int(lab_name), None
        if lab_id is None and lab_name is None:
            lab_id = default_lab_id
        batch.append(BatchRow(
            date=normalize_date(row.get("date")),
            period=_to_int(row.get("period")),
            course=_to_text(row.get("course")),
            teacher=_to_text(row.get("teacher")),
            content=_to_text(row.get("content")),
            class_names=_to_text(row.get("class_names")),
            enrolled=_to_int(row.get("enrolled")),
            duration=_to_int(row.get("duration")) or 2,
            lab_id=lab_id,
            lab=lab_name,
        ))
    return batch


def load_batch(path: Path, default_lab_id: Optional[int] = None) -> list[BatchRow]:
    """read_rows + rows_to_batch."""
    rows = rows_to_batch(read_rows(path), default_lab_id=default_lab_id)
    logger.info(f"{Path(path).name}: {len(rows)} Zeile(n) gelesen")
    return rows


# ─── Vorlage ──────────────────────────────────────────────────────────────────

def generate_template(path: Path) -> None:
    """Erzeugt eine leere Importvorlage mit Beispielzeile.

    Pflichtspalten sind mit * markiert; der Import ignoriert das *.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Sitzungen"

    hdr_font = Font(bold=True, color="FFFFFF", size=11)
    hdr_fill = PatternFill("solid", fgColor="2E6DA4")
    ex_font = Font(italic=True, color="888888")

    for col, (name, required, width) in enumerate(TEMPLATE_COLUMNS, 1):
        cell = ws.cell(row=1, column=col, value=f"{name}*" if required else name)
        cell.font = hdr_font
        cell.fill = hdr_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
        ws.column_dimensions[get_column_letter(col)].width = width

    example = ["2025-03-03", 1, "Digitaltechnik", "Dr. Weber", "Versuch 1: Gatter",
               "Informatik 1, Informatik 2", "", 2, "W116"]
    for col, value in enumerate(example, 1):
        ws.cell(row=2, column=col, value=value).font = ex_font

    ws.freeze_panes = "A2"
    wb.save(str(path))
    logger.info(f"Vorlage geschrieben: {path}")
