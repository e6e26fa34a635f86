"""Gemeinsame Hilfsfunktionen für Terminal- und Excel-Export."""

import hashlib
from datetime import date
from typing import Optional

from models.session import Session

# ─── Farbpalette (RRGGBB, ohne #) ─────────────────────────────────────────────

COLORS: dict[str, str] = {
    "header":       "4472C4",
    "free":         "F5F5F5",
    "continuation": "EAEAEA",
    "full":         "FFCCCC",
}

# Kursfarben, stabil über den Kursnamen gewählt
COURSE_PALETTE = ["B3D4FF", "FFF2B3", "B3FFB3", "FFB3E6", "FFD4B3", "D4B3FF", "B3FFF2"]

CONTINUATION_MARK = "↑"


def today_str() -> str:
    """Gibt das heutige Datum als DD.MM.YYYY zurück."""
    return date.today().strftime("%d.%m.%Y")


def course_color(course: str) -> str:
    """Feste Palettenfarbe je Kursname (unabhängig von der Reihenfolge)."""
    digest = hashlib.md5(course.encode("utf-8")).hexdigest()
    return COURSE_PALETTE[int(digest, 16) % len(COURSE_PALETTE)]


def format_span(session: Session) -> str:
    """"P3" oder "P3-4"."""
    if session.duration == 1:
        return f"P{session.start_period}"
    return f"P{session.start_period}-{session.end_period}"


def format_occupancy(session: Session, capacity: Optional[int] = None) -> str:
    """"18/40" (Teilnehmer/Kapazität)."""
    cap = capacity if capacity is not None else session.capacity
    return f"{session.enrolled}/{cap}"


def format_cell(session: Session, capacity: Optional[int] = None) -> str:
    """Zelleninhalt eines Kopfes: Kurs, Lehrkraft, Belegung."""
    lines = [session.course, session.teacher]
    if session.class_names:
        lines.append(session.class_names)
    lines.append(f"{format_occupancy(session, capacity)} · {format_span(session)}")
    return "\n".join(lines)
