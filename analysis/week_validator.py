"""Konsistenzprüfung einer geladenen Laborwoche.

Sicherheitsnetz nach Teilfehlern des Abgleichs: findet Überschneidungen,
liegengebliebene Fragmente und Abweichungen zwischen Kopf und Fragmenten.
"""

from typing import Literal, Optional

from pydantic import BaseModel
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from models.session import Session
from models.week import WeekSchedule
from timetable.calendar import WEEKDAY_NAMES


class ValidationViolation(BaseModel):
    """Eine einzelne Auffälligkeit."""

    severity: Literal["error", "warning"]
    check: str           # z.B. "orphan_fragment"
    description: str
    location: str        # "Mo P3"


class ValidationReport(BaseModel):
    violations: list[ValidationViolation]
    is_valid: bool       # True wenn keine Errors (Warnings ok)

    def by_check(self, check: str) -> list[ValidationViolation]:
        return [v for v in self.violations if v.check == check]

    def print_rich(self, console: Optional[Console] = None) -> None:
        """Gibt den Report formatiert über Rich aus."""
        console = console or Console()
        errors = [v for v in self.violations if v.severity == "error"]
        warnings = [v for v in self.violations if v.severity == "warning"]

        status = (
            "[bold green]✓ KONSISTENT[/bold green]"
            if self.is_valid
            else "[bold red]✗ INKONSISTENZEN GEFUNDEN[/bold red]"
        )
        lines = [status, f"Fehler: {len(errors)} | Warnungen: {len(warnings)}"]
        console.print(Panel("\n".join(lines), title="Wochen-Prüfung", border_style="cyan"))

        if not self.violations:
            console.print("[dim]Keine Auffälligkeiten gefunden.[/dim]")
            return

        table = Table(box=box.ROUNDED, show_lines=True)
        table.add_column("Typ", width=8)
        table.add_column("Prüfung", width=18)
        table.add_column("Ort", width=8)
        table.add_column("Beschreibung")
        for v in self.violations:
            color = "red" if v.severity == "error" else "yellow"
            table.add_row(f"[{color}]{v.severity.upper()}[/{color}]",
                          v.check, v.location, v.description)
        console.print(table)


def _loc(weekday: int, period: int) -> str:
    return f"{WEEKDAY_NAMES[weekday - 1]} P{period}"


def _same_payload(a: Session, b: Session) -> bool:
    return (a.course, a.teacher, a.content, a.enrolled, a.class_names, a.duration) == \
           (b.course, b.teacher, b.content, b.enrolled, b.class_names, b.duration)


class WeekValidator:
    """Prüft eine WeekSchedule, wie sie fetch_week liefert."""

    def validate(self, week: WeekSchedule) -> ValidationReport:
        violations: list[ValidationViolation] = []
        for day in week.days:
            heads = {
                slot.period: slot.session for slot in day.slots
                if slot.session is not None and not slot.is_fragment
            }
            violations += self._check_overlap(day.weekday, heads)
            violations += self._check_fragments(day, heads)
            violations += self._check_capacity(day.weekday, heads, week.lab.capacity)

        is_valid = not any(v.severity == "error" for v in violations)
        return ValidationReport(violations=violations, is_valid=is_valid)

    def _check_overlap(self, weekday: int, heads: dict[int, Session]) -> list[ValidationViolation]:
        violations = []
        ordered = sorted(heads.items())
        for i, (p, s) in enumerate(ordered):
            end = p + s.duration - 1
            for q, other in ordered[i + 1:]:
                if q > end:
                    break
                violations.append(ValidationViolation(
                    severity="error", check="overlap", location=_loc(weekday, q),
                    description=f"'{other.course}' (ab P{q}) überschneidet "
                                f"'{s.course}' (P{p}-{end})",
                ))
        return violations

    def _check_fragments(self, day, heads: dict[int, Session]) -> list[ValidationViolation]:
        violations = []
        for slot in day.slots:
            if not slot.is_fragment:
                continue
            frag = slot.session
            head = heads.get(frag.start_period)
            if head is None or not head.covers(slot.period):
                violations.append(ValidationViolation(
                    severity="error", check="orphan_fragment",
                    location=_loc(day.weekday, slot.period),
                    description=f"Fragment id={frag.id} ('{frag.course}') ohne passenden Kopf "
                                f"an Periode {frag.start_period}",
                ))
            elif not _same_payload(head, frag):
                violations.append(ValidationViolation(
                    severity="warning", check="fragment_mismatch",
                    location=_loc(day.weekday, slot.period),
                    description=f"Fragment id={frag.id} weicht vom Kopf id={head.id} ab",
                ))
        return violations

    def _check_capacity(self, weekday: int, heads: dict[int, Session],
                        capacity: int) -> list[ValidationViolation]:
        return [
            ValidationViolation(
                severity="warning", check="over_capacity", location=_loc(weekday, p),
                description=f"'{s.course}': {s.enrolled} Teilnehmer bei Kapazität {capacity}",
            )
            for p, s in sorted(heads.items())
            if capacity and s.enrolled >= capacity
        ]
