"""Laborplan — Haupt-CLI.

Verwendung:
  python main.py init                              Standardkonfiguration anlegen
  python main.py config show                       Konfiguration anzeigen
  python main.py labs                              Labore auflisten
  python main.py week W116 [--date 2025-03-05]     Wochenraster anzeigen
  python main.py add W116 --date ... --period 3 --course ... --teacher ...
  python main.py edit W116 --date ... --period 4 --enrolled 20
  python main.py move W116 --date ... --period 1 --to-weekday 3 --to-period 7
  python main.py delete W116 --date ... --period 2
  python main.py import <datei.xlsx> [--dry-run]   Stapelimport mit Vorabprüfung
  python main.py template                          Importvorlage erzeugen
  python main.py export --start ... --end ...      Excel-Export
  python main.py validate W116 [--date ...]        Woche auf Inkonsistenzen prüfen
"""

import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from config.defaults import default_app_config
from config.manager import ConfigManager
from config.schema import AppConfig
from models.lab import Lab
from models.session import DesiredEdit
from store import InMemoryStore, SessionStore, open_store
from timetable.calendar import date_for_weekday, monday_of, week_no_of
from timetable.errors import (
    ConflictError,
    DryRunValidationError,
    InconsistentEditError,
    MoveInconsistencyError,
    StoreError,
)
from timetable.reconciler import ReconcileResult, SessionReconciler

console = Console()
DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])


# ─── Hilfsfunktionen ──────────────────────────────────────────────────────────

def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config_or_abort(ctx: click.Context) -> AppConfig:
    """Lädt die Konfiguration oder bricht mit Fehlermeldung ab."""
    mgr = ConfigManager(ctx.obj.get("config_path"))
    if mgr.first_run_check():
        console.print(
            "[red]Keine Konfiguration gefunden.[/red]\n"
            "Führen Sie zunächst [bold]python main.py init[/bold] aus."
        )
        sys.exit(1)
    try:
        config = mgr.load()
    except ValueError as e:
        console.print(f"[red bold]Konfiguration ungültig:[/red bold]\n{e}")
        sys.exit(1)
    _setup_logging("DEBUG" if ctx.obj.get("verbose") else config.logging.level)
    return config


def _open_store_or_abort(config: AppConfig) -> SessionStore:
    try:
        return open_store(config)
    except (StoreError, FileNotFoundError, ValueError) as e:
        console.print(f"[red bold]Speicher nicht verfügbar:[/red bold] {e}")
        sys.exit(1)


def _persist(store: SessionStore, config: AppConfig) -> None:
    """Lokaler Speicher: Änderungen in die JSON-Datei schreiben."""
    if isinstance(store, InMemoryStore):
        store.save_json(Path(config.store.data_path))


def _resolve_lab(store: SessionStore, ref: str) -> Lab:
    """Labor über Name oder id."""
    try:
        labs = store.list_labs()
    except StoreError as e:
        console.print(f"[red]Labore nicht abrufbar:[/red] {e}")
        sys.exit(1)
    lab = next((l for l in labs if l.name == ref or str(l.id) == ref), None)
    if lab is None:
        console.print(f"[red]Labor '{ref}' unbekannt.[/red] "
                      f"Verfügbar: {', '.join(l.name for l in labs) or '–'}")
        sys.exit(1)
    return lab


def _as_date(value: Optional[datetime]) -> date:
    return value.date() if value is not None else date.today()


def _print_week(reconciler: SessionReconciler, lab: Lab, config: AppConfig,
                workdays: bool = False) -> None:
    from export.tui_renderer import render_week_table

    monday = reconciler.monday
    title = f"Labor {lab.name} (Kapazität {lab.capacity}) – Woche ab {monday.strftime('%d.%m.%Y')}"
    if config.semester_start_monday:
        title += f" · Semesterwoche {week_no_of(monday, config.semester_start_monday)}"
    console.print(render_week_table(reconciler.grid, title=title,
                                    calendar=config.calendar, weekend=not workdays))


def _print_result(result: ReconcileResult) -> None:
    for w in result.warnings:
        console.print(f"[yellow]⚠ {w.message}[/yellow]")
    verb = {"create": "angelegt", "update": "aktualisiert",
            "move": "verschoben", "delete": "gelöscht"}[result.kind]
    if result.session is not None:
        console.print(f"[green]✓[/green] Sitzung {verb}: {result.session}")
    else:
        console.print(f"[green]✓[/green] Sitzung {verb}.")


def _run_edit(reconciler: SessionReconciler, current, desired: DesiredEdit,
              yes: bool, config: AppConfig) -> ReconcileResult:
    """Abgleich mit Bestätigungsdialog bei Konflikten."""
    try:
        try:
            return reconciler.reconcile(current, desired)
        except ConflictError as e:
            console.print(f"[yellow]Konflikt:[/yellow] {e}")
            if not (yes or click.confirm("Belegende Sitzung überschreiben?", default=False)):
                console.print("[dim]Abgebrochen – nichts geändert.[/dim]")
                sys.exit(1)
            return reconciler.reconcile(current, desired, overwrite=True)
    except InconsistentEditError as e:
        snap = e.snapshot
        lines = [
            f"{e}",
            "",
            "Bitte von Hand neu anlegen:",
            f"  Kurs: {snap.course} | Lehrkraft: {snap.teacher}",
            f"  Tag {snap.weekday}, Periode {snap.start_period}, Dauer {snap.duration}",
            f"  Inhalt: {snap.content or '–'} | Klassen: {snap.class_names or '–'} "
            f"| Teilnehmer: {snap.enrolled if snap.enrolled is not None else '–'}",
        ]
        if e.overwritten:
            lines += ["", "Überschrieben und gelöscht:"]
            lines += [f"  {s}" for s in e.overwritten]
        if e.warnings:
            lines += ["", "Außerdem (Woche prüfen, ggf. Reste löschen):"]
            lines += [f"  {w.message}" for w in e.warnings]
        title = ("Verschieben unvollständig" if isinstance(e, MoveInconsistencyError)
                 else "Überschreiben unvollständig")
        # Löschungen sind geschehen; lokalen Stand trotzdem sichern
        _persist(reconciler.store, config)
        console.print(Panel("\n".join(lines), title=title, border_style="red"))
        sys.exit(1)
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)


def _print_clamped(result) -> None:
    for w in result.warnings:
        console.print(f"[yellow]⚠ Zeile {w.row}: {w.message}[/yellow]")


def _cell_reconciler(ctx, lab_ref: str, day: date):
    config = _load_config_or_abort(ctx)
    store = _open_store_or_abort(config)
    lab = _resolve_lab(store, lab_ref)
    return config, store, lab, SessionReconciler(store, lab.id, monday_of(day))


def _resolve_or_abort(reconciler: SessionReconciler, weekday: int, period: int):
    try:
        resolved = reconciler.resolve_cell(weekday, period)
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)
    if resolved is None:
        console.print(f"[red]Keine Sitzung an Tag {weekday} Periode {period}.[/red]")
        sys.exit(1)
    if resolved.is_continuation:
        console.print(f"[dim]Folgezelle → Kopf an Periode {resolved.period}[/dim]")
    return resolved


# ─── INIT / CONFIG ────────────────────────────────────────────────────────────

@click.command("init")
@click.option("--force", is_flag=True, default=False, help="Bestehende Konfiguration überschreiben.")
@click.pass_context
def cmd_init(ctx, force: bool):
    """Legt die Standardkonfiguration an (Labore, Klassen, Periodenzeiten)."""
    mgr = ConfigManager(ctx.obj.get("config_path"))
    if not mgr.first_run_check() and not force:
        console.print(
            f"[yellow]Eine Konfiguration existiert bereits:[/yellow] {mgr.path}\n"
            "Mit [bold]--force[/bold] überschreiben."
        )
        return
    mgr.save(default_app_config())
    console.print(f"[bold green]✓ Konfiguration angelegt:[/bold green] {mgr.path}")


@click.group("config")
def cmd_config():
    """Konfiguration anzeigen."""


@cmd_config.command("show")
@click.pass_context
def config_show(ctx):
    """Zeigt die aktuelle Konfiguration an."""
    config = _load_config_or_abort(ctx)

    console.print(Panel(
        f"[bold]{config.title}[/bold]  |  Speicher: {config.store.backend.value}"
        + (f" ({config.store.base_url})" if config.store.backend.value == "rest"
           else f" ({config.store.data_path})"),
        title="Laborplan-Konfiguration",
        border_style="cyan",
    ))

    cal = config.calendar
    table = Table(title="Periodenzeiten", box=box.ROUNDED)
    table.add_column("P")
    table.add_column("Winter")
    table.add_column("Sommer")
    winter = {p.index: p for p in cal.morning + cal.winter_afternoon}
    summer = {p.index: p for p in cal.morning + cal.summer_afternoon}
    for idx in sorted(winter):
        table.add_row(str(idx), f"{winter[idx].start}-{winter[idx].end}",
                      f"{summer[idx].start}-{summer[idx].end}")
    console.print(table)
    console.print(f"Sommerzeit: {cal.season.summer_start} bis {cal.season.summer_end} (inklusive)")

    table2 = Table(title="Klassen", box=box.ROUNDED)
    table2.add_column("Klasse")
    table2.add_column("Schüler", justify="right")
    for c in config.classes:
        table2.add_row(c.name, str(c.student_count))
    console.print(table2)


# ─── LABS / WEEK ──────────────────────────────────────────────────────────────

@click.command("labs")
@click.pass_context
def cmd_labs(ctx):
    """Listet die Labore des Speichers auf."""
    config = _load_config_or_abort(ctx)
    store = _open_store_or_abort(config)
    try:
        labs = store.list_labs()
    except StoreError as e:
        console.print(f"[red]Labore nicht abrufbar:[/red] {e}")
        sys.exit(1)
    table = Table(title="Labore", box=box.ROUNDED)
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Kapazität", justify="right")
    for lab in labs:
        table.add_row(str(lab.id), lab.name, str(lab.capacity))
    console.print(table)


@click.command("week")
@click.argument("lab")
@click.option("--date", "day", type=DATE_TYPE, default=None, help="Tag der Woche (Standard: heute).")
@click.option("--workdays", is_flag=True, default=False, help="Nur Montag bis Freitag.")
@click.pass_context
def cmd_week(ctx, lab: str, day, workdays: bool):
    """Zeigt das Wochenraster eines Labors."""
    config, store, lab_obj, reconciler = _cell_reconciler(ctx, lab, _as_date(day))
    try:
        reconciler.refresh()
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)
    _print_week(reconciler, lab_obj, config, workdays)


# ─── ADD / EDIT / MOVE / DELETE ───────────────────────────────────────────────

def _session_options(f):
    f = click.option("--classes", "class_names", default=None,
                     help="Klassen, getrennt durch , ; 、")(f)
    f = click.option("--enrolled", type=click.IntRange(min=0), default=None,
                     help="Teilnehmerzahl (sonst aus den Klassen).")(f)
    f = click.option("--content", default=None, help="Versuchsinhalt.")(f)
    return f


@click.command("add")
@click.argument("lab")
@click.option("--date", "day", type=DATE_TYPE, required=True)
@click.option("--period", type=click.IntRange(1, 8), required=True)
@click.option("--duration", type=click.IntRange(min=1), default=2, show_default=True)
@click.option("--course", required=True)
@click.option("--teacher", required=True)
@_session_options
@click.option("--yes", "-y", is_flag=True, default=False, help="Konflikte ohne Rückfrage überschreiben.")
@click.pass_context
def cmd_add(ctx, lab, day, period, duration, course, teacher, content, enrolled,
            class_names, yes):
    """Legt eine Sitzung an (Dauer wird auf das Tagesende gekürzt)."""
    day = _as_date(day)
    config, store, lab_obj, reconciler = _cell_reconciler(ctx, lab, day)
    desired = DesiredEdit(
        weekday=day.isoweekday(), start_period=period, duration=duration,
        course=course, teacher=teacher, content=content, enrolled=enrolled,
        class_names=class_names,
    )
    result = _run_edit(reconciler, None, desired, yes, config)
    _persist(store, config)
    _print_result(result)
    _print_week(reconciler, lab_obj, config)


@click.command("edit")
@click.argument("lab")
@click.option("--date", "day", type=DATE_TYPE, required=True)
@click.option("--period", type=click.IntRange(1, 8), required=True,
              help="Beliebige belegte Periode der Sitzung.")
@click.option("--duration", type=click.IntRange(min=1), default=None)
@click.option("--course", default=None)
@click.option("--teacher", default=None)
@_session_options
@click.option("--yes", "-y", is_flag=True, default=False)
@click.pass_context
def cmd_edit(ctx, lab, day, period, duration, course, teacher, content, enrolled,
             class_names, yes):
    """Bearbeitet eine Sitzung an Ort und Stelle."""
    day = _as_date(day)
    config, store, lab_obj, reconciler = _cell_reconciler(ctx, lab, day)
    head = _resolve_or_abort(reconciler, day.isoweekday(), period)
    if class_names and enrolled is None:
        # neue Klassen ohne Zahl: Teilnehmer neu aus den Klassen ableiten
        enrolled = 0
    desired = DesiredEdit.from_session(
        head.session, duration=duration, course=course, teacher=teacher,
        content=content, enrolled=enrolled, class_names=class_names,
    )
    result = _run_edit(reconciler, head.session, desired, yes, config)
    _persist(store, config)
    _print_result(result)
    _print_week(reconciler, lab_obj, config)


@click.command("move")
@click.argument("lab")
@click.option("--date", "day", type=DATE_TYPE, required=True)
@click.option("--period", type=click.IntRange(1, 8), required=True)
@click.option("--to-weekday", type=click.IntRange(1, 7), default=None,
              help="Neuer Wochentag (1=Mo .. 7=So) in derselben Woche.")
@click.option("--to-period", type=click.IntRange(1, 8), default=None)
@click.option("--duration", type=click.IntRange(min=1), default=None)
@click.option("--yes", "-y", is_flag=True, default=False)
@click.pass_context
def cmd_move(ctx, lab, day, period, to_weekday, to_period, duration, yes):
    """Verschiebt eine Sitzung (Löschen + Neuanlegen, die id ändert sich)."""
    day = _as_date(day)
    config, store, lab_obj, reconciler = _cell_reconciler(ctx, lab, day)
    head = _resolve_or_abort(reconciler, day.isoweekday(), period)
    if to_weekday is None and to_period is None:
        raise click.UsageError("--to-weekday und/oder --to-period angeben.")
    desired = DesiredEdit.from_session(
        head.session, weekday=to_weekday, start_period=to_period, duration=duration)
    target = date_for_weekday(reconciler.monday, desired.weekday)
    console.print(f"[dim]Ziel: {target.isoformat()} Periode {desired.start_period}[/dim]")
    result = _run_edit(reconciler, head.session, desired, yes, config)
    _persist(store, config)
    _print_result(result)
    _print_week(reconciler, lab_obj, config)


@click.command("delete")
@click.argument("lab")
@click.option("--date", "day", type=DATE_TYPE, required=True)
@click.option("--period", type=click.IntRange(1, 8), required=True)
@click.option("--yes", "-y", is_flag=True, default=False)
@click.pass_context
def cmd_delete(ctx, lab, day, period, yes):
    """Löscht eine Sitzung mit allen Perioden."""
    day = _as_date(day)
    config, store, lab_obj, reconciler = _cell_reconciler(ctx, lab, day)
    head = _resolve_or_abort(reconciler, day.isoweekday(), period)
    if not (yes or click.confirm(f"'{head.session}' löschen?", default=False)):
        console.print("[dim]Abgebrochen.[/dim]")
        return
    try:
        result = reconciler.delete(head.session)
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)
    _persist(store, config)
    _print_result(result)
    _print_week(reconciler, lab_obj, config)


# ─── IMPORT / TEMPLATE ────────────────────────────────────────────────────────

@click.command("import")
@click.argument("datei", type=click.Path(exists=True, path_type=Path))
@click.option("--lab", default=None, help="Labor für Zeilen ohne Laborspalte.")
@click.option("--dry-run", is_flag=True, default=False, help="Nur prüfen, nichts speichern.")
@click.pass_context
def cmd_import(ctx, datei: Path, lab: Optional[str], dry_run: bool):
    """Importiert Sitzungen aus Excel/CSV (mit Vorabprüfung)."""
    from data.session_import import SessionImportError, load_batch
    from timetable.batch import check_batch, import_batch

    config = _load_config_or_abort(ctx)
    store = _open_store_or_abort(config)
    lab_obj = _resolve_lab(store, lab) if lab else None

    console.print(f"[bold]Importiere:[/bold] {datei}")
    try:
        rows = load_batch(datei, default_lab_id=lab_obj.id if lab_obj else None)
    except SessionImportError as e:
        console.print(f"[red bold]Import fehlgeschlagen:[/red bold]\n{e}")
        sys.exit(1)
    if not rows:
        console.print("[yellow]Keine Datenzeilen gefunden.[/yellow]")
        return

    # Batch-Endpunkt ist an ein Labor gebunden; Zeilen tragen ihr eigenes
    lab_id = lab_obj.id if lab_obj else (rows[0].lab_id or store.list_labs()[0].id)
    anchor = date.today()
    try:
        if dry_run:
            result = check_batch(store, lab_id, anchor, rows)
            _print_clamped(result)
            if result.errors:
                raise DryRunValidationError(result.errors)
            console.print(f"[green]✓[/green] Vorabprüfung ok: {result.success} Zeile(n) gültig.")
            return
        result = import_batch(store, lab_id, anchor, rows)
    except DryRunValidationError as e:
        table = Table(title=f"{len(e.errors)} fehlerhafte Zeile(n)", box=box.ROUNDED)
        table.add_column("Zeile", justify="right")
        table.add_column("Feld")
        table.add_column("Fehler")
        for err in e.errors:
            table.add_row(str(err.index), err.field or "", err.message)
        console.print(table)
        console.print("[red]Nichts übernommen.[/red] Zeilen korrigieren oder entfernen.")
        sys.exit(1)
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)

    _print_clamped(result)
    _persist(store, config)
    console.print(f"[green]✓[/green] Import: {result.inserted} neu, "
                  f"{result.updated} aktualisiert, {result.failed} fehlgeschlagen.")
    for err in result.errors:
        console.print(f"[yellow]⚠ {err.describe()}[/yellow]")


@click.command("template")
@click.option("--output", "-o", default="output/laborplan_vorlage.xlsx",
              help="Ausgabepfad für die Excel-Vorlage.")
def cmd_template(output: str):
    """Erzeugt eine leere Excel-Importvorlage."""
    from data.session_import import generate_template

    out_path = Path(output)
    generate_template(out_path)
    console.print(f"[green]✓[/green] Vorlage gespeichert: {out_path}")
    console.print("Pflichtspalten sind mit [bold]*[/bold] markiert; Dauer Standard 2.")


# ─── EXPORT / VALIDATE ────────────────────────────────────────────────────────

@click.command("export")
@click.option("--start", type=DATE_TYPE, required=True)
@click.option("--end", type=DATE_TYPE, required=True)
@click.option("--lab", "lab_refs", multiple=True, help="Nur diese Labore (mehrfach möglich).")
@click.option("--output", "-o", default="output/laborplan.xlsx")
@click.pass_context
def cmd_export(ctx, start, end, lab_refs, output: str):
    """Exportiert Sitzungen eines Zeitraums als Excel."""
    from export.excel_export import WeekExcelExporter

    config = _load_config_or_abort(ctx)
    store = _open_store_or_abort(config)
    labs = [_resolve_lab(store, r) for r in lab_refs] if lab_refs else store.list_labs()
    try:
        exporter = WeekExcelExporter(store, labs, start.date(), end.date(),
                                     calendar=config.calendar, title=config.title)
        total = exporter.export(Path(output))
    except ValueError as e:
        raise click.BadParameter(str(e))
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)
    console.print(f"[green]✓[/green] {total} Sitzung(en) exportiert: {output}")


@click.command("validate")
@click.argument("lab")
@click.option("--date", "day", type=DATE_TYPE, default=None)
@click.pass_context
def cmd_validate(ctx, lab: str, day):
    """Prüft eine Woche auf Überschneidungen und liegengebliebene Fragmente."""
    from analysis.week_validator import WeekValidator

    config = _load_config_or_abort(ctx)
    store = _open_store_or_abort(config)
    lab_obj = _resolve_lab(store, lab)
    try:
        week = store.fetch_week(lab_obj.id, monday_of(_as_date(day)))
    except StoreError as e:
        console.print(f"[red bold]Speicherfehler:[/red bold] {e}")
        sys.exit(1)
    report = WeekValidator().validate(week)
    report.print_rich(console)
    sys.exit(0 if report.is_valid else 1)


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Pfad zur Konfigurationsdatei (Standard: config/laborplan.yaml).")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug-Logging.")
@click.pass_context
def cli(ctx, config_path: Optional[Path], verbose: bool):
    """Laborplan: Wochenbelegung der Labore verwalten.

    Starten Sie mit: python main.py init
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def main():
    """Einstiegspunkt."""
    if len(sys.argv) == 1 and ConfigManager().first_run_check():
        console.print(Panel(
            "[bold]Willkommen bei Laborplan![/bold]\n\n"
            "Keine Konfiguration gefunden.\n"
            "Legen Sie sie an mit [bold]python main.py init[/bold].",
            border_style="cyan",
        ))
    cli(obj={})


# Befehle registrieren
cli.add_command(cmd_init)
cli.add_command(cmd_config)
cli.add_command(cmd_labs)
cli.add_command(cmd_week)
cli.add_command(cmd_add)
cli.add_command(cmd_edit)
cli.add_command(cmd_move)
cli.add_command(cmd_delete)
cli.add_command(cmd_import)
cli.add_command(cmd_template)
cli.add_command(cmd_export)
cli.add_command(cmd_validate)


if __name__ == "__main__":
    main()
