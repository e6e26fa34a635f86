"""Stapelimport mit Vorabprüfung.

Ein Stapel wird erst übernommen, wenn die Vorabprüfung des Speichers mit
identischen Zeilen fehlerfrei war. Teilübernahmen gibt es nicht. Zeilen,
deren Dauer über das Tagesende reicht, werden vorher gekürzt wie jede
Einzelplatzierung.
"""

import logging
from datetime import date

from models.session import MAX_PERIOD
from store.base import BatchResult, BatchRow, SessionStore
from timetable.errors import ClampWarning, DryRunValidationError
from timetable.policy import clamp_duration

logger = logging.getLogger(__name__)


def clamp_rows(rows: list[BatchRow]) -> tuple[list[BatchRow], list[ClampWarning]]:
    """Kürzt die Dauer jeder Zeile auf das Tagesende.

    Zeilen mit fehlender oder ungültiger Periode/Dauer bleiben unverändert;
    die meldet die Vorabprüfung als Fehler.
    """
    result: list[BatchRow] = []
    warnings: list[ClampWarning] = []
    for i, row in enumerate(rows, 1):
        if row.period is not None and 1 <= row.period <= MAX_PERIOD and row.duration >= 1:
            duration, warning = clamp_duration(row.period, row.duration)
            if warning is not None:
                warning = warning.model_copy(update={"row": i})
                logger.warning(f"Zeile {i}: {warning.message}")
                warnings.append(warning)
                row = row.model_copy(update={"duration": duration})
        result.append(row)
    return result, warnings


def _dry_run(store: SessionStore, lab_id: int, week_anchor: date,
             rows: list[BatchRow]) -> BatchResult:
    result = store.dry_run_batch(lab_id, week_anchor, rows)
    logger.info(f"Vorabprüfung: {result.success} gültig, {result.failed} fehlerhaft")
    return result


def check_batch(store: SessionStore, lab_id: int, week_anchor: date,
                rows: list[BatchRow]) -> BatchResult:
    """Nur Vorabprüfung; speichert nichts."""
    rows, warnings = clamp_rows(rows)
    result = _dry_run(store, lab_id, week_anchor, rows)
    result.warnings = warnings
    return result


def import_batch(store: SessionStore, lab_id: int, week_anchor: date,
                 rows: list[BatchRow]) -> BatchResult:
    """Vorabprüfung, dann Übernahme.

    Raises:
        DryRunValidationError: mindestens eine Zeile ist fehlerhaft; es
            wurde nichts gespeichert.
    """
    if not rows:
        logger.info("Leerer Stapel – nichts zu importieren")
        return BatchResult()
    rows, warnings = clamp_rows(rows)
    check = _dry_run(store, lab_id, week_anchor, rows)
    if check.failed > 0 or check.errors:
        raise DryRunValidationError(check.errors)

    result = store.commit_batch(lab_id, week_anchor, rows)
    result.warnings = warnings
    logger.info(f"Import: {result.inserted} neu, {result.updated} aktualisiert, "
                f"{result.failed} fehlgeschlagen")
    return result
