"""Abgleich einer Benutzeränderung mit dem Sitzungsspeicher.

Der Speicher kennt nur unabhängige create/update/delete-Aufrufe, keine
Transaktionen. Deshalb zerfällt jede Änderung in eine geordnete Folge von
Einzelaufrufen:

  Anlegen      create(Kopf)                       → Woche neu laden
  Bearbeiten   update je belegter Periode         → Woche neu laden
  Verschieben  delete je alter Periode → Barriere (neu laden)
               → ein create am Ziel               → Woche neu laden
  Löschen      delete je belegter Periode         → Woche neu laden

`plan_edit` entscheidet rein aus dem Raster, `SessionReconciler` führt aus.
Einzelne delete/update-Fehler werden als Warnung gesammelt; scheitert nach
gelöschten Perioden das create eines Verschiebens, gibt es
MoveInconsistencyError; scheitert nach einem bestätigten Überschreiben das
create oder das Kopf-update, OverwriteInconsistencyError.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Literal, Optional, Union

from models.session import DesiredEdit, Session, SessionPayload
from store.base import SessionStore
from timetable.calendar import monday_of
from timetable.errors import (
    ClampWarning,
    ConflictError,
    EditInFlightError,
    MoveInconsistencyError,
    OverwriteInconsistencyError,
    PartialDeleteWarning,
    SessionNotFoundError,
    StoreError,
)
from timetable.grid import (
    EditFailed,
    EditSettled,
    EditStarted,
    GridEvent,
    GridInvalidated,
    GridState,
    ResolvedCell,
    WeekFetched,
    WeekGrid,
    reduce,
)
from timetable.policy import Placement, evaluate_placement

logger = logging.getLogger(__name__)

EditKind = Literal["create", "update", "move", "delete"]
EditWarning = Union[ClampWarning, PartialDeleteWarning]


class ReconcileState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    CREATING = "creating"
    UPDATING = "updating"
    MOVING = "moving"
    DELETING = "deleting"
    SETTLED = "settled"
    FAILED = "failed"


_KIND_STATE = {
    "create": ReconcileState.CREATING,
    "update": ReconcileState.UPDATING,
    "move": ReconcileState.MOVING,
    "delete": ReconcileState.DELETING,
}


# ─── Operationen ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DeleteOp:
    """Löscht genau einen Datensatz (Kopf oder Fragment)."""
    weekday: int
    period: int
    session_id: int
    # gehört zu einer überschriebenen fremden Sitzung
    overwrite: bool = False


@dataclass(frozen=True)
class UpdateOp:
    """Aktualisiert den Datensatz an (weekday, period)."""
    weekday: int
    period: int
    payload: SessionPayload


@dataclass(frozen=True)
class CreateOp:
    """Legt den Kopf an; der Speicher belegt die Folgeperioden."""
    weekday: int
    period: int
    payload: SessionPayload


@dataclass(frozen=True)
class RefetchOp:
    """Woche neu laden. barrier=True: Pflicht-Neuladen zwischen Löschen und Anlegen."""
    barrier: bool = False


Operation = Union[DeleteOp, UpdateOp, CreateOp, RefetchOp]


@dataclass
class EditPlan:
    kind: EditKind
    operations: list[Operation]
    warnings: list[EditWarning] = field(default_factory=list)
    effective_duration: int = 0
    # Sitzungen, die nach Bestätigung überschrieben werden
    overwritten: list[Session] = field(default_factory=list)
    # Vollständiger Zielzustand; übersteht die Löschphase eines Verschiebens
    snapshot: Optional[DesiredEdit] = None


@dataclass
class ReconcileResult:
    state: ReconcileState
    kind: EditKind
    grid: WeekGrid
    warnings: list[EditWarning] = field(default_factory=list)
    executed: list[Operation] = field(default_factory=list)
    # Kopf der Sitzung am Ziel nach dem Neuladen (None beim Löschen)
    session: Optional[Session] = None


def _partial(warnings: list[EditWarning]) -> list[PartialDeleteWarning]:
    return [w for w in warnings if isinstance(w, PartialDeleteWarning)]


# ─── Planung (rein) ───────────────────────────────────────────────────────────

def _live_records(grid: WeekGrid, weekday: int, start_period: int,
                  count: int) -> list[tuple[int, int]]:
    """(Periode, Datensatz-id) der Zellen start..start+count-1, die zur
    Sitzung mit Kopf an (weekday, start_period) gehören und eine eigene id
    haben. Folgezellen ohne id (Backend führt nur den Kopf) entfallen."""
    return [
        (period, ref.record_id)
        for period, ref in grid.fragments_of(weekday, start_period)
        if period < start_period + count and ref.record_id is not None
    ]


def _delete_ops(grid: WeekGrid, head: ResolvedCell, overwrite: bool = False) -> list[DeleteOp]:
    return [
        DeleteOp(head.weekday, period, record_id, overwrite=overwrite)
        for period, record_id in _live_records(
            grid, head.weekday, head.period, head.session.duration)
    ]


def _occupants(grid: WeekGrid, placement: Placement,
               excluding_session_id: Optional[int]) -> list[ResolvedCell]:
    """Alle fremden Köpfe, die Zielzellen belegen (in Periodenreihenfolge)."""
    found: dict[tuple[int, int], ResolvedCell] = {}
    for period in placement.periods:
        resolved = grid.resolve(placement.weekday, period)
        if resolved is None:
            continue
        if excluding_session_id is not None and resolved.session.id == excluding_session_id:
            continue
        found.setdefault((resolved.weekday, resolved.period), resolved)
    return list(found.values())


def _locate(grid: WeekGrid, current: Session) -> Optional[ResolvedCell]:
    if current.id is not None:
        return grid.find_session(current.id)
    resolved = grid.resolve(current.weekday, current.start_period)
    return resolved if resolved and not resolved.is_continuation else None


def plan_edit(grid: WeekGrid, current: Optional[Session], desired: DesiredEdit,
              overwrite: bool = False) -> EditPlan:
    """Berechnet die Aufruffolge für den Übergang current → desired.

    Die Dauer wird auf das Tagesende gekürzt (ClampWarning). Belegt eine
    fremde Sitzung eine Zielzelle, wird ConflictError geworfen, außer mit
    overwrite=True: dann wird sie vor dem Anlegen/Bearbeiten gelöscht.
    """
    head: Optional[ResolvedCell] = None
    if current is not None:
        head = _locate(grid, current)
        if head is None:
            raise SessionNotFoundError(f"Sitzung {current} ist nicht (mehr) im Raster")

    excluding = head.session.id if head is not None else None
    check = evaluate_placement(
        grid, Placement(desired.weekday, desired.start_period, desired.duration),
        excluding_session_id=excluding,
    )
    warnings: list[EditWarning] = [check.warning] if check.warning else []
    duration = check.duration
    payload = desired.payload(duration=duration)

    overwritten: list[ResolvedCell] = []
    if not check.ok:
        if not overwrite:
            raise ConflictError(check.conflicting_session, desired.weekday,
                                desired.start_period, duration)
        overwritten = _occupants(grid, check.placement, excluding)

    ops: list[Operation] = []
    for other in overwritten:
        ops.extend(_delete_ops(grid, other, overwrite=True))

    if head is None:
        kind: EditKind = "create"
        if overwritten:
            ops.append(RefetchOp(barrier=True))
        ops.append(CreateOp(desired.weekday, desired.start_period, payload))

    elif (head.weekday, head.period) == (desired.weekday, desired.start_period):
        kind = "update"
        if overwritten:
            ops.append(RefetchOp(barrier=True))
        # Kopf zuerst: er trägt die neue Dauer, der Speicher legt bei
        # Verlängerung neue Fragmente an und gibt bei Kürzung die
        # überzähligen frei.
        for period, _ in _live_records(grid, head.weekday, head.period, head.session.duration):
            if period > desired.start_period + duration - 1:
                continue
            ops.append(UpdateOp(head.weekday, period, payload))

    else:
        kind = "move"
        ops = _delete_ops(grid, head) + ops
        ops.append(RefetchOp(barrier=True))
        ops.append(CreateOp(desired.weekday, desired.start_period, payload))

    ops.append(RefetchOp())
    return EditPlan(
        kind=kind,
        operations=ops,
        warnings=warnings,
        effective_duration=duration,
        overwritten=[o.session for o in overwritten],
        snapshot=desired.model_copy(update={"duration": duration}),
    )


def plan_delete(grid: WeekGrid, session: Session) -> EditPlan:
    """Löscht alle Perioden einer Sitzung (ein Aufruf je Datensatz)."""
    head = _locate(grid, session)
    if head is None:
        raise SessionNotFoundError(f"Sitzung {session} ist nicht (mehr) im Raster")
    ops: list[Operation] = list(_delete_ops(grid, head))
    ops.append(RefetchOp())
    return EditPlan(kind="delete", operations=ops, effective_duration=head.session.duration)


# ─── Ausführung ───────────────────────────────────────────────────────────────

class SessionReconciler:
    """Führt Änderungen für eine (Labor, Woche) gegen den Speicher aus.

    Hält den Rasterzustand über den reinen Reducer; jede Speicherantwort
    wird als Ereignis eingespielt. Aufrufe laufen strikt nacheinander.
    """

    def __init__(self, store: SessionStore, lab_id: int, monday: date) -> None:
        self.store = store
        self.lab_id = lab_id
        self.monday = monday_of(monday)
        self.state = ReconcileState.IDLE
        self.grid_state = GridState()

    @property
    def grid(self) -> WeekGrid:
        return self.grid_state.grid

    def dispatch(self, event: GridEvent) -> GridState:
        self.grid_state = reduce(self.grid_state, event)
        return self.grid_state

    def refresh(self) -> WeekGrid:
        """Lädt die Woche neu und baut das Raster daraus."""
        week = self.store.fetch_week(self.lab_id, self.monday)
        self.dispatch(WeekFetched(week))
        return self.grid

    def resolve_cell(self, weekday: int, period: int) -> Optional[ResolvedCell]:
        """Klick auf eine Zelle → Kopf der Sitzung (Folgezellen leiten um).

        Lässt sich eine belegte Zelle nicht auflösen, ist das Raster
        veraltet: einmal neu laden und erneut auflösen.
        """
        if self.grid_state.stale:
            self.refresh()
        if self.grid.is_stale(weekday, period):
            logger.info(f"Raster veraltet bei Tag {weekday} Periode {period} – lade neu")
            self.refresh()
        return self.grid.resolve(weekday, period)

    # ─── Einstieg ───

    def reconcile(self, current: Optional[Session], desired: DesiredEdit,
                  overwrite: bool = False) -> ReconcileResult:
        """Bringt den Speicher vom Zustand `current` (None = leere Zelle)
        in den Zustand `desired`.

        Wirft ConflictError (ohne Speicheraufruf), wenn fremde Sitzungen
        im Weg sind und overwrite=False ist.
        """
        return self._run(lambda grid: plan_edit(grid, current, desired, overwrite))

    def delete(self, session: Session) -> ReconcileResult:
        """Löscht alle Perioden der Sitzung, Fehler einzelner Perioden als Warnung."""
        return self._run(lambda grid: plan_delete(grid, session))

    def _run(self, make_plan) -> ReconcileResult:
        if self.grid_state.in_flight:
            raise EditInFlightError("Eine Änderung wird bereits ausgeführt")
        self.dispatch(EditStarted())
        self._set_state(ReconcileState.EVALUATING)
        try:
            if self.grid_state.stale:
                self.refresh()
            try:
                plan = make_plan(self.grid)
            except SessionNotFoundError:
                # Raster kann veraltet sein: einmal neu laden, dann neu planen
                self.refresh()
                plan = make_plan(self.grid)
            for w in plan.warnings:
                logger.warning(w.message)
            logger.debug(f"{plan.kind}: {len(plan.operations)} Operation(en)")
            self._set_state(_KIND_STATE[plan.kind])
            result = self._execute(plan)
        except Exception as e:
            self._set_state(ReconcileState.FAILED)
            self.dispatch(EditFailed(reason=str(e)))
            raise
        self._set_state(ReconcileState.SETTLED)
        self.dispatch(EditSettled())
        result.state = self.state
        return result

    def _set_state(self, state: ReconcileState) -> None:
        logger.debug(f"Zustand {self.state.value} → {state.value}")
        self.state = state

    def _execute(self, plan: EditPlan) -> ReconcileResult:
        warnings: list[EditWarning] = list(plan.warnings)
        executed: list[Operation] = []
        deleted_ids: list[int] = []
        overwrite_deleted: list[int] = []

        for op in plan.operations:
            if isinstance(op, DeleteOp):
                logger.info(f"delete Tag {op.weekday} Periode {op.period} (id={op.session_id})")
                try:
                    self.store.delete_session(self.lab_id, op.session_id, self.monday)
                except StoreError as e:
                    logger.warning(f"Löschen Tag {op.weekday} Periode {op.period} "
                                   f"(id={op.session_id}) fehlgeschlagen: {e}")
                    warnings.append(PartialDeleteWarning(
                        operation="delete", weekday=op.weekday, period=op.period,
                        session_id=op.session_id, reason=str(e)))
                    continue
                deleted_ids.append(op.session_id)
                if op.overwrite:
                    overwrite_deleted.append(op.session_id)

            elif isinstance(op, UpdateOp):
                logger.info(f"update Tag {op.weekday} Periode {op.period}")
                try:
                    self.store.update_session(self.lab_id, op.weekday, op.period,
                                              op.payload, self.monday)
                except StoreError as e:
                    ref = self.grid.get(op.weekday, op.period)
                    # Kopf trägt die neue Belegung; ohne ihn ist Überschriebenes verloren
                    if overwrite_deleted and ref is not None and ref.is_head:
                        self._refresh_after_failure()
                        self._raise_overwrite_lost(plan, overwrite_deleted, warnings, e)
                    logger.warning(f"Aktualisieren Tag {op.weekday} Periode {op.period} "
                                   f"fehlgeschlagen: {e}")
                    warnings.append(PartialDeleteWarning(
                        operation="update", weekday=op.weekday, period=op.period,
                        session_id=ref.record_id if ref else None, reason=str(e)))
                    continue

            elif isinstance(op, CreateOp):
                logger.info(f"create Tag {op.weekday} Periode {op.period} "
                            f"Dauer {op.payload.duration}")
                try:
                    self.store.create_session(self.lab_id, op.weekday, op.period,
                                              op.payload, self.monday)
                except StoreError as e:
                    self._refresh_after_failure()
                    if plan.kind == "move" and deleted_ids:
                        logger.error(f"Verschieben inkonsistent: {len(deleted_ids)} "
                                     f"Datensatz/-sätze gelöscht, Anlegen fehlgeschlagen: {e}")
                        raise MoveInconsistencyError(
                            plan.snapshot, deleted_ids, e,
                            overwritten=plan.overwritten if overwrite_deleted else None,
                            warnings=_partial(warnings),
                        ) from e
                    if overwrite_deleted:
                        self._raise_overwrite_lost(plan, overwrite_deleted, warnings, e)
                    raise

            elif isinstance(op, RefetchOp):
                self.dispatch(GridInvalidated(reason="barrier" if op.barrier else "settle"))
                self.refresh()

            executed.append(op)

        session = None
        if plan.kind != "delete" and plan.snapshot is not None:
            session = self.grid.occupant(plan.snapshot.weekday, plan.snapshot.start_period)
        logger.info(f"{plan.kind} abgeschlossen ({len(executed)} Operation(en), "
                    f"{len(warnings)} Warnung(en))")
        return ReconcileResult(
            state=self.state, kind=plan.kind, grid=self.grid,
            warnings=warnings, executed=executed, session=session,
        )

    def _raise_overwrite_lost(self, plan: EditPlan, deleted_ids: list[int],
                              warnings: list[EditWarning], cause: StoreError) -> None:
        logger.error(f"Überschreiben inkonsistent: {len(deleted_ids)} fremde(r) "
                     f"Datensatz/-sätze gelöscht, {plan.kind} fehlgeschlagen: {cause}")
        raise OverwriteInconsistencyError(
            plan.snapshot, plan.overwritten, deleted_ids, cause,
            warnings=_partial(warnings),
        ) from cause

    def _refresh_after_failure(self) -> None:
        self.dispatch(GridInvalidated(reason="failure"))
        try:
            self.refresh()
        except StoreError as e:
            logger.warning(f"Neuladen nach Fehler fehlgeschlagen: {e}")
