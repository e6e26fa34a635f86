"""RestStore: Sitzungsspeicher über die HTTP-API des Laborplan-Backends.

Endpunkte:
  GET  /labs                                  Laborliste
  GET  /labs/{id}/timetable?date=YYYY-MM-DD   Woche (nur Kopf-Datensätze)
  PUT  /labs/{id}/timetable?date=...          ganze Woche ersetzen
  POST /labs/{id}/timetable/batch[?dryRun=true]

Das Backend kennt keine Einzel-Endpunkte für Sitzungen; create/update/delete
laden daher die Woche, ersetzen den Zielslot und schreiben die Woche zurück.
"""

import logging
from datetime import date, timedelta
from typing import Any, Optional

import requests

from models.lab import Lab
from models.session import Session, SessionPayload
from models.week import WeekDay, WeekSchedule, WeekSlot
from store.base import BatchResult, BatchRow, BatchRowError, SessionStore
from timetable.calendar import date_for_weekday, monday_of
from timetable.errors import SessionNotFoundError, StoreError
from timetable.policy import clamp_duration

logger = logging.getLogger(__name__)


class RestStore(SessionStore):
    """HTTP-Transport mit `requests.Session` (injizierbar für Tests)."""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    # ─── Transport ───

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url} {kwargs.get('params') or ''}")
        try:
            resp = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreError(f"{method} {path} fehlgeschlagen: {e}") from e

        if resp.status_code >= 400:
            message = resp.reason or "Fehler"
            try:
                body = resp.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
                    if isinstance(message, list):
                        message = "; ".join(str(m) for m in message)
            except ValueError:
                pass
            if resp.status_code == 404:
                raise SessionNotFoundError(f"{method} {path}: {message}")
            raise StoreError(f"{method} {path}: {message}", status=resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"{method} {path}: ungültige JSON-Antwort") from e

    # ─── Labore ───

    def list_labs(self) -> list[Lab]:
        data = self._request("GET", "/labs") or []
        return [Lab(id=int(d["id"]), name=d["name"], capacity=int(d.get("capacity") or 0))
                for d in data]

    # ─── Woche ───

    def fetch_week(self, lab_id: int, monday: date) -> WeekSchedule:
        monday = monday_of(monday)
        data = self._request("GET", f"/labs/{lab_id}/timetable",
                             params={"date": monday.isoformat()})
        return _parse_week(data, lab_id)

    def _put_week(self, lab_id: int, monday: date, sessions: list[dict]) -> None:
        self._request("PUT", f"/labs/{lab_id}/timetable",
                      params={"date": monday.isoformat()}, json={"sessions": sessions})

    def _replace_slot(self, lab_id: int, week_anchor: date, weekday: int, period: int,
                      payload: Optional[SessionPayload], must_exist: bool) -> WeekSchedule:
        monday = monday_of(week_anchor)
        week = self.fetch_week(lab_id, monday)
        target_day = date_for_weekday(monday, weekday)
        sessions = []
        found = False
        for s in week.head_sessions():
            if s.date == target_day and s.start_period == period:
                found = True
                continue
            sessions.append(_session_to_wire(s.date, s.start_period, s.payload()))
        if must_exist and not found:
            raise SessionNotFoundError(
                f"Keine Sitzung am {target_day.isoformat()} Periode {period}")
        if payload is not None:
            sessions.append(_session_to_wire(target_day, period, payload))
        self._put_week(lab_id, monday, sessions)
        return self.fetch_week(lab_id, monday)

    def _head_at(self, week: WeekSchedule, weekday: int, period: int) -> Session:
        day = week.day(weekday)
        slot = next((s for s in day.slots if s.period == period), None) if day else None
        if slot is None or slot.session is None:
            raise StoreError(f"Backend lieferte keine Sitzung an Tag {weekday} Periode {period}")
        return slot.session

    def create_session(self, lab_id: int, weekday: int, period: int,
                       payload: SessionPayload, week_anchor: date) -> Session:
        week = self._replace_slot(lab_id, week_anchor, weekday, period, payload, must_exist=False)
        return self._head_at(week, weekday, period)

    def update_session(self, lab_id: int, weekday: int, period: int,
                       payload: SessionPayload, week_anchor: date) -> Session:
        week = self._replace_slot(lab_id, week_anchor, weekday, period, payload, must_exist=True)
        return self._head_at(week, weekday, period)

    def delete_session(self, lab_id: int, session_id: int, week_anchor: date) -> None:
        monday = monday_of(week_anchor)
        week = self.fetch_week(lab_id, monday)
        heads = week.head_sessions()
        if not any(s.id == session_id for s in heads):
            raise SessionNotFoundError(f"Sitzung {session_id} nicht gefunden")
        self._put_week(lab_id, monday, [
            _session_to_wire(s.date, s.start_period, s.payload())
            for s in heads if s.id != session_id
        ])

    # ─── Stapel ───

    def _batch(self, lab_id: int, week_anchor: date, rows: list[BatchRow],
               dry_run: bool) -> BatchResult:
        params = {"date": week_anchor.isoformat()}
        if dry_run:
            params["dryRun"] = "true"
        data = self._request("POST", f"/labs/{lab_id}/timetable/batch",
                             params=params, json={"sessions": [_row_to_wire(r) for r in rows]})
        return _parse_batch_result(data or {})

    def dry_run_batch(self, lab_id: int, week_anchor: date,
                      rows: list[BatchRow]) -> BatchResult:
        return self._batch(lab_id, week_anchor, rows, dry_run=True)

    def commit_batch(self, lab_id: int, week_anchor: date,
                     rows: list[BatchRow]) -> BatchResult:
        return self._batch(lab_id, week_anchor, rows, dry_run=False)

    def __repr__(self) -> str:
        return f"RestStore({self.base_url!r})"


# ─── Wire-Format ──────────────────────────────────────────────────────────────

def _session_to_wire(day: date, period: int, payload: SessionPayload) -> dict:
    wire = {
        "date": day.isoformat(),
        "period": period,
        "course": payload.course,
        "teacher": payload.teacher,
        "content": payload.content or "",
        "duration": payload.duration,
    }
    planned = payload.wire_enrolled()
    if planned is not None:
        wire["planned"] = planned
    if payload.class_names:
        wire["classNames"] = payload.class_names
    return wire


def _row_to_wire(row: BatchRow) -> dict:
    wire = {
        "date": row.date,
        "period": row.period,
        "course": row.course,
        "teacher": row.teacher,
        "content": row.content or "",
        "duration": row.duration,
    }
    if row.enrolled is not None:
        wire["planned"] = row.enrolled
    if row.class_names:
        wire["classNames"] = row.class_names
    if row.lab_id is not None:
        wire["labId"] = row.lab_id
    if row.lab:
        wire["lab"] = row.lab
    return wire


def _parse_week(data: dict, lab_id: int) -> WeekSchedule:
    try:
        lab_data = data.get("lab") or {}
        lab = Lab(id=int(lab_data.get("id", lab_id)), name=lab_data.get("name", ""),
                  capacity=int(lab_data.get("capacity") or 0))
        monday = date.fromisoformat(data["week"]["monday"])
        days = []
        for d in data["days"]:
            day = date.fromisoformat(d["date"])
            weekday = int(d.get("dayOfWeek") or day.isoweekday())
            slots = []
            for slot in d["slots"]:
                raw = slot.get("session")
                session = None
                if raw:
                    start = int(raw.get("period") or slot["period"])
                    duration, clamped = clamp_duration(start, int(raw.get("duration") or 2))
                    if clamped:
                        # über das Tagesende gespeichert: gekürzt einlesen
                        logger.warning(f"{day.isoformat()} id={raw.get('id')}: {clamped.message}")
                    session = Session(
                        id=raw.get("id"),
                        lab_id=lab.id,
                        date=day,
                        weekday=weekday,
                        start_period=start,
                        duration=duration,
                        course=raw.get("course") or "",
                        teacher=raw.get("teacher") or "",
                        content=raw.get("content"),
                        enrolled=int(raw.get("planned") or 0),
                        class_names=raw.get("class_names") or raw.get("classNames"),
                        capacity=int(raw.get("capacity") or lab.capacity),
                    )
                slots.append(WeekSlot(period=int(slot["period"]), start=slot.get("start", ""),
                                      end=slot.get("end", ""), session=session))
            days.append(WeekDay(date=day, weekday=weekday, slots=slots))
    except (KeyError, TypeError, ValueError) as e:
        raise StoreError(f"Unerwartetes Wochenformat: {e}") from e
    return WeekSchedule(lab=lab, monday=monday, sunday=monday + timedelta(days=6), days=days)


def _parse_batch_result(data: dict) -> BatchResult:
    errors = []
    for i, err in enumerate(data.get("errors") or [], 1):
        if isinstance(err, str):
            errors.append(BatchRowError(index=i, message=err))
        else:
            errors.append(BatchRowError(index=int(err.get("index", i)), field=err.get("field"),
                                        message=str(err.get("message", ""))))
    return BatchResult(
        success=int(data.get("success") or 0),
        failed=int(data.get("failed") or len(errors)),
        inserted=int(data.get("inserted") or 0),
        updated=int(data.get("updated") or 0),
        errors=errors,
    )
