"""InMemoryStore: lokaler Sitzungsspeicher mit JSON-Persistenz.

Verhält sich wie das Backend der REST-API:
  - create legt den Kopf an und belegt die folgenden duration-1 Perioden
    selbst (als eigene Fragment-Datensätze, oder – mit
    expand_fragments=False – nur über die Dauer des Kopfes)
  - (lab, Datum, Periode) ist eindeutig
  - Teilnehmerzahl aus Klassenstärken, wenn keine explizite Zahl kommt
  - Kapazität und Nachhol-Flag kommen immer aus dem Labor
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from config.schema import AppConfig, CalendarConfig
from models.lab import Lab
from models.session import MAX_PERIOD, Session, SessionPayload, split_class_names
from models.week import WeekDay, WeekSchedule, WeekSlot
from store.base import BatchResult, BatchRow, BatchRowError, SessionStore
from timetable.calendar import date_for_weekday, monday_of, periods_for, week_dates
from timetable.errors import SessionNotFoundError, StoreError

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class _Record:
    """Ein Datensatz im Speicher: Kopf (period == session.start_period)
    oder Fragment einer mehrperiodigen Sitzung."""

    period: int
    session: Session

    @property
    def is_head(self) -> bool:
        return self.period == self.session.start_period


class _StoreSnapshot(BaseModel):
    labs: list[Lab]
    class_rosters: dict[str, int]
    expand_fragments: bool
    next_id: int
    records: list[dict]


class InMemoryStore(SessionStore):
    """Sitzungsspeicher im Arbeitsspeicher, optional als JSON gesichert."""

    def __init__(
        self,
        labs: list[Lab],
        class_rosters: Optional[dict[str, int]] = None,
        calendar: Optional[CalendarConfig] = None,
        expand_fragments: bool = True,
    ) -> None:
        self._labs: dict[int, Lab] = {lab.id: lab for lab in labs}
        self._rosters: dict[str, int] = dict(class_rosters or {})
        self._calendar = calendar
        self.expand_fragments = expand_fragments
        self._records: dict[int, _Record] = {}
        self._next_id = 1

    @classmethod
    def from_config(cls, config: AppConfig) -> "InMemoryStore":
        labs = [Lab(id=l.id, name=l.name, capacity=l.capacity) for l in config.labs]
        return cls(labs, class_rosters=config.class_rosters, calendar=config.calendar)

    # ─── Labore ───

    def list_labs(self) -> list[Lab]:
        return [self._labs[k] for k in sorted(self._labs)]

    def _lab(self, lab_id: int) -> Lab:
        lab = self._labs.get(lab_id)
        if lab is None:
            raise StoreError(f"Labor {lab_id} nicht gefunden", status=404)
        return lab

    def resolve_lab_id(self, name: str) -> Optional[int]:
        name = (name or "").strip()
        return next((lab.id for lab in self._labs.values() if lab.name == name), None)

    # ─── Lesen ───

    def _slot_record(self, lab_id: int, day: date, period: int) -> Optional[_Record]:
        """Datensatz, der (lab, day, period) belegt – direkt oder über die
        Dauer eines Kopfes (Backends ohne Fragmente)."""
        covering = None
        for rec in self._records.values():
            s = rec.session
            if s.lab_id != lab_id or s.date != day:
                continue
            if rec.period == period:
                return rec
            if rec.is_head and s.covers(period):
                covering = rec
        return covering

    def _with_capacity(self, session: Session) -> Session:
        return session.model_copy(update={"capacity": self._labs[session.lab_id].capacity})

    def fetch_week(self, lab_id: int, monday: date) -> WeekSchedule:
        lab = self._lab(lab_id)
        monday = monday_of(monday)
        days = []
        for day in week_dates(monday):
            by_period = {
                rec.period: rec for rec in self._records.values()
                if rec.session.lab_id == lab_id and rec.session.date == day
            }
            slots = []
            for p in periods_for(day, self._calendar):
                rec = by_period.get(p.index)
                slots.append(WeekSlot(
                    period=p.index, start=p.start, end=p.end,
                    session=self._with_capacity(rec.session) if rec else None,
                ))
            days.append(WeekDay(date=day, weekday=day.isoweekday(), slots=slots))
        return WeekSchedule(lab=lab, monday=monday, sunday=monday + timedelta(days=6),
                            days=days)

    # ─── Teilnehmerzahl ───

    def _resolve_enrolled(self, enrolled: Optional[int], class_names: Optional[str]) -> int:
        """Explizite Zahl gewinnt; sonst Summe der Klassenstärken; sonst 0."""
        if enrolled is not None:
            return max(0, int(enrolled))
        names = split_class_names(class_names)
        if not names:
            return 0
        missing = [n for n in names if n not in self._rosters]
        if missing:
            raise StoreError(f"Klassen nicht gefunden: {', '.join(missing)}", status=400)
        return sum(self._rosters[n] for n in names)

    # ─── Schreiben ───

    def _new_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def _check_free(self, lab_id: int, day: date, periods: range,
                    own_head: Optional[_Record] = None) -> None:
        for p in periods:
            rec = self._slot_record(lab_id, day, p)
            if rec is None:
                continue
            if own_head is not None and rec.session.start_period == own_head.period:
                continue
            raise StoreError(
                f"{day.isoformat()} Periode {p} ist bereits belegt "
                f"('{rec.session.course}', id={rec.session.id})", status=409)

    def _materialize(self, head: _Record) -> None:
        """Legt die fehlenden Fragmente des Kopfes an und entfernt
        Fragmente jenseits des neuen Endes."""
        s = head.session
        fragments = {
            rec.period: rid for rid, rec in self._records.items()
            if not rec.is_head and rec.session.lab_id == s.lab_id
            and rec.session.date == s.date and rec.session.start_period == s.start_period
        }
        for period, rid in fragments.items():
            if period > s.end_period:
                del self._records[rid]
        if not self.expand_fragments:
            return
        for p in range(s.start_period + 1, s.end_period + 1):
            if p not in fragments:
                fid = self._new_id()
                self._records[fid] = _Record(period=p, session=s.model_copy(update={"id": fid}))

    def create_session(self, lab_id: int, weekday: int, period: int,
                       payload: SessionPayload, week_anchor: date) -> Session:
        self._lab(lab_id)
        day = date_for_weekday(monday_of(week_anchor), weekday)
        if period + payload.duration - 1 > MAX_PERIOD:
            raise StoreError(
                f"Periode {period} + {payload.duration} Perioden überschreitet das Tagesende",
                status=400)
        self._check_free(lab_id, day, range(period, period + payload.duration))

        session = Session(
            id=self._new_id(),
            lab_id=lab_id,
            date=day,
            weekday=weekday,
            start_period=period,
            duration=payload.duration,
            course=payload.course,
            teacher=payload.teacher,
            content=payload.content,
            enrolled=self._resolve_enrolled(payload.wire_enrolled(), payload.class_names),
            class_names=payload.class_names,
        )
        head = _Record(period=period, session=session)
        self._records[session.id] = head
        self._materialize(head)
        logger.debug(f"create {day} P{period} x{payload.duration} → id={session.id}")
        return self._with_capacity(session)

    def update_session(self, lab_id: int, weekday: int, period: int,
                       payload: SessionPayload, week_anchor: date) -> Session:
        self._lab(lab_id)
        day = date_for_weekday(monday_of(week_anchor), weekday)
        rec = self._slot_record(lab_id, day, period)
        if rec is None or (rec.period != period and self.expand_fragments):
            raise SessionNotFoundError(f"Keine Sitzung am {day.isoformat()} Periode {period}")

        if rec.is_head and payload.duration > rec.session.duration:
            self._check_free(lab_id, day,
                             range(rec.session.end_period + 1, period + payload.duration),
                             own_head=rec)
        try:
            updated = Session.model_validate({
                **rec.session.model_dump(),
                "course": payload.course,
                "teacher": payload.teacher,
                "content": payload.content,
                "enrolled": self._resolve_enrolled(payload.wire_enrolled(), payload.class_names),
                "class_names": payload.class_names,
                "duration": payload.duration,
            })
        except ValueError as e:
            raise StoreError(f"Ungültige Aktualisierung: {e}", status=400) from e

        rec.session = updated
        if rec.is_head:
            self._materialize(rec)
        logger.debug(f"update {day} P{period} id={updated.id}")
        return self._with_capacity(updated)

    def delete_session(self, lab_id: int, session_id: int, week_anchor: date) -> None:
        rec = self._records.get(session_id)
        if rec is None or rec.session.lab_id != lab_id:
            raise SessionNotFoundError(f"Sitzung {session_id} nicht gefunden")
        del self._records[session_id]
        logger.debug(f"delete id={session_id}")

    # ─── Stapelimport ───

    def _validate_batch(self, rows: list[BatchRow]) -> tuple[list[tuple[int, BatchRow, date]], list[BatchRowError]]:
        """Serverseitige Prüfung; gibt (gültige Zeilen, Fehler) zurück."""
        valid: list[tuple[int, BatchRow, date]] = []
        errors: list[BatchRowError] = []
        claimed: dict[tuple[int, date], list[tuple[int, int, int]]] = {}

        for i, row in enumerate(rows, 1):
            if not row.date or not row.period or not row.course or not row.teacher:
                errors.append(BatchRowError(
                    index=i, message="Datum, Periode, Kurs und Lehrkraft sind Pflichtfelder"))
                continue
            if row.lab_id is None and not row.lab:
                errors.append(BatchRowError(
                    index=i, field="lab",
                    message="Labor ist Pflichtfeld (Name oder ID angeben)"))
                continue
            lab_id = row.lab_id if row.lab_id is not None else self.resolve_lab_id(row.lab)
            if lab_id is None or lab_id not in self._labs:
                errors.append(BatchRowError(
                    index=i, field="lab",
                    message=f"Labor nicht gefunden: {row.lab if row.lab_id is None else row.lab_id}"))
                continue
            if not _ISO_DATE.match(row.date):
                errors.append(BatchRowError(
                    index=i, field="date", message="Datumsformat falsch, erwartet YYYY-MM-DD"))
                continue
            try:
                day = date.fromisoformat(row.date)
            except ValueError:
                errors.append(BatchRowError(index=i, field="date",
                                            message=f"Ungültiges Datum: {row.date}"))
                continue
            if not 1 <= row.period <= MAX_PERIOD:
                errors.append(BatchRowError(
                    index=i, field="period", message=f"Periode muss zwischen 1 und {MAX_PERIOD} liegen"))
                continue
            if row.duration < 1 or row.period + row.duration - 1 > MAX_PERIOD:
                errors.append(BatchRowError(
                    index=i, field="duration",
                    message=f"Dauer {row.duration} ab Periode {row.period} überschreitet das Tagesende"))
                continue
            try:
                self._resolve_enrolled(row.enrolled, row.class_names)
            except StoreError as e:
                errors.append(BatchRowError(index=i, field="class_names", message=str(e)))
                continue

            # Überschneidung mit bestehenden Sitzungen (außer derselben Kopfposition)
            clash = self._batch_clash(lab_id, day, row)
            if clash:
                errors.append(BatchRowError(index=i, field="period", message=clash))
                continue
            # Überschneidung innerhalb des Stapels
            span = (row.period, row.period + row.duration - 1, i)
            overlapping = next(
                (other for other in claimed.get((lab_id, day), [])
                 if other[0] <= span[1] and span[0] <= other[1]), None)
            if overlapping:
                errors.append(BatchRowError(
                    index=i, field="period",
                    message=f"Überschneidet sich mit Zeile {overlapping[2]}"))
                continue
            claimed.setdefault((lab_id, day), []).append(span)
            valid.append((lab_id, row.model_copy(update={"lab_id": lab_id}), day))

        return valid, errors

    def _batch_clash(self, lab_id: int, day: date, row: BatchRow) -> Optional[str]:
        for p in range(row.period, row.period + row.duration):
            rec = self._slot_record(lab_id, day, p)
            if rec is not None and rec.session.start_period != row.period:
                return (f"Periode {p} ist durch '{rec.session.course}' "
                        f"(Perioden {rec.session.start_period}-{rec.session.end_period}) belegt")
        return None

    def dry_run_batch(self, lab_id: int, week_anchor: date,
                      rows: list[BatchRow]) -> BatchResult:
        valid, errors = self._validate_batch(rows)
        if errors:
            return BatchResult(success=0, failed=len(errors), errors=errors)
        return BatchResult(success=len(valid), failed=0)

    def commit_batch(self, lab_id: int, week_anchor: date,
                     rows: list[BatchRow]) -> BatchResult:
        """Übernimmt einen Stapel inkrementell (Update an gleicher
        Kopfposition, sonst Neuanlage). Bei Prüffehlern wird nichts gespeichert."""
        valid, errors = self._validate_batch(rows)
        if errors:
            return BatchResult(success=0, failed=len(errors), errors=errors)

        inserted = updated = 0
        save_errors: list[BatchRowError] = []
        for i, (row_lab, row, day) in enumerate(valid, 1):
            payload = SessionPayload(
                course=row.course, teacher=row.teacher, content=row.content,
                enrolled=row.enrolled, duration=row.duration, class_names=row.class_names,
            )
            try:
                existing = self._slot_record(row_lab, day, row.period)
                if existing is not None and existing.is_head:
                    self.update_session(row_lab, day.isoweekday(), row.period, payload, day)
                    updated += 1
                else:
                    self.create_session(row_lab, day.isoweekday(), row.period, payload, day)
                    inserted += 1
            except StoreError as e:
                save_errors.append(BatchRowError(index=i, message=str(e)))

        return BatchResult(success=inserted + updated, failed=len(save_errors),
                           inserted=inserted, updated=updated, errors=save_errors)

    # ─── Persistenz ───

    def save_json(self, path: Path) -> None:
        """Speichert Labore, Klassenstärken und alle Datensätze als JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = _StoreSnapshot(
            labs=self.list_labs(),
            class_rosters=self._rosters,
            expand_fragments=self.expand_fragments,
            next_id=self._next_id,
            records=[
                {"period": rec.period, "session": json.loads(rec.session.model_dump_json())}
                for rec in self._records.values()
            ],
        )
        with open(path, "w", encoding="utf-8") as f:
            f.write(snapshot.model_dump_json(indent=2))

    @classmethod
    def load_json(cls, path: Path, calendar: Optional[CalendarConfig] = None) -> "InMemoryStore":
        """Lädt einen mit save_json gesicherten Speicher."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Speicherdatei nicht gefunden: {path}")
        with open(path, "r", encoding="utf-8") as f:
            snapshot = _StoreSnapshot.model_validate_json(f.read())
        store = cls(snapshot.labs, class_rosters=snapshot.class_rosters,
                    calendar=calendar, expand_fragments=snapshot.expand_fragments)
        for item in snapshot.records:
            session = Session.model_validate(item["session"])
            store._records[session.id] = _Record(period=item["period"], session=session)
        store._next_id = snapshot.next_id
        return store

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"InMemoryStore({len(self._labs)} Labore, {len(self._records)} Datensätze)"
