from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Optional, Sequence, TypeVar

from ..core.enums import AttendanceEventType, BreakType, VerificationStatus, WorkMode
from ..core.exceptions import ConflictError, NotFoundError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_float, db_cursor, db_transaction, fetchall, fetchone
from .model import AttendanceDay, AttendanceEvent, BreakSegment, CheckInLocation, DayTotals
from .repository import AttendanceRepository, AttendanceStore

T = TypeVar("T")

_DAY_COLUMNS = """
    day_id, user_id, work_date, is_complete, total_work_minutes, total_break_minutes,
    total_lunch_minutes, overtime_minutes
"""

_EVENT_COLUMNS = """
    event_id, day_id, type, event_time, work_mode, latitude, longitude, verification_status,
    device_fingerprint, notes, is_override, override_reason, override_by
"""

_BREAK_COLUMNS = "break_id, day_id, type, start_time, end_time, duration_minutes"


def _day_from_row(r: dict) -> AttendanceDay:
    return AttendanceDay(
        day_id=int(r["day_id"]),
        user_id=int(r["user_id"]),
        work_date=r["work_date"],
        is_complete=bool(r["is_complete"]),
        total_work_minutes=int(r["total_work_minutes"]),
        total_break_minutes=int(r["total_break_minutes"]),
        total_lunch_minutes=int(r["total_lunch_minutes"]),
        overtime_minutes=int(r["overtime_minutes"]),
    )


def _event_from_row(r: dict) -> AttendanceEvent:
    return AttendanceEvent(
        event_id=int(r["event_id"]),
        day_id=int(r["day_id"]),
        type=AttendanceEventType(r["type"]),
        timestamp=r["event_time"],
        work_mode=WorkMode(r["work_mode"]),
        latitude=as_float(r.get("latitude")),
        longitude=as_float(r.get("longitude")),
        verification_status=VerificationStatus(r["verification_status"]),
        device_fingerprint=r.get("device_fingerprint"),
        notes=r.get("notes"),
        is_override=bool(r.get("is_override", False)),
        override_reason=r.get("override_reason"),
        override_by=r.get("override_by"),
    )


def _break_from_row(r: dict) -> BreakSegment:
    duration = r.get("duration_minutes")
    return BreakSegment(
        break_id=int(r["break_id"]),
        day_id=int(r["day_id"]),
        type=BreakType(r["type"]),
        start_time=r["start_time"],
        end_time=r.get("end_time"),
        duration_minutes=int(duration) if duration is not None else None,
    )


class _AttendanceQueries(AttendanceRepository):
    """All SQL for the attendance tables, run on whatever cursor `_cursor` yields."""

    def _cursor(self):
        """Context manager yielding a dictionary cursor."""
        raise NotImplementedError

    def _select_day(self, cur, day_id: int) -> Optional[AttendanceDay]:
        cur.execute(f"SELECT {_DAY_COLUMNS} FROM attendance_days WHERE day_id=%s", (int(day_id),))
        r = fetchone(cur)
        return _day_from_row(r) if r else None

    def _select_event(self, cur, event_id: int) -> Optional[AttendanceEvent]:
        cur.execute(f"SELECT {_EVENT_COLUMNS} FROM attendance_events WHERE event_id=%s", (int(event_id),))
        r = fetchone(cur)
        return _event_from_row(r) if r else None

    def _select_break(self, cur, break_id: int) -> Optional[BreakSegment]:
        cur.execute(f"SELECT {_BREAK_COLUMNS} FROM break_segments WHERE break_id=%s", (int(break_id),))
        r = fetchone(cur)
        return _break_from_row(r) if r else None

    def get_day(self, day_id: int) -> Optional[AttendanceDay]:
        with self._cursor() as cur:
            return self._select_day(cur, day_id)

    def get_day_for_user(self, user_id: int, work_date: date) -> Optional[AttendanceDay]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_DAY_COLUMNS} FROM attendance_days WHERE user_id=%s AND work_date=%s",
                (int(user_id), work_date),
            )
            r = fetchone(cur)
            return _day_from_row(r) if r else None

    def lock_day_for_user(self, user_id: int, work_date: date) -> Optional[AttendanceDay]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_DAY_COLUMNS} FROM attendance_days WHERE user_id=%s AND work_date=%s FOR UPDATE",
                (int(user_id), work_date),
            )
            r = fetchone(cur)
            return _day_from_row(r) if r else None

    def upsert_day(self, user_id: int, work_date: date) -> AttendanceDay:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO attendance_days(user_id, work_date, is_complete)
                VALUES(%s,%s,0)
                ON DUPLICATE KEY UPDATE is_complete=0, day_id=LAST_INSERT_ID(day_id)
                """,
                (int(user_id), work_date),
            )
            day = self._select_day(cur, int(cur.lastrowid))
            if day is None:
                raise NotFoundError("Attendance day vanished during upsert")
            return day

    def update_totals(self, day_id: int, totals: DayTotals, *, is_complete: bool) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE attendance_days
                SET total_work_minutes=%s, total_break_minutes=%s, total_lunch_minutes=%s,
                    overtime_minutes=%s, is_complete=%s
                WHERE day_id=%s
                """,
                (
                    int(totals.work_minutes),
                    int(totals.break_minutes),
                    int(totals.lunch_minutes),
                    int(totals.overtime_minutes),
                    1 if is_complete else 0,
                    int(day_id),
                ),
            )

    def list_days(
        self, user_id: int, start_date: date, end_date: date, *, offset: int = 0, limit: Optional[int] = None
    ) -> Sequence[AttendanceDay]:
        sql = f"""
            SELECT {_DAY_COLUMNS}
            FROM attendance_days
            WHERE user_id=%s AND work_date BETWEEN %s AND %s
            ORDER BY work_date DESC
        """
        params: list[object] = [int(user_id), start_date, end_date]
        if limit is not None:
            sql += " LIMIT %s OFFSET %s"
            params.extend([int(limit), int(offset)])
        with self._cursor() as cur:
            cur.execute(sql, tuple(params))
            return [_day_from_row(r) for r in fetchall(cur)]

    def count_days(self, user_id: int, start_date: date, end_date: date) -> int:
        with self._cursor() as cur:
            cur.execute(
                "SELECT COUNT(*) AS total FROM attendance_days WHERE user_id=%s AND work_date BETWEEN %s AND %s",
                (int(user_id), start_date, end_date),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0

    def list_events(self, day_id: int) -> Sequence[AttendanceEvent]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_EVENT_COLUMNS} FROM attendance_events WHERE day_id=%s ORDER BY event_time, event_id",
                (int(day_id),),
            )
            return [_event_from_row(r) for r in fetchall(cur)]

    def get_event(self, event_id: int) -> Optional[AttendanceEvent]:
        with self._cursor() as cur:
            return self._select_event(cur, event_id)

    def list_check_in_locations(self, company_id: int, start: datetime, end: datetime) -> Sequence[CheckInLocation]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT e.event_id, d.user_id, u.full_name, e.latitude, e.longitude, e.event_time,
                       e.work_mode, e.verification_status
                FROM attendance_events e
                JOIN attendance_days d ON d.day_id = e.day_id
                JOIN users u ON u.user_id = d.user_id
                WHERE u.company_id=%s AND e.type=%s
                  AND e.latitude IS NOT NULL AND e.longitude IS NOT NULL
                  AND e.event_time >= %s AND e.event_time < %s
                ORDER BY e.event_time DESC, e.event_id DESC
                """,
                (int(company_id), AttendanceEventType.CHECK_IN.value, start, end),
            )
            return [
                CheckInLocation(
                    event_id=int(r["event_id"]),
                    user_id=int(r["user_id"]),
                    user_name=r["full_name"],
                    latitude=float(r["latitude"]),
                    longitude=float(r["longitude"]),
                    timestamp=r["event_time"],
                    work_mode=WorkMode(r["work_mode"]),
                    verification_status=VerificationStatus(r["verification_status"]),
                )
                for r in fetchall(cur)
            ]

    def add_event(
        self,
        *,
        day_id: int,
        type: AttendanceEventType,
        timestamp: datetime,
        work_mode: WorkMode,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        verification_status: VerificationStatus = VerificationStatus.NONE,
        device_fingerprint: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AttendanceEvent:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO attendance_events(
                    day_id, type, event_time, work_mode, latitude, longitude,
                    verification_status, device_fingerprint, notes
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(day_id),
                    type.value,
                    timestamp,
                    work_mode.value,
                    latitude,
                    longitude,
                    verification_status.value,
                    device_fingerprint,
                    notes,
                ),
            )
            return self._select_event(cur, int(cur.lastrowid))

    def override_event(
        self,
        event_id: int,
        *,
        timestamp: datetime,
        work_mode: WorkMode,
        reason: str,
        override_by: int,
    ) -> AttendanceEvent:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE attendance_events
                SET event_time=%s, work_mode=%s, is_override=1, override_reason=%s, override_by=%s
                WHERE event_id=%s
                """,
                (timestamp, work_mode.value, reason, int(override_by), int(event_id)),
            )
            event = self._select_event(cur, event_id)
            if event is None:
                raise NotFoundError("Attendance event not found")
            return event

    def list_breaks(self, day_id: int) -> Sequence[BreakSegment]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_BREAK_COLUMNS} FROM break_segments WHERE day_id=%s ORDER BY start_time, break_id",
                (int(day_id),),
            )
            return [_break_from_row(r) for r in fetchall(cur)]

    def get_break(self, break_id: int) -> Optional[BreakSegment]:
        with self._cursor() as cur:
            return self._select_break(cur, break_id)

    def add_break(self, *, day_id: int, type: BreakType, start_time: datetime) -> BreakSegment:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO break_segments(day_id, type, start_time) VALUES(%s,%s,%s)",
                (int(day_id), type.value, start_time),
            )
            return self._select_break(cur, int(cur.lastrowid))

    def close_break(self, break_id: int, *, end_time: datetime, duration_minutes: int) -> BreakSegment:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE break_segments
                SET end_time=%s, duration_minutes=%s
                WHERE break_id=%s AND end_time IS NULL
                """,
                (end_time, int(duration_minutes), int(break_id)),
            )
            closed_now = cur.rowcount
            segment = self._select_break(cur, break_id)
            if segment is None:
                raise NotFoundError("Break not found")
            if closed_now == 0:
                raise ConflictError("Break already ended")
            return segment


class _TransactionAttendanceRepository(_AttendanceQueries):
    """Runs every query on the cursor of an open transaction."""

    def __init__(self, cur):
        self._cur = cur

    @contextmanager
    def _cursor(self):
        yield self._cur


class MySQLAttendanceRepository(_AttendanceQueries, AttendanceStore):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @contextmanager
    def _cursor(self):
        with db_cursor(self._conn_factory) as (_, cur):
            yield cur

    def run_in_transaction(self, work: Callable[[AttendanceRepository], T]) -> T:
        with db_transaction(self._conn_factory) as (_, cur):
            return work(_TransactionAttendanceRepository(cur))
