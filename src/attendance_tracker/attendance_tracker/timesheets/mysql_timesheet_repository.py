from __future__ import annotations

from datetime import date

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .repository import TimesheetRepository


class MySQLTimesheetRepository(TimesheetRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def minutes_for_date(self, user_id: int, work_date: date) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COALESCE(SUM(minutes), 0) AS total
                FROM timesheet_entries
                WHERE user_id=%s AND entry_date=%s
                """,
                (int(user_id), work_date),
            )
            r = fetchone(cur)
            return int(r["total"]) if r else 0
