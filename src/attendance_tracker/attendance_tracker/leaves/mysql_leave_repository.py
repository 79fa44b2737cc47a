from __future__ import annotations

from datetime import date

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .repository import LeaveRepository


class MySQLLeaveRepository(LeaveRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def count_approved_leave_days(self, user_id: int, start_date: date, end_date: date) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT COALESCE(SUM(DATEDIFF(end_date, start_date) + 1), 0) AS days
                FROM leave_requests
                WHERE user_id=%s AND status='Approved' AND start_date>=%s AND end_date<=%s
                """,
                (int(user_id), start_date, end_date),
            )
            r = fetchone(cur)
            return int(r["days"]) if r else 0
