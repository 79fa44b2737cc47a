from __future__ import annotations

from typing import Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall
from .repository import UserDirectory


class MySQLUserDirectory(UserDirectory):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def list_company_ids(self) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT company_id FROM companies ORDER BY company_id")
            return [int(r["company_id"]) for r in fetchall(cur)]

    def list_active_user_ids(self, company_id: int) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT user_id FROM users WHERE company_id=%s AND is_active=1 ORDER BY user_id",
                (int(company_id),),
            )
            return [int(r["user_id"]) for r in fetchall(cur)]
