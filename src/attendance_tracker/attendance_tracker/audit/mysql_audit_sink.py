from __future__ import annotations

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, to_json
from .model import AuditRecord
from .repository import AuditSink


class MySQLAuditSink(AuditSink):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def record(self, entry: AuditRecord) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO audit_logs(actor_id, action, entity_type, entity_id, before_data, after_data, reason)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(entry.actor_id),
                    entry.action,
                    entry.entity_type,
                    int(entry.entity_id),
                    to_json(entry.before),
                    to_json(entry.after),
                    entry.reason,
                ),
            )
