from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..core.enums import AnomalySeverity, AnomalyStatus, AnomalyType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, from_json, to_json
from .model import AnomalyEvent, AnomalyPayload, payload_from_dict
from .repository import AnomalyRepository

_COLUMNS = "anomaly_id, user_id, rule_id, type, severity, status, title, description, data, detected_at"


def _anomaly_from_row(r: dict) -> AnomalyEvent:
    anomaly_type = AnomalyType(r["type"])
    return AnomalyEvent(
        anomaly_id=int(r["anomaly_id"]),
        user_id=int(r["user_id"]),
        rule_id=int(r["rule_id"]),
        type=anomaly_type,
        severity=AnomalySeverity(r["severity"]),
        status=AnomalyStatus(r["status"]),
        title=r["title"],
        description=r["description"],
        data=payload_from_dict(anomaly_type, from_json(r["data"])),
        detected_at=r["detected_at"],
    )


class MySQLAnomalyRepository(AnomalyRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def find_open(
        self,
        *,
        user_id: int,
        anomaly_type: AnomalyType,
        detected_from: Optional[datetime] = None,
        detected_to: Optional[datetime] = None,
    ) -> Optional[AnomalyEvent]:
        clauses = ["user_id=%s", "type=%s", "status=%s"]
        params: list[object] = [int(user_id), anomaly_type.value, AnomalyStatus.OPEN.value]
        if detected_from is not None:
            clauses.append("detected_at>=%s")
            params.append(detected_from)
        if detected_to is not None:
            clauses.append("detected_at<%s")
            params.append(detected_to)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM anomaly_events WHERE {' AND '.join(clauses)} ORDER BY anomaly_id LIMIT 1",
                tuple(params),
            )
            r = fetchone(cur)
            return _anomaly_from_row(r) if r else None

    def create(
        self,
        *,
        user_id: int,
        rule_id: int,
        severity: AnomalySeverity,
        title: str,
        description: str,
        payload: AnomalyPayload,
        detected_at: datetime,
    ) -> AnomalyEvent:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO anomaly_events(user_id, rule_id, type, severity, status, title, description, data, detected_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    int(user_id),
                    int(rule_id),
                    payload.type.value,
                    severity.value,
                    AnomalyStatus.OPEN.value,
                    title,
                    description,
                    to_json(payload.to_dict()),
                    detected_at,
                ),
            )
            anomaly_id = int(cur.lastrowid)

        return AnomalyEvent(
            anomaly_id=anomaly_id,
            user_id=int(user_id),
            rule_id=int(rule_id),
            type=payload.type,
            severity=severity,
            status=AnomalyStatus.OPEN,
            title=title,
            description=description,
            data=payload,
            detected_at=detected_at,
        )

