from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import AnomalySeverity, AnomalyType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import as_float, db_cursor, fetchall, fetchone, normalize_mysql_time
from .model import AnomalyRule, GeofencePolicy, OfficeLocation, WorkPolicy
from .repository import PolicyRepository


def _rule_from_row(r: dict) -> AnomalyRule:
    return AnomalyRule(
        rule_id=int(r["rule_id"]),
        company_id=int(r["company_id"]),
        type=AnomalyType(r["type"]),
        severity=AnomalySeverity(r["severity"]),
        threshold=int(r["threshold"]),
        window_days=int(r["window_days"]),
        is_enabled=bool(r["is_enabled"]),
        name=r.get("name") or "",
    )


class MySQLPolicyRepository(PolicyRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_work_policy(self, company_id: int) -> Optional[WorkPolicy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT break_duration_minutes, lunch_duration_minutes, overtime_threshold_minutes,
                       max_overtime_minutes, standard_work_hours, grace_minutes_late, workday_start
                FROM work_policies
                WHERE company_id=%s
                """,
                (int(company_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return WorkPolicy(
                break_duration_minutes=int(r["break_duration_minutes"]),
                lunch_duration_minutes=int(r["lunch_duration_minutes"]),
                overtime_threshold_minutes=int(r["overtime_threshold_minutes"]),
                max_overtime_minutes=int(r["max_overtime_minutes"]),
                standard_work_hours=int(r["standard_work_hours"]),
                grace_minutes_late=int(r["grace_minutes_late"]),
                workday_start=normalize_mysql_time(r["workday_start"]),
            )

    def get_geofence_policy(self, company_id: int) -> Optional[GeofencePolicy]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT company_id, is_enabled, require_geofence_for_office FROM geofence_policies WHERE company_id=%s",
                (int(company_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return GeofencePolicy(
                company_id=int(r["company_id"]),
                is_enabled=bool(r["is_enabled"]),
                require_geofence_for_office=bool(r["require_geofence_for_office"]),
            )

    def list_active_offices(self, company_id: int) -> Sequence[OfficeLocation]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT office_id, company_id, name, latitude, longitude, radius_meters, is_active
                FROM office_locations
                WHERE company_id=%s AND is_active=1
                """,
                (int(company_id),),
            )
            return [
                OfficeLocation(
                    office_id=int(r["office_id"]),
                    company_id=int(r["company_id"]),
                    name=r["name"],
                    latitude=as_float(r["latitude"]),
                    longitude=as_float(r["longitude"]),
                    radius_meters=int(r["radius_meters"]),
                    is_active=bool(r["is_active"]),
                )
                for r in fetchall(cur)
            ]

    def list_enabled_rules(self, company_id: int) -> Sequence[AnomalyRule]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT rule_id, company_id, type, severity, threshold, window_days, is_enabled, name
                FROM anomaly_rules
                WHERE company_id=%s AND is_enabled=1
                ORDER BY rule_id
                """,
                (int(company_id),),
            )
            return [_rule_from_row(r) for r in fetchall(cur)]

    def find_enabled_rule(self, company_id: int, anomaly_type: AnomalyType) -> Optional[AnomalyRule]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT rule_id, company_id, type, severity, threshold, window_days, is_enabled, name
                FROM anomaly_rules
                WHERE company_id=%s AND type=%s AND is_enabled=1
                ORDER BY rule_id
                LIMIT 1
                """,
                (int(company_id), anomaly_type.value),
            )
            r = fetchone(cur)
            return _rule_from_row(r) if r else None
