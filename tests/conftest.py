from __future__ import annotations

import copy
import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Optional

import pytest

from attendance_tracker.anomalies.model import AnomalyEvent
from attendance_tracker.attendance.model import AttendanceDay, AttendanceEvent, BreakSegment, CheckInLocation, DayTotals
from attendance_tracker.container import wire
from attendance_tracker.core.enums import (
    AnomalySeverity,
    AnomalyStatus,
    AnomalyType,
    AttendanceEventType,
    VerificationStatus,
)
from attendance_tracker.core.exceptions import ConflictError
from attendance_tracker.policies.model import AnomalyRule, GeofencePolicy, OfficeLocation, WorkPolicy

COMPANY_ID = 1
USER_ID = 7
OFFICE_LAT = 10.7769
OFFICE_LON = 106.7009


class InMemoryAttendanceStore:
    """Dict-backed store; transactions are serialized by one re-entrant lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self.days: dict[int, AttendanceDay] = {}
        self.events: dict[int, AttendanceEvent] = {}
        self.breaks: dict[int, BreakSegment] = {}
        self._next_id = 1
        # user_id -> (company_id, full name), the part of the users table check-in locations join on.
        self.users: dict[int, tuple[int, str]] = {USER_ID: (COMPANY_ID, "Lan Tran")}
        # Runs as a transaction begins, as if another request had committed just before.
        self.on_transaction_start: Optional[Callable[[], None]] = None

    def _id(self) -> int:
        nid = self._next_id
        self._next_id += 1
        return nid

    def run_in_transaction(self, work):
        with self._lock:
            if self.on_transaction_start is not None:
                self.on_transaction_start()
            snapshot = copy.deepcopy((self.days, self.events, self.breaks, self._next_id))
            try:
                return work(self)
            except Exception:
                self.days, self.events, self.breaks, self._next_id = snapshot
                raise

    def get_day(self, day_id):
        with self._lock:
            return self.days.get(day_id)

    def get_day_for_user(self, user_id, work_date):
        with self._lock:
            return next((d for d in self.days.values() if d.user_id == user_id and d.work_date == work_date), None)

    def lock_day_for_user(self, user_id, work_date):
        return self.get_day_for_user(user_id, work_date)

    def upsert_day(self, user_id, work_date):
        with self._lock:
            day = self.get_day_for_user(user_id, work_date)
            if day is None:
                day = AttendanceDay(day_id=self._id(), user_id=user_id, work_date=work_date)
            else:
                day = replace(day, is_complete=False)
            self.days[day.day_id] = day
            return day

    def update_totals(self, day_id, totals: DayTotals, *, is_complete):
        with self._lock:
            self.days[day_id] = replace(
                self.days[day_id],
                total_work_minutes=totals.work_minutes,
                total_break_minutes=totals.break_minutes,
                total_lunch_minutes=totals.lunch_minutes,
                overtime_minutes=totals.overtime_minutes,
                is_complete=is_complete,
            )

    def list_days(self, user_id, start_date, end_date, *, offset=0, limit=None):
        with self._lock:
            days = [d for d in self.days.values() if d.user_id == user_id and start_date <= d.work_date <= end_date]
        days.sort(key=lambda d: d.work_date, reverse=True)
        return days[offset:] if limit is None else days[offset : offset + limit]

    def count_days(self, user_id, start_date, end_date):
        return len(self.list_days(user_id, start_date, end_date))

    def list_events(self, day_id):
        with self._lock:
            return sorted((e for e in self.events.values() if e.day_id == day_id), key=lambda e: (e.timestamp, e.event_id))

    def get_event(self, event_id):
        with self._lock:
            return self.events.get(event_id)

    def list_check_in_locations(self, company_id, start, end):
        with self._lock:
            found = []
            for e in self.events.values():
                user_id = self.days[e.day_id].user_id
                owner_company, name = self.users.get(user_id, (None, ""))
                if (
                    owner_company == company_id
                    and e.type == AttendanceEventType.CHECK_IN
                    and e.latitude is not None
                    and e.longitude is not None
                    and start <= e.timestamp < end
                ):
                    found.append(
                        CheckInLocation(
                            event_id=e.event_id,
                            user_id=user_id,
                            user_name=name,
                            latitude=e.latitude,
                            longitude=e.longitude,
                            timestamp=e.timestamp,
                            work_mode=e.work_mode,
                            verification_status=e.verification_status,
                        )
                    )
        return sorted(found, key=lambda loc: (loc.timestamp, loc.event_id), reverse=True)

    def add_event(self, *, day_id, type, timestamp, work_mode, latitude=None, longitude=None,
                  verification_status=VerificationStatus.NONE, device_fingerprint=None, notes=None):
        with self._lock:
            event = AttendanceEvent(
                event_id=self._id(),
                day_id=day_id,
                type=type,
                timestamp=timestamp,
                work_mode=work_mode,
                latitude=latitude,
                longitude=longitude,
                verification_status=verification_status,
                device_fingerprint=device_fingerprint,
                notes=notes,
            )
            self.events[event.event_id] = event
            return event

    def override_event(self, event_id, *, timestamp, work_mode, reason, override_by):
        with self._lock:
            event = replace(
                self.events[event_id],
                timestamp=timestamp,
                work_mode=work_mode,
                is_override=True,
                override_reason=reason,
                override_by=override_by,
            )
            self.events[event_id] = event
            return event

    def list_breaks(self, day_id):
        with self._lock:
            return sorted((b for b in self.breaks.values() if b.day_id == day_id), key=lambda b: b.start_time)

    def get_break(self, break_id):
        with self._lock:
            return self.breaks.get(break_id)

    def add_break(self, *, day_id, type, start_time):
        with self._lock:
            segment = BreakSegment(break_id=self._id(), day_id=day_id, type=type, start_time=start_time)
            self.breaks[segment.break_id] = segment
            return segment

    def close_break(self, break_id, *, end_time, duration_minutes):
        with self._lock:
            if not self.breaks[break_id].is_open:
                raise ConflictError("Break already ended")
            segment = replace(self.breaks[break_id], end_time=end_time, duration_minutes=duration_minutes)
            self.breaks[break_id] = segment
            return segment


class InMemoryPolicies:
    def __init__(self):
        self.work: dict[int, WorkPolicy] = {}
        self.geofence: dict[int, GeofencePolicy] = {}
        self.offices: dict[int, list[OfficeLocation]] = {}
        self.rules: dict[int, list[AnomalyRule]] = {}
        self.broken_companies: set[int] = set()

    def get_work_policy(self, company_id):
        return self.work.get(company_id)

    def get_geofence_policy(self, company_id):
        return self.geofence.get(company_id)

    def list_active_offices(self, company_id):
        return [o for o in self.offices.get(company_id, []) if o.is_active]

    def list_enabled_rules(self, company_id):
        if company_id in self.broken_companies:
            raise RuntimeError("policy lookup failed")
        return [r for r in self.rules.get(company_id, []) if r.is_enabled]

    def find_enabled_rule(self, company_id, anomaly_type):
        return next((r for r in self.list_enabled_rules(company_id) if r.type == anomaly_type), None)

    def add_rule(self, anomaly_type: AnomalyType, *, company_id=COMPANY_ID, threshold=0, window_days=1,
                 severity=AnomalySeverity.MEDIUM) -> AnomalyRule:
        rules = self.rules.setdefault(company_id, [])
        rule = AnomalyRule(
            rule_id=len(rules) + 100 * company_id,
            company_id=company_id,
            type=anomaly_type,
            severity=severity,
            threshold=threshold,
            window_days=window_days,
        )
        rules.append(rule)
        return rule


class InMemoryAnomalies:
    def __init__(self):
        self.items: list[AnomalyEvent] = []

    def find_open(self, *, user_id, anomaly_type, detected_from=None, detected_to=None):
        for a in self.items:
            if a.user_id != user_id or a.type != anomaly_type or a.status != AnomalyStatus.OPEN:
                continue
            if detected_from is not None and a.detected_at < detected_from:
                continue
            if detected_to is not None and a.detected_at >= detected_to:
                continue
            return a
        return None

    def create(self, *, user_id, rule_id, severity, title, description, payload, detected_at):
        anomaly = AnomalyEvent(
            anomaly_id=len(self.items) + 1,
            user_id=user_id,
            rule_id=rule_id,
            type=payload.type,
            severity=severity,
            status=AnomalyStatus.OPEN,
            title=title,
            description=description,
            data=payload,
            detected_at=detected_at,
        )
        self.items.append(anomaly)
        return anomaly

    def of_type(self, anomaly_type: AnomalyType) -> list[AnomalyEvent]:
        return [a for a in self.items if a.type == anomaly_type]

    def set_status(self, anomaly_id: int, status: AnomalyStatus) -> None:
        self.items = [replace(a, status=status) if a.anomaly_id == anomaly_id else a for a in self.items]


class InMemoryDirectory:
    def __init__(self, users_by_company: Optional[dict[int, list[int]]] = None):
        self.users_by_company = users_by_company or {COMPANY_ID: [USER_ID]}

    def list_company_ids(self):
        return sorted(self.users_by_company)

    def list_active_user_ids(self, company_id):
        return list(self.users_by_company.get(company_id, []))


class InMemoryTimesheets:
    def __init__(self):
        self.minutes: dict[tuple[int, date], int] = {}

    def minutes_for_date(self, user_id, work_date):
        return self.minutes.get((user_id, work_date), 0)


class InMemoryLeaves:
    def __init__(self):
        self.days: dict[int, int] = {}

    def count_approved_leave_days(self, user_id, start_date, end_date):
        return self.days.get(user_id, 0)


class InMemoryAudit:
    def __init__(self):
        self.records = []

    def record(self, entry):
        self.records.append(entry)

    def actions(self) -> list[str]:
        return [r.action for r in self.records]


@pytest.fixture
def store():
    return InMemoryAttendanceStore()


@pytest.fixture
def policies():
    return InMemoryPolicies()


@pytest.fixture
def anomalies():
    return InMemoryAnomalies()


@pytest.fixture
def directory():
    return InMemoryDirectory()


@pytest.fixture
def timesheets():
    return InMemoryTimesheets()


@pytest.fixture
def leaves():
    return InMemoryLeaves()


@pytest.fixture
def audit():
    return InMemoryAudit()


@pytest.fixture
def container(store, policies, anomalies, directory, timesheets, leaves, audit):
    return wire(
        attendance_store=store,
        policies_repo=policies,
        anomalies_repo=anomalies,
        users_directory=directory,
        timesheets_repo=timesheets,
        leaves_repo=leaves,
        audit_sink=audit,
    )


@pytest.fixture
def svc(container):
    return container.attendance_service


@pytest.fixture
def office(policies):
    """Company 1 with geofencing on and one 100 m office."""
    policies.geofence[COMPANY_ID] = GeofencePolicy(company_id=COMPANY_ID, is_enabled=True, require_geofence_for_office=True)
    policies.offices[COMPANY_ID] = [
        OfficeLocation(
            office_id=1,
            company_id=COMPANY_ID,
            name="HQ",
            latitude=OFFICE_LAT,
            longitude=OFFICE_LON,
            radius_meters=100,
        )
    ]
    return policies.offices[COMPANY_ID][0]


def at(hour: int, minute: int = 0, *, day: date = date(2026, 3, 2)) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)
