from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Sequence

from ..core.enums import AttendanceEventType, BreakType, SessionStatus, VerificationStatus, WorkMode
from ..policies.model import WorkPolicy


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class AttendanceDay:
    """One user's attendance for one calendar date."""

    day_id: int
    user_id: int
    work_date: date
    is_complete: bool = False
    total_work_minutes: int = 0
    total_break_minutes: int = 0
    total_lunch_minutes: int = 0
    overtime_minutes: int = 0


@dataclass(frozen=True)
class AttendanceEvent:
    """Append-only check-in / check-out record. Only an override rewrites one."""

    event_id: int
    day_id: int
    type: AttendanceEventType
    timestamp: datetime
    work_mode: WorkMode
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    verification_status: VerificationStatus = VerificationStatus.NONE
    device_fingerprint: Optional[str] = None
    notes: Optional[str] = None
    is_override: bool = False
    override_reason: Optional[str] = None
    override_by: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.event_id,
            "type": self.type.value,
            "timestamp": _iso(self.timestamp),
            "workMode": self.work_mode.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "verificationStatus": self.verification_status.value,
            "notes": self.notes,
            "isOverride": self.is_override,
        }


@dataclass(frozen=True)
class BreakSegment:
    break_id: int
    day_id: int
    type: BreakType
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.break_id,
            "type": self.type.value,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "durationMinutes": self.duration_minutes,
        }


@dataclass(frozen=True)
class DayTotals:
    """The four totals of a day; always computed and written together."""

    work_minutes: int = 0
    break_minutes: int = 0
    lunch_minutes: int = 0
    overtime_minutes: int = 0


@dataclass(frozen=True)
class DayView:
    """Read-model returned by every attendance operation."""

    work_date: date
    status: SessionStatus
    totals: DayTotals
    policy: WorkPolicy
    day_id: Optional[int] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    work_mode: Optional[WorkMode] = None
    current_break: Optional[BreakSegment] = None
    events: Sequence[AttendanceEvent] = field(default_factory=tuple)
    breaks: Sequence[BreakSegment] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        current = None
        if self.current_break is not None:
            current = {
                "id": self.current_break.break_id,
                "type": self.current_break.type.value,
                "startTime": _iso(self.current_break.start_time),
            }
        return {
            "id": self.day_id,
            "date": self.work_date.isoformat(),
            "status": self.status.value,
            "checkInTime": _iso(self.check_in_time),
            "checkOutTime": _iso(self.check_out_time),
            "workMode": self.work_mode.value if self.work_mode else None,
            "currentBreak": current,
            "totalWorkMinutes": self.totals.work_minutes,
            "totalBreakMinutes": self.totals.break_minutes,
            "totalLunchMinutes": self.totals.lunch_minutes,
            "overtimeMinutes": self.totals.overtime_minutes,
            "events": [e.to_dict() for e in self.events],
            "breaks": [b.to_dict() for b in self.breaks],
            "policy": self.policy.to_dict(),
        }


@dataclass(frozen=True)
class CheckInResult:
    event: AttendanceEvent
    day: DayView

    def to_dict(self) -> dict:
        return {"event": self.event.to_dict(), "attendanceDay": self.day.to_dict()}


@dataclass(frozen=True)
class CheckOutResult:
    event: AttendanceEvent
    day: DayView

    @property
    def summary(self) -> dict:
        totals = self.day.totals
        return {
            "workedMinutes": totals.work_minutes,
            "breakMinutes": totals.break_minutes + totals.lunch_minutes,
            "overtime": totals.overtime_minutes,
        }

    def to_dict(self) -> dict:
        return {"event": self.event.to_dict(), "attendanceDay": self.day.to_dict(), "summary": self.summary}


@dataclass(frozen=True)
class BreakResult:
    segment: BreakSegment
    day: DayView

    def to_dict(self) -> dict:
        return {"break": self.segment.to_dict(), "attendanceDay": self.day.to_dict()}


@dataclass(frozen=True)
class HistoryPage:
    days: Sequence["DayRecord"]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "data": [d.to_dict() for d in self.days],
            "meta": {"page": self.page, "limit": self.limit, "total": self.total, "totalPages": self.total_pages},
        }


@dataclass(frozen=True)
class DayRecord:
    """A stored day with its events and breaks, both ascending."""

    day: AttendanceDay
    events: Sequence[AttendanceEvent] = field(default_factory=tuple)
    breaks: Sequence[BreakSegment] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        d = self.day
        return {
            "id": d.day_id,
            "date": d.work_date.isoformat(),
            "isComplete": d.is_complete,
            "totalWorkMinutes": d.total_work_minutes,
            "totalBreakMinutes": d.total_break_minutes,
            "totalLunchMinutes": d.total_lunch_minutes,
            "overtimeMinutes": d.overtime_minutes,
            "events": [e.to_dict() for e in self.events],
            "breaks": [b.to_dict() for b in self.breaks],
        }


@dataclass(frozen=True)
class AttendanceSummary:
    total_days: int
    present_days: int
    absent_days: int
    leave_days: int
    total_work_hours: float
    total_overtime_hours: float
    average_check_in_time: Optional[str]
    average_check_out_time: Optional[str]

    def to_dict(self) -> dict:
        return {
            "totalDays": self.total_days,
            "presentDays": self.present_days,
            "absentDays": self.absent_days,
            "leaveDays": self.leave_days,
            "totalWorkHours": self.total_work_hours,
            "totalOvertimeHours": self.total_overtime_hours,
            "averageCheckInTime": self.average_check_in_time,
            "averageCheckOutTime": self.average_check_out_time,
        }


@dataclass(frozen=True)
class CheckInLocation:
    """A geotagged check-in, for plotting a company's check-ins on a map."""

    event_id: int
    user_id: int
    user_name: str
    latitude: float
    longitude: float
    timestamp: datetime
    work_mode: WorkMode
    verification_status: VerificationStatus

    def to_dict(self) -> dict:
        return {
            "id": self.event_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": _iso(self.timestamp),
            "workMode": self.work_mode.value,
            "verificationStatus": self.verification_status.value,
        }
