from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar, Dict, Optional, Type, Union

from ..core.enums import AnomalySeverity, AnomalyStatus, AnomalyType, VerificationStatus


@dataclass(frozen=True)
class GeofenceFailurePayload:
    type: ClassVar[AnomalyType] = AnomalyType.GEOFENCE_FAILURE
    title: ClassVar[str] = "Check-in Outside Geofence"

    latitude: Optional[float]
    longitude: Optional[float]
    timestamp: datetime
    verification_status: VerificationStatus = VerificationStatus.GEOFENCE_FAILED

    @property
    def description(self) -> str:
        return "User attempted Office check-in from location outside configured office radius"

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
            "verificationStatus": self.verification_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GeofenceFailurePayload":
        return cls(
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            verification_status=VerificationStatus(data.get("verificationStatus", VerificationStatus.GEOFENCE_FAILED.value)),
        )


@dataclass(frozen=True)
class MissingCheckOutPayload:
    type: ClassVar[AnomalyType] = AnomalyType.MISSING_CHECK_OUT
    title: ClassVar[str] = "Missing Check-Out"

    work_date: date

    @property
    def description(self) -> str:
        return f"No checkout recorded for {self.work_date.strftime('%a %b %d %Y')}"

    def to_dict(self) -> dict:
        return {"date": self.work_date.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "MissingCheckOutPayload":
        return cls(work_date=date.fromisoformat(data["date"]))


@dataclass(frozen=True)
class RepeatedLateCheckInPayload:
    type: ClassVar[AnomalyType] = AnomalyType.REPEATED_LATE_CHECK_IN
    title: ClassVar[str] = "Repeated Late Check-Ins"

    late_count: int
    window_days: int

    @property
    def description(self) -> str:
        return f"{self.late_count} late arrivals in the last {self.window_days} days"

    def to_dict(self) -> dict:
        return {"lateCount": self.late_count, "windowDays": self.window_days}

    @classmethod
    def from_dict(cls, data: dict) -> "RepeatedLateCheckInPayload":
        return cls(late_count=int(data["lateCount"]), window_days=int(data["windowDays"]))


@dataclass(frozen=True)
class ExcessiveBreakPayload:
    """Either the day's break total broke the allowance, or one break ran too long."""

    type: ClassVar[AnomalyType] = AnomalyType.EXCESSIVE_BREAK
    title: ClassVar[str] = "Excessive Break Time"

    work_date: date
    total_break_minutes: int
    policy_limit_minutes: int
    break_id: Optional[int] = None
    duration_minutes: Optional[int] = None

    @property
    def description(self) -> str:
        if self.break_id is not None:
            return f"Break duration of {self.duration_minutes} minutes exceeds limit"
        return (
            f"Break time exceeded policy limit: {self.total_break_minutes} minutes "
            f"(limit: {self.policy_limit_minutes} minutes)"
        )

    def to_dict(self) -> dict:
        return {
            "date": self.work_date.isoformat(),
            "totalBreakMinutes": self.total_break_minutes,
            "policyLimitMinutes": self.policy_limit_minutes,
            "breakId": self.break_id,
            "durationMinutes": self.duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExcessiveBreakPayload":
        return cls(
            work_date=date.fromisoformat(data["date"]),
            total_break_minutes=int(data["totalBreakMinutes"]),
            policy_limit_minutes=int(data["policyLimitMinutes"]),
            break_id=data.get("breakId"),
            duration_minutes=data.get("durationMinutes"),
        )


@dataclass(frozen=True)
class TimesheetMismatchPayload:
    type: ClassVar[AnomalyType] = AnomalyType.TIMESHEET_MISMATCH
    title: ClassVar[str] = "Timesheet Mismatch"

    work_date: date
    attendance_minutes: int
    timesheet_minutes: int
    variance: float

    @property
    def description(self) -> str:
        return f"Attendance: {round(self.attendance_minutes / 60)}h, Timesheet: {round(self.timesheet_minutes / 60)}h"

    def to_dict(self) -> dict:
        return {
            "date": self.work_date.isoformat(),
            "attendanceMinutes": self.attendance_minutes,
            "timesheetMinutes": self.timesheet_minutes,
            "variance": self.variance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimesheetMismatchPayload":
        return cls(
            work_date=date.fromisoformat(data["date"]),
            attendance_minutes=int(data["attendanceMinutes"]),
            timesheet_minutes=int(data["timesheetMinutes"]),
            variance=float(data["variance"]),
        )


AnomalyPayload = Union[
    GeofenceFailurePayload,
    MissingCheckOutPayload,
    RepeatedLateCheckInPayload,
    ExcessiveBreakPayload,
    TimesheetMismatchPayload,
]

PAYLOAD_TYPES: Dict[AnomalyType, Type] = {
    cls.type: cls
    for cls in (
        GeofenceFailurePayload,
        MissingCheckOutPayload,
        RepeatedLateCheckInPayload,
        ExcessiveBreakPayload,
        TimesheetMismatchPayload,
    )
}


def payload_from_dict(anomaly_type: AnomalyType, data: dict) -> AnomalyPayload:
    return PAYLOAD_TYPES[anomaly_type].from_dict(data)


@dataclass(frozen=True)
class AnomalyEvent:
    anomaly_id: int
    user_id: int
    rule_id: int
    type: AnomalyType
    severity: AnomalySeverity
    status: AnomalyStatus
    title: str
    description: str
    data: AnomalyPayload
    detected_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.anomaly_id,
            "userId": self.user_id,
            "ruleId": self.rule_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "status": self.status.value,
            "title": self.title,
            "description": self.description,
            "data": self.data.to_dict(),
            "detectedAt": self.detected_at.isoformat(),
        }
