from __future__ import annotations

from dataclasses import dataclass
from datetime import time

from ..core.constants import (
    DEFAULT_BREAK_DURATION_MINUTES,
    DEFAULT_LATE_GRACE_MINUTES,
    DEFAULT_LUNCH_DURATION_MINUTES,
    DEFAULT_MAX_OVERTIME_MINUTES,
    DEFAULT_OVERTIME_THRESHOLD_MINUTES,
    DEFAULT_STANDARD_WORK_HOURS,
    DEFAULT_WORKDAY_START,
)
from ..core.enums import AnomalySeverity, AnomalyType


@dataclass(frozen=True)
class WorkPolicy:
    """Per-company working-time rules (defaults apply when none is configured)."""

    break_duration_minutes: int = DEFAULT_BREAK_DURATION_MINUTES
    lunch_duration_minutes: int = DEFAULT_LUNCH_DURATION_MINUTES
    overtime_threshold_minutes: int = DEFAULT_OVERTIME_THRESHOLD_MINUTES
    max_overtime_minutes: int = DEFAULT_MAX_OVERTIME_MINUTES
    standard_work_hours: int = DEFAULT_STANDARD_WORK_HOURS
    grace_minutes_late: int = DEFAULT_LATE_GRACE_MINUTES
    workday_start: time = DEFAULT_WORKDAY_START

    @property
    def break_allowance_minutes(self) -> int:
        return self.break_duration_minutes + self.lunch_duration_minutes

    def to_dict(self) -> dict:
        return {
            "breakDurationMinutes": self.break_duration_minutes,
            "lunchDurationMinutes": self.lunch_duration_minutes,
            "overtimeThresholdMinutes": self.overtime_threshold_minutes,
            "maxOvertimeMinutes": self.max_overtime_minutes,
            "standardWorkHours": self.standard_work_hours,
        }


@dataclass(frozen=True)
class GeofencePolicy:
    company_id: int
    is_enabled: bool = False
    require_geofence_for_office: bool = False


@dataclass(frozen=True)
class OfficeLocation:
    office_id: int
    company_id: int
    name: str
    latitude: float
    longitude: float
    radius_meters: int
    is_active: bool = True


@dataclass(frozen=True)
class AnomalyRule:
    """Per-company detector configuration.

    `threshold` is a count for RepeatedLateCheckIn and a percentage for
    ExcessiveBreak and TimesheetMismatch.
    """

    rule_id: int
    company_id: int
    type: AnomalyType
    severity: AnomalySeverity
    threshold: int
    window_days: int
    is_enabled: bool = True
    name: str = ""
