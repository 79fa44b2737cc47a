from __future__ import annotations

from enum import Enum


class WorkMode(str, Enum):
    """Where the employee works from for a session."""

    OFFICE = "Office"
    REMOTE = "Remote"
    CUSTOMER_SITE = "CustomerSite"
    FIELD_VISIT = "FieldVisit"
    TRAVEL = "Travel"


class AttendanceEventType(str, Enum):
    CHECK_IN = "CheckIn"
    CHECK_OUT = "CheckOut"


class BreakType(str, Enum):
    BREAK = "Break"
    LUNCH = "Lunch"


class VerificationStatus(str, Enum):
    """Result of the location check attached to a check-in."""

    NONE = "None"
    GEOFENCE_PASSED = "GeofencePassed"
    GEOFENCE_FAILED = "GeofenceFailed"


class SessionStatus(str, Enum):
    """Derived status of a user's day, never stored."""

    NOT_CHECKED_IN = "not_checked_in"
    WORKING = "working"
    ON_BREAK = "on_break"
    CHECKED_OUT = "checked_out"


class AnomalyType(str, Enum):
    REPEATED_LATE_CHECK_IN = "RepeatedLateCheckIn"
    MISSING_CHECK_OUT = "MissingCheckOut"
    EXCESSIVE_BREAK = "ExcessiveBreak"
    TIMESHEET_MISMATCH = "TimesheetMismatch"
    GEOFENCE_FAILURE = "GeofenceFailure"


class AnomalySeverity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class AnomalyStatus(str, Enum):
    """Review workflow of an anomaly; only OPEN is written by the engine."""

    OPEN = "Open"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED = "Resolved"
    DISMISSED = "Dismissed"
