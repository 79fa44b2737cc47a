from __future__ import annotations

from dataclasses import dataclass

from .anomalies.detection import AnomalyDetectionService
from .anomalies.mysql_anomaly_repository import MySQLAnomalyRepository
from .anomalies.repository import AnomalyRepository
from .anomalies.service import AnomalyRecorder
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceStore
from .attendance.service import AttendanceService
from .audit.mysql_audit_sink import MySQLAuditSink
from .audit.repository import AuditSink
from .database.connection import DBConfig, DatabaseConnection
from .geofence.service import GeofenceValidator
from .leaves.mysql_leave_repository import MySQLLeaveRepository
from .leaves.repository import LeaveRepository
from .policies.mysql_policy_repository import MySQLPolicyRepository
from .policies.repository import PolicyRepository
from .policies.service import PolicyProvider
from .timesheets.mysql_timesheet_repository import MySQLTimesheetRepository
from .timesheets.repository import TimesheetRepository
from .users.mysql_user_directory import MySQLUserDirectory
from .users.repository import UserDirectory


@dataclass(frozen=True)
class Container:
    attendance_store: AttendanceStore
    policies_repo: PolicyRepository
    anomalies_repo: AnomalyRepository
    users_directory: UserDirectory
    timesheets_repo: TimesheetRepository
    leaves_repo: LeaveRepository
    audit_sink: AuditSink

    policy_provider: PolicyProvider
    anomaly_recorder: AnomalyRecorder
    geofence_validator: GeofenceValidator
    detection_service: AnomalyDetectionService
    attendance_service: AttendanceService


def wire(
    *,
    attendance_store: AttendanceStore,
    policies_repo: PolicyRepository,
    anomalies_repo: AnomalyRepository,
    users_directory: UserDirectory,
    timesheets_repo: TimesheetRepository,
    leaves_repo: LeaveRepository,
    audit_sink: AuditSink,
) -> Container:
    """Build the services on top of any set of repositories."""
    policy_provider = PolicyProvider(policies_repo)
    anomaly_recorder = AnomalyRecorder(anomalies_repo)
    geofence_validator = GeofenceValidator(policy_provider, anomaly_recorder)
    detection_service = AnomalyDetectionService(
        attendance_store, policy_provider, users_directory, timesheets_repo, anomaly_recorder
    )
    attendance_service = AttendanceService(
        attendance_store,
        policy_provider,
        geofence_validator,
        detection_service,
        audit_sink,
        leaves_repo,
    )

    return Container(
        attendance_store=attendance_store,
        policies_repo=policies_repo,
        anomalies_repo=anomalies_repo,
        users_directory=users_directory,
        timesheets_repo=timesheets_repo,
        leaves_repo=leaves_repo,
        audit_sink=audit_sink,
        policy_provider=policy_provider,
        anomaly_recorder=anomaly_recorder,
        geofence_validator=geofence_validator,
        detection_service=detection_service,
        attendance_service=attendance_service,
    )


def build_container(*, db_config: dict) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    return wire(
        attendance_store=MySQLAttendanceRepository(conn),
        policies_repo=MySQLPolicyRepository(conn),
        anomalies_repo=MySQLAnomalyRepository(conn),
        users_directory=MySQLUserDirectory(conn),
        timesheets_repo=MySQLTimesheetRepository(conn),
        leaves_repo=MySQLLeaveRepository(conn),
        audit_sink=MySQLAuditSink(conn),
    )
