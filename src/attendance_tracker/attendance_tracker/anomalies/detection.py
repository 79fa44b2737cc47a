from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional, Sequence

from ..attendance.model import AttendanceDay, BreakSegment
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import minute_of_day, now_local
from ..core.enums import AnomalyType, AttendanceEventType
from ..policies.model import AnomalyRule, WorkPolicy
from ..policies.service import PolicyProvider
from ..timesheets.repository import TimesheetRepository
from ..users.repository import UserDirectory
from .model import (
    AnomalyEvent,
    AnomalyPayload,
    ExcessiveBreakPayload,
    MissingCheckOutPayload,
    RepeatedLateCheckInPayload,
    TimesheetMismatchPayload,
)
from .service import AnomalyRecorder

logger = logging.getLogger(__name__)


@dataclass
class DetectionReport:
    companies: int = 0
    rules_evaluated: int = 0
    anomalies_created: int = 0
    suppressed: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return {
            "companies": self.companies,
            "rulesEvaluated": self.rules_evaluated,
            "anomaliesCreated": self.anomalies_created,
            "suppressed": self.suppressed,
            "failures": self.failures,
        }


def excessive_break_payload(
    day: AttendanceDay, breaks: Sequence[BreakSegment], policy: WorkPolicy, rule: AnomalyRule
) -> Optional[ExcessiveBreakPayload]:
    """Day total over break+lunch allowance, or any one break over `threshold`% of the standard break."""
    closed = [b for b in breaks if not b.is_open]
    total = sum(b.duration_minutes or 0 for b in closed)
    limit = policy.break_allowance_minutes
    if total > limit:
        return ExcessiveBreakPayload(work_date=day.work_date, total_break_minutes=total, policy_limit_minutes=limit)

    single_limit = policy.break_duration_minutes * (rule.threshold / 100)
    for b in closed:
        if (b.duration_minutes or 0) > single_limit:
            return ExcessiveBreakPayload(
                work_date=day.work_date,
                total_break_minutes=total,
                policy_limit_minutes=limit,
                break_id=b.break_id,
                duration_minutes=b.duration_minutes,
            )
    return None


class AnomalyDetectionService:
    """Rule engine over attendance data.

    `check_excessive_break` runs on every break end. `run_daily_detection`
    is the batch entry point an external scheduler calls once a day; it
    walks companies, then enabled rules, then users, and a failure for one
    user or rule is logged and skipped.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        policies: PolicyProvider,
        users: UserDirectory,
        timesheets: TimesheetRepository,
        recorder: AnomalyRecorder,
    ):
        self._attendance = attendance
        self._policies = policies
        self._users = users
        self._timesheets = timesheets
        self._recorder = recorder

    # -- reactive ----------------------------------------------------------

    def check_excessive_break(
        self, *, user_id: int, company_id: int, day_id: int, now: datetime | None = None
    ) -> Optional[AnomalyEvent]:
        rule = self._policies.enabled_rule(company_id, AnomalyType.EXCESSIVE_BREAK)
        if rule is None:
            return None
        day = self._attendance.get_day(day_id)
        if day is None:
            return None

        payload = excessive_break_payload(
            day, self._attendance.list_breaks(day_id), self._policies.work_policy(company_id), rule
        )
        if payload is None:
            return None
        return self._recorder.record(user_id=user_id, rule=rule, payload=payload, now=now)

    # -- batch -------------------------------------------------------------

    def run_daily_detection(self, *, now: datetime | None = None) -> DetectionReport:
        now = now or now_local()
        report = DetectionReport()
        logger.info("Daily anomaly detection started for %s", now.date())

        for company_id in self._users.list_company_ids():
            report.companies += 1
            try:
                rules = self._policies.enabled_rules(company_id)
                policy = self._policies.work_policy(company_id)
                user_ids = self._users.list_active_user_ids(company_id)
            except Exception:
                report.failures += 1
                logger.exception("Skipping company %s: could not load rules, policy or users", company_id)
                continue

            for rule in rules:
                self._evaluate_rule(company_id, rule, policy, user_ids, now, report)

        logger.info("Daily anomaly detection finished: %s", report.to_dict())
        return report

    def _evaluate_rule(
        self,
        company_id: int,
        rule: AnomalyRule,
        policy: WorkPolicy,
        user_ids: Sequence[int],
        now: datetime,
        report: DetectionReport,
    ) -> None:
        evaluator = self._evaluators().get(rule.type)
        if evaluator is None:
            logger.debug("Rule %s (%s) is only evaluated on transitions", rule.rule_id, rule.type.value)
            return

        report.rules_evaluated += 1
        for user_id in user_ids:
            try:
                payload = evaluator(user_id, rule, policy, now)
                if payload is None:
                    continue
                if self._recorder.record(user_id=user_id, rule=rule, payload=payload, now=now) is None:
                    report.suppressed += 1
                else:
                    report.anomalies_created += 1
            except Exception:
                report.failures += 1
                logger.exception(
                    "Rule evaluation failed (company_id=%s, rule_id=%s, user_id=%s)",
                    company_id,
                    rule.rule_id,
                    user_id,
                )

    def _evaluators(self) -> Dict[AnomalyType, Callable[[int, AnomalyRule, WorkPolicy, datetime], Optional[AnomalyPayload]]]:
        return {
            AnomalyType.MISSING_CHECK_OUT: self.check_missing_check_out,
            AnomalyType.REPEATED_LATE_CHECK_IN: self.check_repeated_late_check_in,
            AnomalyType.EXCESSIVE_BREAK: self.check_daily_excessive_break,
            AnomalyType.TIMESHEET_MISMATCH: self.check_timesheet_mismatch,
        }

    def check_missing_check_out(
        self, user_id: int, rule: AnomalyRule, policy: WorkPolicy, now: datetime
    ) -> Optional[MissingCheckOutPayload]:
        day = self._attendance.get_day_for_user(user_id, now.date())
        if day is None or day.is_complete:
            return None
        events = self._attendance.list_events(day.day_id)
        if not any(e.type == AttendanceEventType.CHECK_IN for e in events):
            return None
        return MissingCheckOutPayload(work_date=day.work_date)

    def check_repeated_late_check_in(
        self, user_id: int, rule: AnomalyRule, policy: WorkPolicy, now: datetime
    ) -> Optional[RepeatedLateCheckInPayload]:
        """Counts days in the window whose first check-in came after start + grace."""
        cutoff = minute_of_day(datetime.combine(now.date(), policy.workday_start)) + policy.grace_minutes_late
        window_start = now.date() - timedelta(days=max(rule.window_days - 1, 0))

        late = 0
        for day in self._attendance.list_days(user_id, window_start, now.date()):
            check_ins = [e for e in self._attendance.list_events(day.day_id) if e.type == AttendanceEventType.CHECK_IN]
            if not check_ins:
                continue
            first = min(check_ins, key=lambda e: e.timestamp)
            if minute_of_day(first.timestamp) > cutoff:
                late += 1

        if late < rule.threshold:
            return None
        return RepeatedLateCheckInPayload(late_count=late, window_days=rule.window_days)

    def check_daily_excessive_break(
        self, user_id: int, rule: AnomalyRule, policy: WorkPolicy, now: datetime
    ) -> Optional[ExcessiveBreakPayload]:
        day = self._attendance.get_day_for_user(user_id, now.date())
        if day is None:
            return None
        return excessive_break_payload(day, self._attendance.list_breaks(day.day_id), policy, rule)

    def check_timesheet_mismatch(
        self, user_id: int, rule: AnomalyRule, policy: WorkPolicy, now: datetime
    ) -> Optional[TimesheetMismatchPayload]:
        """Compares yesterday's attendance minutes with the minutes booked on timesheets."""
        yesterday: date = now.date() - timedelta(days=1)
        day = self._attendance.get_day_for_user(user_id, yesterday)
        attendance_minutes = day.total_work_minutes if day else 0
        if attendance_minutes <= 0:
            return None

        timesheet_minutes = self._timesheets.minutes_for_date(user_id, yesterday)
        variance = abs(attendance_minutes - timesheet_minutes) / attendance_minutes
        if variance <= rule.threshold / 100:
            return None
        return TimesheetMismatchPayload(
            work_date=yesterday,
            attendance_minutes=attendance_minutes,
            timesheet_minutes=timesheet_minutes,
            variance=round(variance, 4),
        )
