from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Optional, Sequence

from ..anomalies.detection import AnomalyDetectionService
from ..audit.model import AuditRecord
from ..audit.repository import AuditSink
from ..common.datetime_utils import day_window, format_minute_of_day, minute_of_day, minutes_between, now_local
from ..common.validators import parse_enum, require_non_empty, validate_coordinates
from ..core.constants import DEFAULT_HISTORY_PAGE_SIZE
from ..core.enums import AttendanceEventType, BreakType, SessionStatus, VerificationStatus, WorkMode
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..geofence.service import GeofenceValidator
from ..leaves.repository import LeaveRepository
from ..policies.service import PolicyProvider
from .model import (
    AttendanceDay,
    AttendanceEvent,
    AttendanceSummary,
    BreakResult,
    BreakSegment,
    CheckInLocation,
    CheckInResult,
    CheckOutResult,
    DayRecord,
    DayTotals,
    DayView,
    HistoryPage,
)
from .repository import AttendanceRepository, AttendanceStore
from .totals import (
    calculate_day_totals,
    check_out_after,
    derive_status,
    latest_check_in,
    live_totals,
    open_break,
    open_session,
)

logger = logging.getLogger(__name__)


class AttendanceService:
    """Check-in / check-out / break transitions for one user's day.

    Only check-in runs as a serializable transaction: it re-checks the
    open-session rule inside the transaction so that of two concurrent
    attempts exactly one wins. The other transitions each touch a row the
    caller owns and fail cleanly on retry.
    """

    def __init__(
        self,
        store: AttendanceStore,
        policies: PolicyProvider,
        geofence: GeofenceValidator,
        detection: AnomalyDetectionService,
        audit: AuditSink,
        leaves: LeaveRepository,
    ):
        self._store = store
        self._policies = policies
        self._geofence = geofence
        self._detection = detection
        self._audit = audit
        self._leaves = leaves

    # -- transitions -----------------------------------------------------

    def check_in(
        self,
        user_id: int,
        company_id: int,
        *,
        work_mode,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        device_fingerprint: Optional[str] = None,
        notes: Optional[str] = None,
        now: datetime | None = None,
    ) -> CheckInResult:
        now = now or now_local()
        today = now.date()
        work_mode = parse_enum(WorkMode, work_mode, "workMode")
        latitude, longitude = validate_coordinates(latitude, longitude)

        # Repeated under the row lock below.
        existing = self._store.get_day_for_user(user_id, today)
        if existing is not None and open_session(self._store.list_events(existing.day_id)) is not None:
            raise ConflictError("Already checked in today. Please check out before checking in again.")

        verification = VerificationStatus.NONE
        if work_mode == WorkMode.OFFICE:
            verification = self._geofence.validate_and_flag(
                user_id=user_id, company_id=company_id, latitude=latitude, longitude=longitude, now=now
            )

        def work(tx: AttendanceRepository) -> AttendanceEvent:
            day = tx.lock_day_for_user(user_id, today)
            if day is not None and open_session(tx.list_events(day.day_id)) is not None:
                raise ConflictError("Already checked in today. Please check out before checking in again.")
            day = tx.upsert_day(user_id, today)
            return tx.add_event(
                day_id=day.day_id,
                type=AttendanceEventType.CHECK_IN,
                timestamp=now,
                work_mode=work_mode,
                latitude=latitude,
                longitude=longitude,
                verification_status=verification,
                device_fingerprint=device_fingerprint,
                notes=notes,
            )

        try:
            event = self._store.run_in_transaction(work)
        except ConflictError:
            logger.warning("Check-in rejected for user %s on %s: session already open", user_id, today)
            raise

        self._audit.record(
            AuditRecord(
                actor_id=user_id,
                action="AttendanceCheckIn",
                entity_type="AttendanceEvent",
                entity_id=event.event_id,
                after={"workMode": work_mode.value, "verificationStatus": verification.value},
            )
        )
        logger.info("User %s checked in (day %s, %s, %s)", user_id, event.day_id, work_mode.value, verification.value)
        return CheckInResult(event=event, day=self._view(event.day_id, company_id, today, now=now))

    def check_out(
        self,
        user_id: int,
        company_id: int,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        notes: Optional[str] = None,
        now: datetime | None = None,
    ) -> CheckOutResult:
        now = now or now_local()
        today = now.date()
        latitude, longitude = validate_coordinates(latitude, longitude)

        day = self._store.get_day_for_user(user_id, today)
        if day is None:
            raise ConflictError("Not checked in today")

        events = self._store.list_events(day.day_id)
        session = latest_check_in(events)
        if session is None:
            raise ConflictError("No check-in found for today")
        if check_out_after(events, session) is not None:
            raise ConflictError("Already checked out for this session")

        for segment in self._store.list_breaks(day.day_id):
            if not segment.is_open:
                continue
            try:
                self._close_break(user_id, company_id, segment, now=now)
            except ConflictError:
                logger.info("Break %s was ended by another request before check-out", segment.break_id)

        event = self._store.add_event(
            day_id=day.day_id,
            type=AttendanceEventType.CHECK_OUT,
            timestamp=now,
            work_mode=session.work_mode,
            latitude=latitude,
            longitude=longitude,
            notes=notes,
        )
        self._recalculate(day.day_id, company_id, is_complete=True)

        self._audit.record(
            AuditRecord(actor_id=user_id, action="AttendanceCheckOut", entity_type="AttendanceEvent", entity_id=event.event_id)
        )
        logger.info("User %s checked out (day %s)", user_id, day.day_id)
        return CheckOutResult(event=event, day=self._view(day.day_id, company_id, today, now=now))

    def start_break(self, user_id: int, company_id: int, *, break_type, now: datetime | None = None) -> BreakResult:
        now = now or now_local()
        today = now.date()
        break_type = parse_enum(BreakType, break_type, "type")

        day = self._store.get_day_for_user(user_id, today)
        if day is None:
            raise ConflictError("Not checked in today")
        if open_session(self._store.list_events(day.day_id)) is None:
            raise ConflictError("Cannot start break - not in an active work session")
        if open_break(self._store.list_breaks(day.day_id)) is not None:
            raise ConflictError("Already on a break")

        segment = self._store.add_break(day_id=day.day_id, type=break_type, start_time=now)
        self._audit.record(
            AuditRecord(
                actor_id=user_id,
                action="BreakStarted",
                entity_type="BreakSegment",
                entity_id=segment.break_id,
                after={"type": break_type.value},
            )
        )
        logger.info("User %s started %s %s (day %s)", user_id, break_type.value, segment.break_id, day.day_id)
        return BreakResult(segment=segment, day=self._view(day.day_id, company_id, today, now=now))

    def end_break(self, user_id: int, company_id: int, break_id: int, *, now: datetime | None = None) -> BreakResult:
        now = now or now_local()

        segment = self._store.get_break(break_id)
        if segment is None:
            raise NotFoundError("Break not found")
        day = self._store.get_day(segment.day_id)
        if day is None or day.user_id != user_id:
            raise NotFoundError("Break not found")
        if not segment.is_open:
            raise ConflictError("Break already ended")

        closed = self._close_break(user_id, company_id, segment, now=now)
        return BreakResult(segment=closed, day=self._view(day.day_id, company_id, day.work_date, now=now))

    def override_event(
        self,
        event_id: int,
        *,
        actor_id: int,
        company_id: int,
        reason: str,
        timestamp: datetime | None = None,
        work_mode=None,
    ) -> AttendanceEvent:
        """Administrative correction of a recorded event; day totals follow."""
        reason = require_non_empty(reason, "reason")
        if timestamp is None and work_mode is None:
            raise ValidationError("Provide a new timestamp or work mode")
        if work_mode is not None:
            work_mode = parse_enum(WorkMode, work_mode, "workMode")

        event = self._store.get_event(event_id)
        if event is None:
            raise NotFoundError("Attendance event not found")

        updated = self._store.override_event(
            event_id,
            timestamp=timestamp or event.timestamp,
            work_mode=work_mode or event.work_mode,
            reason=reason,
            override_by=actor_id,
        )

        events = self._store.list_events(event.day_id)
        self._recalculate(event.day_id, company_id, is_complete=open_session(events) is None)

        self._audit.record(
            AuditRecord(
                actor_id=actor_id,
                action="AttendanceOverride",
                entity_type="AttendanceEvent",
                entity_id=event_id,
                before={"timestamp": event.timestamp.isoformat(), "workMode": event.work_mode.value},
                after={"timestamp": updated.timestamp.isoformat(), "workMode": updated.work_mode.value},
                reason=reason,
            )
        )
        logger.info("Event %s overridden by %s (day %s)", event_id, actor_id, event.day_id)
        return updated

    # -- reads -----------------------------------------------------------

    def get_today(self, user_id: int, company_id: int, *, now: datetime | None = None) -> DayView:
        now = now or now_local()
        day = self._store.get_day_for_user(user_id, now.date())
        return self._view(day.day_id if day else None, company_id, now.date(), now=now)

    def get_history(
        self,
        user_id: int,
        start_date: date,
        end_date: date,
        *,
        page: int = 1,
        limit: int = DEFAULT_HISTORY_PAGE_SIZE,
    ) -> HistoryPage:
        self._require_range(start_date, end_date)
        page, limit = int(page), int(limit)
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be at least 1")

        days = self._store.list_days(user_id, start_date, end_date, offset=(page - 1) * limit, limit=limit)
        total = self._store.count_days(user_id, start_date, end_date)
        records = [self._record(d) for d in days]
        return HistoryPage(days=records, page=page, limit=limit, total=total)

    def get_summary(self, user_id: int, start_date: date, end_date: date) -> AttendanceSummary:
        self._require_range(start_date, end_date)
        days = self._store.list_days(user_id, start_date, end_date)

        check_ins: list[datetime] = []
        check_outs: list[datetime] = []
        present = 0
        for d in days:
            events = self._store.list_events(d.day_id)
            day_check_ins = [e.timestamp for e in events if e.type == AttendanceEventType.CHECK_IN]
            if day_check_ins:
                present += 1
            check_ins.extend(day_check_ins)
            check_outs.extend(e.timestamp for e in events if e.type == AttendanceEventType.CHECK_OUT)

        total_days = (end_date - start_date).days + 1
        leave_days = self._leaves.count_approved_leave_days(user_id, start_date, end_date)
        work_minutes = sum(d.total_work_minutes for d in days)
        overtime = sum(d.overtime_minutes for d in days)

        return AttendanceSummary(
            total_days=total_days,
            present_days=present,
            absent_days=max(0, total_days - present - leave_days),
            leave_days=leave_days,
            total_work_hours=round(work_minutes / 60, 1),
            total_overtime_hours=round(overtime / 60, 1),
            average_check_in_time=_average_time_of_day(check_ins),
            average_check_out_time=_average_time_of_day(check_outs),
        )

    def list_check_in_locations(self, company_id: int, start_date: date, end_date: date) -> Sequence[CheckInLocation]:
        """Geotagged check-ins of a company between two dates, both inclusive."""
        self._require_range(start_date, end_date)
        start, _ = day_window(start_date)
        _, end = day_window(end_date)
        return self._store.list_check_in_locations(company_id, start, end)

    # -- internals -------------------------------------------------------

    def _close_break(self, user_id: int, company_id: int, segment: BreakSegment, *, now: datetime) -> BreakSegment:
        if now < segment.start_time:
            raise ValidationError("Break cannot end before it started")
        duration = minutes_between(segment.start_time, now)
        closed = self._store.close_break(segment.break_id, end_time=now, duration_minutes=duration)

        day = self._store.get_day(segment.day_id)
        self._recalculate(segment.day_id, company_id, is_complete=day.is_complete if day else False)
        self._detection.check_excessive_break(user_id=user_id, company_id=company_id, day_id=segment.day_id, now=now)

        self._audit.record(
            AuditRecord(
                actor_id=user_id,
                action="BreakEnded",
                entity_type="BreakSegment",
                entity_id=segment.break_id,
                after={"durationMinutes": duration},
            )
        )
        logger.info("User %s ended break %s after %s min", user_id, segment.break_id, duration)
        return closed

    def _recalculate(self, day_id: int, company_id: int, *, is_complete: bool) -> Optional[DayTotals]:
        events = self._store.list_events(day_id)
        if not any(e.type == AttendanceEventType.CHECK_IN for e in events):
            logger.debug("Day %s has no check-in, totals left as they are", day_id)
            return None

        policy = self._policies.work_policy(company_id)
        totals = calculate_day_totals(events, self._store.list_breaks(day_id), policy)
        self._store.update_totals(day_id, totals, is_complete=is_complete)
        return totals

    def _view(self, day_id: Optional[int], company_id: int, work_date: date, *, now: datetime) -> DayView:
        policy = self._policies.work_policy(company_id)
        day = self._store.get_day(day_id) if day_id is not None else None
        if day is None:
            return DayView(work_date=work_date, status=SessionStatus.NOT_CHECKED_IN, totals=DayTotals(), policy=policy)

        events = list(self._store.list_events(day.day_id))
        breaks = list(self._store.list_breaks(day.day_id))
        status = derive_status(events, breaks)
        last = latest_check_in(events)
        check_out = check_out_after(events, last) if last else None

        if status in (SessionStatus.WORKING, SessionStatus.ON_BREAK):
            totals = live_totals(events, breaks, policy, now=now)
        else:
            totals = DayTotals(
                work_minutes=day.total_work_minutes,
                break_minutes=day.total_break_minutes,
                lunch_minutes=day.total_lunch_minutes,
                overtime_minutes=day.overtime_minutes,
            )

        return DayView(
            day_id=day.day_id,
            work_date=day.work_date,
            status=status,
            totals=totals,
            policy=policy,
            check_in_time=last.timestamp if last else None,
            check_out_time=check_out.timestamp if check_out else None,
            work_mode=last.work_mode if last else None,
            current_break=open_break(breaks),
            events=tuple(events),
            breaks=tuple(breaks),
        )

    def _record(self, day: AttendanceDay) -> DayRecord:
        return DayRecord(
            day=day,
            events=tuple(self._store.list_events(day.day_id)),
            breaks=tuple(self._store.list_breaks(day.day_id)),
        )

    @staticmethod
    def _require_range(start_date: date, end_date: date) -> None:
        if end_date < start_date:
            raise ValidationError("endDate must not be before startDate")


def _average_time_of_day(timestamps: Sequence[datetime]) -> Optional[str]:
    if not timestamps:
        return None
    average = math.floor(sum(minute_of_day(ts) for ts in timestamps) / len(timestamps) + 0.5)
    return format_minute_of_day(average)
