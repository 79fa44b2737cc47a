from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from ..core.enums import AttendanceEventType, BreakType, VerificationStatus, WorkMode
from .model import AttendanceDay, AttendanceEvent, BreakSegment, CheckInLocation, DayTotals

T = TypeVar("T")


class AttendanceRepository(Protocol):
    """Per-user-per-day records, their events and their break segments.

    The same interface is handed to transaction callbacks; there every call
    runs on the transaction's connection.
    """

    def get_day(self, day_id: int) -> Optional[AttendanceDay]:
        raise NotImplementedError

    def get_day_for_user(self, user_id: int, work_date: date) -> Optional[AttendanceDay]:
        raise NotImplementedError

    def lock_day_for_user(self, user_id: int, work_date: date) -> Optional[AttendanceDay]:
        """Like get_day_for_user, but takes a write lock where the store supports one."""
        raise NotImplementedError

    def upsert_day(self, user_id: int, work_date: date) -> AttendanceDay:
        """Create the day, or reopen it (is_complete=False) if it exists."""
        raise NotImplementedError

    def update_totals(self, day_id: int, totals: DayTotals, *, is_complete: bool) -> None:
        raise NotImplementedError

    def list_days(
        self, user_id: int, start_date: date, end_date: date, *, offset: int = 0, limit: Optional[int] = None
    ) -> Sequence[AttendanceDay]:
        """Days in [start_date, end_date], newest first."""
        raise NotImplementedError

    def count_days(self, user_id: int, start_date: date, end_date: date) -> int:
        raise NotImplementedError

    def list_events(self, day_id: int) -> Sequence[AttendanceEvent]:
        """Events of a day, ascending by timestamp."""
        raise NotImplementedError

    def get_event(self, event_id: int) -> Optional[AttendanceEvent]:
        raise NotImplementedError

    def list_check_in_locations(
        self, company_id: int, start: datetime, end: datetime
    ) -> Sequence[CheckInLocation]:
        """Check-ins with coordinates by the company's users in [start, end), newest first."""
        raise NotImplementedError

    def add_event(
        self,
        *,
        day_id: int,
        type: AttendanceEventType,
        timestamp: datetime,
        work_mode: WorkMode,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        verification_status: VerificationStatus = VerificationStatus.NONE,
        device_fingerprint: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AttendanceEvent:
        raise NotImplementedError

    def override_event(
        self,
        event_id: int,
        *,
        timestamp: datetime,
        work_mode: WorkMode,
        reason: str,
        override_by: int,
    ) -> AttendanceEvent:
        raise NotImplementedError

    def list_breaks(self, day_id: int) -> Sequence[BreakSegment]:
        """Breaks of a day, ascending by start time."""
        raise NotImplementedError

    def get_break(self, break_id: int) -> Optional[BreakSegment]:
        raise NotImplementedError

    def add_break(self, *, day_id: int, type: BreakType, start_time: datetime) -> BreakSegment:
        raise NotImplementedError

    def close_break(self, break_id: int, *, end_time: datetime, duration_minutes: int) -> BreakSegment:
        """Close an open break; ConflictError if something else closed it first."""
        raise NotImplementedError


class AttendanceStore(AttendanceRepository, Protocol):
    def run_in_transaction(self, work: Callable[[AttendanceRepository], T]) -> T:
        """Run `work` inside one serializable transaction.

        `work` receives the transaction-bound repository and must do all of
        its reads and writes through it. Losing a race to a concurrent
        transaction surfaces as ConflictError.
        """
        raise NotImplementedError
