from __future__ import annotations

from datetime import date
from typing import Protocol


class LeaveRepository(Protocol):
    def count_approved_leave_days(self, user_id: int, start_date: date, end_date: date) -> int:
        """Days covered by approved leave requests lying inside [start_date, end_date]."""
        raise NotImplementedError
