from __future__ import annotations

from datetime import date
from typing import Protocol


class TimesheetRepository(Protocol):
    def minutes_for_date(self, user_id: int, work_date: date) -> int:
        """Sum of the user's timesheet entry minutes for the date (0 if none)."""
        raise NotImplementedError
