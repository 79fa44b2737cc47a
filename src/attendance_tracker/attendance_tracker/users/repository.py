from __future__ import annotations

from typing import Protocol, Sequence


class UserDirectory(Protocol):
    """Read-only view of companies and their employees.

    Identity and access control live elsewhere; the daily sweep only needs
    to know whom to evaluate.
    """

    def list_company_ids(self) -> Sequence[int]:
        raise NotImplementedError

    def list_active_user_ids(self, company_id: int) -> Sequence[int]:
        raise NotImplementedError
