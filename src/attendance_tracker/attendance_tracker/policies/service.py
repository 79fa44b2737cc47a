from __future__ import annotations

from typing import Optional, Sequence

from ..common.validators import require_positive
from ..core.enums import AnomalyType
from .model import AnomalyRule, GeofencePolicy, OfficeLocation, WorkPolicy
from .repository import PolicyRepository


def validate_work_policy(policy: WorkPolicy) -> WorkPolicy:
    require_positive(policy.break_duration_minutes, "breakDurationMinutes", allow_zero=True)
    require_positive(policy.lunch_duration_minutes, "lunchDurationMinutes", allow_zero=True)
    require_positive(policy.overtime_threshold_minutes, "overtimeThresholdMinutes")
    require_positive(policy.max_overtime_minutes, "maxOvertimeMinutes")
    require_positive(policy.standard_work_hours, "standardWorkHours")
    require_positive(policy.grace_minutes_late, "graceMinutesLate", allow_zero=True)
    return policy


class PolicyProvider:
    """Read-side facade over company configuration.

    Fills in defaults for companies without a work policy and validates the
    ones that exist.
    """

    def __init__(self, policies: PolicyRepository):
        self._policies = policies

    def work_policy(self, company_id: int) -> WorkPolicy:
        policy = self._policies.get_work_policy(company_id)
        if policy is None:
            return WorkPolicy()
        return validate_work_policy(policy)

    def geofence_policy(self, company_id: int) -> Optional[GeofencePolicy]:
        return self._policies.get_geofence_policy(company_id)

    def active_offices(self, company_id: int) -> Sequence[OfficeLocation]:
        return self._policies.list_active_offices(company_id)

    def enabled_rules(self, company_id: int) -> Sequence[AnomalyRule]:
        return self._policies.list_enabled_rules(company_id)

    def enabled_rule(self, company_id: int, anomaly_type: AnomalyType) -> Optional[AnomalyRule]:
        return self._policies.find_enabled_rule(company_id, anomaly_type)
