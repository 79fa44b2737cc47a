from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.enums import AnomalyType
from .model import AnomalyRule, GeofencePolicy, OfficeLocation, WorkPolicy


class PolicyRepository(Protocol):
    def get_work_policy(self, company_id: int) -> Optional[WorkPolicy]:
        raise NotImplementedError

    def get_geofence_policy(self, company_id: int) -> Optional[GeofencePolicy]:
        raise NotImplementedError

    def list_active_offices(self, company_id: int) -> Sequence[OfficeLocation]:
        raise NotImplementedError

    def list_enabled_rules(self, company_id: int) -> Sequence[AnomalyRule]:
        raise NotImplementedError

    def find_enabled_rule(self, company_id: int, anomaly_type: AnomalyType) -> Optional[AnomalyRule]:
        raise NotImplementedError
