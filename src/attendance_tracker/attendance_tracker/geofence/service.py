from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from ..anomalies.model import GeofenceFailurePayload
from ..anomalies.service import AnomalyRecorder
from ..common.datetime_utils import now_local
from ..common.validators import validate_coordinates
from ..core.constants import EARTH_RADIUS_METERS
from ..core.enums import AnomalyType, VerificationStatus
from ..policies.service import PolicyProvider

logger = logging.getLogger(__name__)


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates, in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


class GeofenceValidator:
    """Checks an office check-in position against the company's offices."""

    def __init__(self, policies: PolicyProvider, recorder: AnomalyRecorder):
        self._policies = policies
        self._recorder = recorder

    def validate(self, company_id: int, latitude: Optional[float], longitude: Optional[float]) -> VerificationStatus:
        policy = self._policies.geofence_policy(company_id)
        if policy is None or not policy.is_enabled:
            return VerificationStatus.NONE

        latitude, longitude = validate_coordinates(latitude, longitude)
        if latitude is None:
            if policy.require_geofence_for_office:
                return VerificationStatus.GEOFENCE_FAILED
            return VerificationStatus.NONE

        offices = self._policies.active_offices(company_id)
        if not offices:
            return VerificationStatus.NONE

        for office in offices:
            distance = haversine_meters(latitude, longitude, office.latitude, office.longitude)
            if distance <= office.radius_meters:
                logger.debug("Check-in %.0fm from office %s (radius %sm)", distance, office.office_id, office.radius_meters)
                return VerificationStatus.GEOFENCE_PASSED

        return VerificationStatus.GEOFENCE_FAILED

    def validate_and_flag(
        self,
        *,
        user_id: int,
        company_id: int,
        latitude: Optional[float],
        longitude: Optional[float],
        now: datetime | None = None,
    ) -> VerificationStatus:
        """validate(), plus a GeofenceFailure anomaly when it fails and a rule is enabled."""
        status = self.validate(company_id, latitude, longitude)
        if status != VerificationStatus.GEOFENCE_FAILED:
            return status

        rule = self._policies.enabled_rule(company_id, AnomalyType.GEOFENCE_FAILURE)
        if rule is None:
            return status

        now = now or now_local()
        self._recorder.record(
            user_id=user_id,
            rule=rule,
            payload=GeofenceFailurePayload(
                latitude=latitude,
                longitude=longitude,
                timestamp=now,
                verification_status=status,
            ),
            now=now,
        )
        return status
