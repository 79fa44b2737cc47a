from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from ..core.enums import AnomalySeverity, AnomalyType
from .model import AnomalyEvent, AnomalyPayload


class AnomalyRepository(Protocol):
    def find_open(
        self,
        *,
        user_id: int,
        anomaly_type: AnomalyType,
        detected_from: Optional[datetime] = None,
        detected_to: Optional[datetime] = None,
    ) -> Optional[AnomalyEvent]:
        """First Open anomaly of this type for the user, optionally within [from, to)."""
        raise NotImplementedError

    def create(
        self,
        *,
        user_id: int,
        rule_id: int,
        severity: AnomalySeverity,
        title: str,
        description: str,
        payload: AnomalyPayload,
        detected_at: datetime,
    ) -> AnomalyEvent:
        raise NotImplementedError

