from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import day_window, now_local
from ..core.enums import AnomalyType
from ..policies.model import AnomalyRule
from .model import AnomalyEvent, AnomalyPayload
from .repository import AnomalyRepository

logger = logging.getLogger(__name__)

# Types whose open-record lookup is also limited to the detection day.
DAY_SCOPED_TYPES = frozenset({AnomalyType.EXCESSIVE_BREAK, AnomalyType.MISSING_CHECK_OUT})


class AnomalyRecorder:
    """Single write path for anomaly records.

    A detection is dropped while the user already has an Open anomaly of the
    same type (on the same day, for day-scoped types). The existing record
    is left untouched.
    """

    def __init__(self, anomalies: AnomalyRepository):
        self._anomalies = anomalies

    def record(
        self,
        *,
        user_id: int,
        rule: AnomalyRule,
        payload: AnomalyPayload,
        now: datetime | None = None,
    ) -> Optional[AnomalyEvent]:
        now = now or now_local()
        anomaly_type = payload.type

        detected_from = detected_to = None
        if anomaly_type in DAY_SCOPED_TYPES:
            detected_from, detected_to = day_window(now.date())

        existing = self._anomalies.find_open(
            user_id=user_id,
            anomaly_type=anomaly_type,
            detected_from=detected_from,
            detected_to=detected_to,
        )
        if existing is not None:
            logger.debug(
                "Suppressed %s for user %s, anomaly %s still open", anomaly_type.value, user_id, existing.anomaly_id
            )
            return None

        created = self._anomalies.create(
            user_id=user_id,
            rule_id=rule.rule_id,
            severity=rule.severity,
            title=payload.title,
            description=payload.description,
            payload=payload,
            detected_at=now,
        )
        logger.info(
            "Anomaly %s created: %s for user %s (rule %s, %s)",
            created.anomaly_id,
            anomaly_type.value,
            user_id,
            rule.rule_id,
            rule.severity.value,
        )
        return created
