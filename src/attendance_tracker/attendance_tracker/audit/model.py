from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AuditRecord:
    actor_id: int
    action: str
    entity_type: str
    entity_id: int
    before: Optional[dict] = None
    after: Optional[dict] = None
    reason: Optional[str] = None
