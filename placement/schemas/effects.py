"""Side-effect events emitted after a committed transition."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field

from placement.utils.helpers import utcnow


class EffectKind(str, Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_WITHDRAWN = "application_withdrawn"
    APPLICATION_REVIEWED = "application_reviewed"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_HIRED = "application_hired"
    JOB_SUBMITTED = "job_submitted"
    JOB_APPROVED = "job_approved"
    JOB_REJECTED = "job_rejected"
    COMPANY_REGISTERED = "company_registered"
    COMPANY_APPROVED = "company_approved"
    COMPANY_REJECTED = "company_rejected"


class EffectEvent(BaseModel):
    """A committed transition to translate into notifications and email.

    ``key`` identifies the transition instance; handlers derive their
    idempotency keys from it so a replayed event has no new visible effect.
    """

    kind: EffectKind
    key: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utcnow)
    attempt: int = 0

    @classmethod
    def build(cls, kind: EffectKind, entity_id: Any, occurred_at: datetime, **payload: Any) -> "EffectEvent":
        key = f"{kind.value}:{entity_id}:{occurred_at.isoformat()}"
        return cls(kind=kind, key=key, payload=payload, occurred_at=occurred_at)
