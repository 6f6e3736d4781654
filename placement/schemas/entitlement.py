"""Entitlement and admission result schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Entitlement(BaseModel):
    """A student's computed subscription state. ``quota=None`` means unbounded."""

    tier: str
    status: str
    is_active: bool
    in_grace_period: bool
    quota: Optional[int]
    subscription_id: Optional[UUID] = None
    plan_id: Optional[UUID] = None
    end_date: Optional[datetime] = None
    grace_period_ends_at: Optional[datetime] = None

    @property
    def unlimited(self) -> bool:
        return self.quota is None


class AdmissionDecision(BaseModel):
    """Outcome of ``can_apply``. ``limit=None`` means unbounded."""

    allowed: bool
    reason: Optional[str] = None  # not_found, hired, limit
    used: int = 0
    limit: Optional[int] = None
