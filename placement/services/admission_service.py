"""Admission control: may this student create one more application?"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.core.errors import AdmissionDenied, NotFoundError, QuotaExceeded
from placement.models import Application, Student
from placement.repositories.base import AsyncRepository
from placement.schemas.entitlement import AdmissionDecision
from placement.services.entitlement_service import EntitlementService
from placement.utils.constants import NON_COUNTABLE_APPLICATION_STATUSES


class AdmissionService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], entitlements: EntitlementService):
        self.session_factory = session_factory
        self.entitlements = entitlements

    async def count_active_applications(self, session: AsyncSession, student_id: Any) -> int:
        """Applications that consume quota (everything but withdrawn/rejected)."""
        return await AsyncRepository(Application, session).count(
            Application.student_id == student_id,
            Application.status.not_in(NON_COUNTABLE_APPLICATION_STATUSES),
        )

    async def can_apply(self, student_id: Any, *, session: Optional[AsyncSession] = None) -> AdmissionDecision:
        if session is not None:
            return await self._decide(session, student_id)
        async with self.session_factory() as own_session:
            async with own_session.begin():
                return await self._decide(own_session, student_id)

    async def _decide(self, session: AsyncSession, student_id: Any, *, lock: bool = False) -> AdmissionDecision:
        student = await AsyncRepository(Student, session).get(student_id, for_update=lock)
        if student is None:
            return AdmissionDecision(allowed=False, reason="not_found")
        if student.is_hired:
            return AdmissionDecision(allowed=False, reason="hired")

        entitlement = await self.entitlements.resolve_entitlement(student_id, session=session)
        used = await self.count_active_applications(session, student_id)
        if entitlement.quota is None:
            return AdmissionDecision(allowed=True, used=used, limit=None)
        if used < entitlement.quota:
            return AdmissionDecision(allowed=True, used=used, limit=entitlement.quota)
        return AdmissionDecision(allowed=False, reason="limit", used=used, limit=entitlement.quota)

    async def ensure_can_apply(self, session: AsyncSession, student_id: Any) -> AdmissionDecision:
        """Admission inside the caller's transaction, with the student row locked."""
        decision = await self._decide(session, student_id, lock=True)
        if decision.allowed:
            return decision
        if decision.reason == "not_found":
            raise NotFoundError("Student", student_id)
        if decision.reason == "hired":
            raise AdmissionDenied("hired", "You have already been hired and cannot apply to more jobs")
        raise QuotaExceeded(decision.used, decision.limit)
