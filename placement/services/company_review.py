"""Company registration review."""

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.core.errors import ConflictError, FieldError, GuardViolation, ValidationFailed
from placement.models import Company
from placement.repositories.base import AsyncRepository
from placement.schemas.effects import EffectEvent, EffectKind
from placement.utils.constants import CompanyStatus
from placement.utils.helpers import utcnow

logger = structlog.get_logger(__name__)


class CompanyReview:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], dispatcher):
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    async def register(self, company_id: Any) -> Company:
        """Queue a newly registered (pending) company for admin review."""
        async with self.session_factory() as session:
            async with session.begin():
                companies = AsyncRepository(Company, session)
                company = await companies.get_or_404(company_id)
                if company.status != CompanyStatus.PENDING.value:
                    raise ConflictError(f"Company is already {company.status}")
                event = self._event(EffectKind.COMPANY_REGISTERED, company)

        logger.info("company_registered", company_id=str(company.id))
        self.dispatcher.dispatch(event)
        return company

    async def approve(self, admin_id: Any, company_id: Any) -> Company:
        """pending -> approved."""
        async with self.session_factory() as session:
            async with session.begin():
                company = await self._transition(
                    session,
                    company_id,
                    CompanyStatus.APPROVED,
                    {"approved_at": utcnow(), "rejection_reason": None},
                )
                event = self._event(EffectKind.COMPANY_APPROVED, company)

        logger.info("company_approved", company_id=str(company.id), admin_id=str(admin_id))
        self.dispatcher.dispatch(event)
        return company

    async def reject(self, admin_id: Any, company_id: Any, reason: str) -> Company:
        """pending -> rejected. A reason is required."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed([FieldError("rejection_reason", "Rejection reason is required")])

        async with self.session_factory() as session:
            async with session.begin():
                company = await self._transition(
                    session,
                    company_id,
                    CompanyStatus.REJECTED,
                    {"rejection_reason": reason, "approved_at": None},
                )
                event = self._event(EffectKind.COMPANY_REJECTED, company, reason=reason)

        logger.info("company_rejected", company_id=str(company.id), admin_id=str(admin_id))
        self.dispatcher.dispatch(event)
        return company

    @staticmethod
    async def _transition(session: AsyncSession, company_id: Any, target: CompanyStatus, values: dict) -> Company:
        companies = AsyncRepository(Company, session)
        company = await companies.get_or_404(company_id)
        if company.status == target.value:
            raise ConflictError(f"Company is already {target.value}")
        if company.status != CompanyStatus.PENDING.value:
            raise GuardViolation(f"Cannot change a company that is {company.status}")
        if not await companies.update_where(company.id, CompanyStatus.PENDING.value, {"status": target.value, **values}):
            raise ConflictError("Company was changed concurrently")
        return company

    @staticmethod
    def _event(kind: EffectKind, company: Company, reason: str = None) -> EffectEvent:
        return EffectEvent.build(
            kind,
            company.id,
            utcnow(),
            company_id=str(company.id),
            company_name=company.name,
            company_user_id=str(company.user_id),
            company_email=company.email,
            reason=reason,
        )
