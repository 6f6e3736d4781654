"""Entitlement engine: a student's subscription state and application quota."""

from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.models import Plan, Student, Subscription
from placement.repositories.base import AsyncRepository
from placement.schemas.entitlement import Entitlement
from placement.services.config_resolver import ConfigResolver
from placement.utils.constants import SubscriptionStatus, SubscriptionTier
from placement.utils.helpers import utcnow

logger = structlog.get_logger(__name__)


class EntitlementService:
    """Computes entitlements; heals dangling references and expires lapsed rows lazily."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], config: ConfigResolver):
        self.session_factory = session_factory
        self.config = config

    async def resolve_entitlement(
        self,
        student_id: Any,
        *,
        session: Optional[AsyncSession] = None,
        now: Optional[datetime] = None,
    ) -> Entitlement:
        """Entitlement for ``student_id``.

        With ``session`` the reads and self-healing writes join the caller's
        transaction; otherwise a short transaction of our own is used.
        """
        now = now or utcnow()
        if session is not None:
            return await self._resolve(session, student_id, now)
        async with self.session_factory() as own_session:
            async with own_session.begin():
                return await self._resolve(own_session, student_id, now)

    async def get_application_limit(self, student_id: Any) -> Optional[int]:
        return (await self.resolve_entitlement(student_id)).quota

    async def is_subscription_active(self, student_id: Any) -> bool:
        return (await self.resolve_entitlement(student_id)).is_active

    async def _free(self, session: AsyncSession) -> Entitlement:
        return Entitlement(
            tier=SubscriptionTier.FREE.value,
            status="free",
            is_active=True,
            in_grace_period=False,
            quota=await self.config.free_tier_limit(session),
        )

    async def _resolve(self, session: AsyncSession, student_id: Any, now: datetime) -> Entitlement:
        student = await session.get(Student, student_id)
        if student is None or student.current_subscription_id is None:
            return await self._free(session)

        subscriptions = AsyncRepository(Subscription, session)
        subscription = await subscriptions.get(student.current_subscription_id)
        if subscription is None:
            await self._heal_dangling_reference(session, student)
            return await self._free(session)

        if subscription.status == SubscriptionStatus.CANCELLED.value:
            return Entitlement(
                tier=SubscriptionTier.PAID.value,
                status=SubscriptionStatus.CANCELLED.value,
                is_active=False,
                in_grace_period=False,
                quota=await self.config.free_tier_limit(session),
                subscription_id=subscription.id,
                plan_id=subscription.plan_id,
                end_date=subscription.end_date,
            )

        grace_days = await self.config.grace_period_days(session)
        end_date = subscription.end_date
        grace_end = end_date + timedelta(days=grace_days)
        in_grace = end_date < now <= grace_end
        is_active = subscription.status == SubscriptionStatus.ACTIVE.value and (end_date >= now or in_grace)

        status = subscription.status
        if not is_active and status != SubscriptionStatus.EXPIRED.value and end_date < now:
            # Monotonic and idempotent: a concurrent writer at worst makes this a no-op
            expired = await subscriptions.update_where(
                subscription.id, status, {"status": SubscriptionStatus.EXPIRED.value}
            )
            if expired:
                logger.info("subscription_expired", subscription_id=str(subscription.id), student_id=str(student.id))
            status = SubscriptionStatus.EXPIRED.value

        if is_active:
            plan = await session.get(Plan, subscription.plan_id)
            quota = plan.max_applications if plan is not None else await self.config.free_tier_limit(session)
        else:
            quota = await self.config.free_tier_limit(session)

        return Entitlement(
            tier=student.subscription_tier,
            status=status,
            is_active=is_active,
            in_grace_period=in_grace,
            quota=quota,
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            end_date=end_date,
            grace_period_ends_at=grace_end,
        )

    async def _heal_dangling_reference(self, session: AsyncSession, student: Student) -> None:
        students = AsyncRepository(Student, session)
        dangling_id = student.current_subscription_id
        # Only clear the reference we observed; a concurrent purchase wins
        healed = await students.bulk_update(
            [Student.id == student.id, Student.current_subscription_id == dangling_id],
            {"current_subscription_id": None, "subscription_tier": SubscriptionTier.FREE.value},
        )
        if healed:
            await session.refresh(student)
            logger.warning(
                "dangling_subscription_reference_cleared",
                student_id=str(student.id),
                subscription_id=str(dangling_id),
            )
