"""Subscription purchase, renewal and cancellation."""

from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.config import Settings, settings as default_settings
from placement.core.errors import FieldError, NotFoundError, ValidationFailed
from placement.models import Student, Subscription
from placement.repositories.base import AsyncRepository
from placement.services.config_resolver import ConfigResolver
from placement.utils.constants import SubscriptionStatus, SubscriptionTier
from placement.utils.helpers import utcnow

logger = structlog.get_logger(__name__)

SUPERSEDABLE_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PENDING.value)


class SubscriptionService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ConfigResolver,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.settings = settings or default_settings

    def _validate_days(self, field: str, days: Any) -> int:
        limit = self.settings.MAX_SUBSCRIPTION_DAYS
        try:
            days = int(days)
        except (TypeError, ValueError):
            days = 0
        if days < 1 or days > limit:
            raise ValidationFailed([FieldError(field, f"{field} must be between 1 and {limit}")])
        return days

    async def register_free(self, student_id: Any) -> Student:
        """Put a student on the free tier without creating a subscription row."""
        async with self.session_factory() as session:
            async with session.begin():
                students = AsyncRepository(Student, session)
                student = await students.get_or_404(student_id)
                await students.update_values(
                    student.id,
                    {"current_subscription_id": None, "subscription_tier": SubscriptionTier.FREE.value},
                )
        return student

    async def activate_plan(
        self,
        student_id: Any,
        plan_id: Any,
        duration_days: Any = None,
        auto_renew: bool = False,
    ) -> Subscription:
        """Start a new active subscription, superseding the current one."""
        if duration_days is None:
            duration_days = self.settings.DEFAULT_SUBSCRIPTION_DAYS
        days = self._validate_days("duration_days", duration_days)

        async with self.session_factory() as session:
            async with session.begin():
                students = AsyncRepository(Student, session)
                student = await students.get_or_404(student_id, for_update=True)
                plan = await self.config.get_plan(plan_id, session=session)
                if plan is None or not plan.is_active:
                    raise NotFoundError("Plan", plan_id)

                subscriptions = AsyncRepository(Subscription, session)
                previous_id = student.current_subscription_id
                if previous_id is not None:
                    await subscriptions.bulk_update(
                        [
                            Subscription.id == previous_id,
                            Subscription.student_id == student.id,
                            Subscription.status.in_(SUPERSEDABLE_STATUSES),
                        ],
                        {"status": SubscriptionStatus.CANCELLED.value, "auto_renew": False},
                    )

                now = utcnow()
                subscription = await subscriptions.create(
                    student_id=student.id,
                    plan_id=plan.id,
                    start_date=now,
                    end_date=now + timedelta(days=days),
                    status=SubscriptionStatus.ACTIVE.value,
                    auto_renew=bool(auto_renew),
                )
                await students.update_values(
                    student.id,
                    {"current_subscription_id": subscription.id, "subscription_tier": plan.tier},
                )

        logger.info(
            "subscription_activated",
            student_id=str(student_id),
            subscription_id=str(subscription.id),
            plan_id=str(plan_id),
            superseded=str(previous_id) if previous_id else None,
        )
        return subscription

    async def _current(self, session: AsyncSession, student_id: Any) -> "tuple[Student, Subscription]":
        student = await AsyncRepository(Student, session).get_or_404(student_id, for_update=True)
        if student.current_subscription_id is None:
            raise NotFoundError("Subscription", None)
        subscription = await session.get(Subscription, student.current_subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", student.current_subscription_id)
        return student, subscription

    async def extend(self, student_id: Any, days: Any, *, now: Optional[datetime] = None) -> Subscription:
        """Extend from the later of the current end date and now; reactivates the subscription."""
        days = self._validate_days("extend_by_days", days)
        now = now or utcnow()
        async with self.session_factory() as session:
            async with session.begin():
                _, subscription = await self._current(session, student_id)
                baseline = max(subscription.end_date, now)
                await AsyncRepository(Subscription, session).update_values(
                    subscription.id,
                    {"end_date": baseline + timedelta(days=days), "status": SubscriptionStatus.ACTIVE.value},
                )
        logger.info("subscription_extended", student_id=str(student_id), subscription_id=str(subscription.id), days=days)
        return subscription

    async def cancel(self, student_id: Any) -> Subscription:
        """Cancel the current subscription and return the student to the free tier."""
        async with self.session_factory() as session:
            async with session.begin():
                student, subscription = await self._current(session, student_id)
                await AsyncRepository(Subscription, session).update_values(
                    subscription.id,
                    {"status": SubscriptionStatus.CANCELLED.value, "auto_renew": False},
                )
                await AsyncRepository(Student, session).update_values(
                    student.id,
                    {"current_subscription_id": None, "subscription_tier": SubscriptionTier.FREE.value},
                )
        logger.info("subscription_cancelled", student_id=str(student_id), subscription_id=str(subscription.id))
        return subscription

    async def set_auto_renew(self, student_id: Any, auto_renew: bool) -> Subscription:
        async with self.session_factory() as session:
            async with session.begin():
                _, subscription = await self._current(session, student_id)
                await AsyncRepository(Subscription, session).update_values(
                    subscription.id, {"auto_renew": bool(auto_renew)}
                )
        return subscription

    async def expire_lapsed(self, now: Optional[datetime] = None) -> int:
        """Mark active subscriptions past their grace window as expired.

        The same monotonic write the entitlement engine performs on read.
        """
        now = now or utcnow()
        grace_days = await self.config.grace_period_days()
        cutoff = now - timedelta(days=grace_days)
        async with self.session_factory() as session:
            async with session.begin():
                expired = await AsyncRepository(Subscription, session).bulk_update(
                    [
                        or_(
                            and_(Subscription.status == SubscriptionStatus.ACTIVE.value, Subscription.end_date < cutoff),
                            and_(Subscription.status == SubscriptionStatus.PENDING.value, Subscription.end_date < now),
                        )
                    ],
                    {"status": SubscriptionStatus.EXPIRED.value},
                )
        logger.info("subscriptions_expired", count=expired, cutoff=cutoff.isoformat())
        return expired
