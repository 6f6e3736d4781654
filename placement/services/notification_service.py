"""In-app notifications."""

import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.models import Notification, User
from placement.utils.constants import UserRole
from placement.utils.helpers import as_uuid

logger = logging.getLogger(__name__)


class NotificationSink:
    """Persists notifications. ``create`` never raises to the caller."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        recipient_id: Any,
        recipient_type: str,
        type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
        dedupe_key: Optional[str] = None,
    ) -> Optional[Notification]:
        """Store one notification; returns None on a duplicate key or failure."""
        notification = Notification(
            recipient_id=as_uuid(recipient_id),
            recipient_type=recipient_type,
            type=type,
            title=title,
            message=message,
            link=link,
            dedupe_key=dedupe_key,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(notification)
        except IntegrityError:
            logger.debug(f"Notification {dedupe_key} already delivered, skipping")
            return None
        except SQLAlchemyError as e:
            logger.error(f"Failed to create {type} notification for {recipient_id}: {e}")
            return None
        return notification

    async def admin_user_ids(self) -> List[Any]:
        """Active admin users; the audience of admin fan-out events."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(User.id).where(User.role == UserRole.ADMIN.value, User.is_active.is_(True))
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Application notifications
    # ------------------------------------------------------------------

    async def notify_application_submitted(self, student_user_id, *, job_title, company_name, dedupe_key=None):
        return await self.create(
            student_user_id,
            UserRole.STUDENT.value,
            "application_submitted",
            "Application submitted",
            f'Your application for "{job_title}" at {company_name} has been submitted.',
            "/my-applications",
            dedupe_key,
        )

    async def notify_application_approved(self, student_user_id, *, job_title, company_name, dedupe_key=None):
        return await self.create(
            student_user_id,
            UserRole.STUDENT.value,
            "application_approved",
            "Application approved",
            f'Your application for "{job_title}" at {company_name} has been approved and forwarded to the company.',
            "/my-applications",
            dedupe_key,
        )

    async def notify_application_rejected(
        self, student_user_id, *, job_title, company_name, reason=None, dedupe_key=None
    ):
        suffix = f" Reason: {reason}" if reason else ""
        return await self.create(
            student_user_id,
            UserRole.STUDENT.value,
            "application_rejected",
            "Application not successful",
            f'Your application for "{job_title}" at {company_name} was not approved.{suffix}',
            "/my-applications",
            dedupe_key,
        )

    async def notify_application_hired(self, student_user_id, *, job_title, company_name, dedupe_key=None):
        return await self.create(
            student_user_id,
            UserRole.STUDENT.value,
            "application_hired",
            "🎉 You've been hired!",
            f'Congratulations! {company_name} has selected you for the "{job_title}" role.',
            "/my-applications",
            dedupe_key,
        )

    async def notify_application_received(self, company_user_id, *, job_title, student_name, dedupe_key=None):
        return await self.create(
            company_user_id,
            UserRole.COMPANY.value,
            "application_received",
            "New application received",
            f'{student_name} has applied for the "{job_title}" role.',
            "/applications",
            dedupe_key,
        )

    # ------------------------------------------------------------------
    # Company and job notifications
    # ------------------------------------------------------------------

    async def notify_company_approved(self, company_user_id, *, company_name, dedupe_key=None):
        return await self.create(
            company_user_id,
            UserRole.COMPANY.value,
            "company_approved",
            "Company registration approved",
            f"{company_name} has been approved. You can now post jobs and review applicants.",
            "/company/dashboard",
            dedupe_key,
        )

    async def notify_company_rejected(self, company_user_id, *, company_name, reason=None, dedupe_key=None):
        suffix = f" Reason: {reason}" if reason else ""
        return await self.create(
            company_user_id,
            UserRole.COMPANY.value,
            "company_rejected",
            "Company registration not approved",
            f"Registration for {company_name} was not approved.{suffix}",
            "/company/dashboard",
            dedupe_key,
        )

    async def notify_job_approved(self, company_user_id, *, job_title, dedupe_key=None):
        return await self.create(
            company_user_id,
            UserRole.COMPANY.value,
            "job_approved",
            "Job posting approved",
            f'Your job posting "{job_title}" has been approved and is now visible to students.',
            "/company/dashboard",
            dedupe_key,
        )

    async def notify_job_rejected(self, company_user_id, *, job_title, reason=None, dedupe_key=None):
        suffix = f" Reason: {reason}" if reason else ""
        return await self.create(
            company_user_id,
            UserRole.COMPANY.value,
            "job_rejected",
            "Job posting not approved",
            f'Your job posting "{job_title}" was not approved.{suffix}',
            "/company/dashboard",
            dedupe_key,
        )

    # ------------------------------------------------------------------
    # Admin alerts
    # ------------------------------------------------------------------

    async def notify_admins(
        self,
        admin_ids: Iterable[Any],
        type: str,
        title: str,
        message: str,
        link: str,
        dedupe_prefix: Optional[str] = None,
    ) -> int:
        created = 0
        for admin_id in admin_ids:
            key = f"{dedupe_prefix}:{admin_id}" if dedupe_prefix else None
            if await self.create(admin_id, UserRole.ADMIN.value, type, title, message, link, key):
                created += 1
        return created
