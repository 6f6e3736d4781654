"""Translate committed transitions into notifications and email."""

from typing import Any, Dict

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.models import EffectDelivery
from placement.schemas.effects import EffectEvent, EffectKind
from placement.services.email_service import EmailSender
from placement.services.notification_service import NotificationSink
from placement.utils.constants import (
    APPLICATION_EMAIL_TYPE_MAP,
    EMAIL_CHANNEL,
    EMAIL_TYPE_COMPANY_APPROVED,
    EMAIL_TYPE_COMPANY_REJECTED,
    EMAIL_TYPE_JOB_STATUS,
)

logger = structlog.get_logger(__name__)


class EffectHandler:
    """Idempotent handler for ``EffectEvent``.

    Notification rows carry ``event.key`` + recipient as their dedupe key and
    delivered emails are recorded in ``effect_deliveries``, so handling the
    same event twice has no additional visible effect.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifications: NotificationSink,
        email: EmailSender,
    ):
        self.session_factory = session_factory
        self.notifications = notifications
        self.email = email
        self._routes = {
            EffectKind.APPLICATION_SUBMITTED: self._application_submitted,
            EffectKind.APPLICATION_WITHDRAWN: self._application_withdrawn,
            EffectKind.APPLICATION_REVIEWED: self._application_reviewed,
            EffectKind.APPLICATION_REJECTED: self._application_rejected,
            EffectKind.APPLICATION_HIRED: self._application_hired,
            EffectKind.JOB_SUBMITTED: self._job_submitted,
            EffectKind.JOB_APPROVED: self._job_approved,
            EffectKind.JOB_REJECTED: self._job_rejected,
            EffectKind.COMPANY_REGISTERED: self._company_registered,
            EffectKind.COMPANY_APPROVED: self._company_approved,
            EffectKind.COMPANY_REJECTED: self._company_rejected,
        }

    async def handle(self, event: EffectEvent) -> None:
        route = self._routes.get(event.kind)
        if route is None:
            logger.warning("effect_kind_unhandled", kind=event.kind, key=event.key)
            return
        await route(event, event.payload)

    __call__ = handle

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _key(event: EffectEvent, recipient: Any) -> str:
        return f"{event.key}:{recipient}"

    async def _send_once(self, event: EffectEvent, to: str, template_key: str, data: Dict[str, Any], **options) -> None:
        """Send an email unless this event already delivered one to ``to``."""
        if not to:
            return
        async with self.session_factory() as session:
            result = await session.execute(
                select(EffectDelivery.id).where(
                    EffectDelivery.event_key == event.key,
                    EffectDelivery.channel == EMAIL_CHANNEL,
                    EffectDelivery.recipient == to,
                )
            )
            if result.first() is not None:
                logger.debug("effect_email_already_delivered", key=event.key, recipient=to)
                return

        outcome = await self.email.send(to, template_key, data, **options)
        if not outcome.delivered:
            logger.info("effect_email_not_sent", key=event.key, status=outcome.status, reason=outcome.reason)
            return

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(EffectDelivery(event_key=event.key, channel=EMAIL_CHANNEL, recipient=to))
        except IntegrityError:
            logger.debug("effect_delivery_already_recorded", key=event.key, recipient=to)

    async def _fan_out_to_admins(self, event: EffectEvent, type: str, title: str, message: str, link: str) -> None:
        admin_ids = await self.notifications.admin_user_ids()
        created = await self.notifications.notify_admins(admin_ids, type, title, message, link, event.key)
        logger.info("admin_fan_out", kind=event.kind.value, admins=len(admin_ids), created=created)

    def _application_email(self, event: EffectEvent, p: Dict[str, Any], status: str):
        return self._send_once(
            event,
            p.get("student_email"),
            "application_status",
            {
                "status": status,
                "student_name": p.get("student_name"),
                "job_title": p.get("job_title"),
                "company_name": p.get("company_name"),
                "reason": p.get("reason"),
            },
            user_id=p.get("student_user_id"),
            email_type=APPLICATION_EMAIL_TYPE_MAP[status],
        )

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def _application_submitted(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_application_submitted(
            p["student_user_id"],
            job_title=p["job_title"],
            company_name=p["company_name"],
            dedupe_key=self._key(event, p["student_user_id"]),
        )
        await self._application_email(event, p, "submitted")
        await self._fan_out_to_admins(
            event,
            "ADMIN_NEW_APPLICATION",
            "New application submitted",
            f'{p["student_name"]} applied for "{p["job_title"]}" at {p["company_name"]}.',
            "/admin/applications",
        )

    async def _application_withdrawn(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self._fan_out_to_admins(
            event,
            "ADMIN_WITHDRAWAL_REQUESTED",
            "Application withdrawn",
            f'{p["student_name"]} withdrew their application for "{p["job_title"]}" at {p["company_name"]}.',
            "/admin/applications",
        )

    async def _application_reviewed(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_application_approved(
            p["student_user_id"],
            job_title=p["job_title"],
            company_name=p["company_name"],
            dedupe_key=self._key(event, p["student_user_id"]),
        )
        await self._application_email(event, p, "approved")
        await self.notifications.notify_application_received(
            p["company_user_id"],
            job_title=p["job_title"],
            student_name=p["student_name"],
            dedupe_key=self._key(event, p["company_user_id"]),
        )

    async def _application_rejected(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_application_rejected(
            p["student_user_id"],
            job_title=p["job_title"],
            company_name=p["company_name"],
            reason=p.get("reason"),
            dedupe_key=self._key(event, p["student_user_id"]),
        )
        await self._application_email(event, p, "rejected")

    async def _application_hired(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_application_hired(
            p["student_user_id"],
            job_title=p["job_title"],
            company_name=p["company_name"],
            dedupe_key=self._key(event, p["student_user_id"]),
        )
        await self._application_email(event, p, "hired")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _job_submitted(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self._fan_out_to_admins(
            event,
            "ADMIN_NEW_JOB_PENDING",
            "New job pending approval",
            f'{p.get("company_name")} submitted "{p.get("job_title")}" for review.',
            "/admin/jobs",
        )

    async def _job_approved(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_job_approved(
            p["company_user_id"],
            job_title=p["job_title"],
            dedupe_key=self._key(event, p["company_user_id"]),
        )
        await self._send_once(
            event,
            p.get("company_email"),
            "job_status",
            {"status": "approved", "job_title": p["job_title"], "company_name": p["company_name"]},
            user_id=p["company_user_id"],
            email_type=EMAIL_TYPE_JOB_STATUS,
        )

    async def _job_rejected(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_job_rejected(
            p["company_user_id"],
            job_title=p["job_title"],
            reason=p.get("reason"),
            dedupe_key=self._key(event, p["company_user_id"]),
        )
        await self._send_once(
            event,
            p.get("company_email"),
            "job_status",
            {
                "status": "rejected",
                "job_title": p["job_title"],
                "company_name": p["company_name"],
                "reason": p.get("reason"),
            },
            user_id=p["company_user_id"],
            email_type=EMAIL_TYPE_JOB_STATUS,
        )

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    async def _company_registered(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self._fan_out_to_admins(
            event,
            "ADMIN_NEW_COMPANY_PENDING",
            "New company pending approval",
            f'{p["company_name"]} registered and is waiting for review.',
            "/admin/companies",
        )

    async def _company_approved(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_company_approved(
            p["company_user_id"],
            company_name=p["company_name"],
            dedupe_key=self._key(event, p["company_user_id"]),
        )
        await self._send_once(
            event,
            p.get("company_email"),
            "company_approved",
            {"company_name": p["company_name"]},
            user_id=p["company_user_id"],
            email_type=EMAIL_TYPE_COMPANY_APPROVED,
        )

    async def _company_rejected(self, event: EffectEvent, p: Dict[str, Any]) -> None:
        await self.notifications.notify_company_rejected(
            p["company_user_id"],
            company_name=p["company_name"],
            reason=p.get("reason"),
            dedupe_key=self._key(event, p["company_user_id"]),
        )
        await self._send_once(
            event,
            p.get("company_email"),
            "company_rejected",
            {"company_name": p["company_name"], "reason": p.get("reason")},
            user_id=p["company_user_id"],
            email_type=EMAIL_TYPE_COMPANY_REJECTED,
        )
