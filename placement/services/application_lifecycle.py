"""Application lifecycle.

pending -> reviewed -> hired | rejected
pending -> rejected           (admin, without review)
pending | reviewed -> withdrawn (student)
withdrawn -> pending          (student re-applies; same row)
"""

from datetime import datetime
from typing import Any, List

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.core.errors import (
    ConflictError,
    FieldError,
    GuardViolation,
    NotFoundError,
    ValidationFailed,
)
from placement.models import Application, Company, JobPosting, Student
from placement.repositories.base import AsyncRepository
from placement.schemas.effects import EffectEvent, EffectKind
from placement.services.admission_service import AdmissionService
from placement.utils.constants import (
    COMPANY_VISIBLE_APPLICATION_STATUSES,
    JOB_CLOSED_REJECTION_REASON,
    ApplicationStatus,
    JobStatus,
)
from placement.utils.helpers import utcnow

logger = structlog.get_logger(__name__)

OPEN_STATUSES = (ApplicationStatus.PENDING.value, ApplicationStatus.REVIEWED.value)
COMPANY_DECISIONS = (ApplicationStatus.HIRED.value, ApplicationStatus.REJECTED.value)


def visible_to_company(application: Application) -> bool:
    """Admin rejections never went through review and stay hidden from the company."""
    if application.status not in COMPANY_VISIBLE_APPLICATION_STATUSES:
        return False
    return not (application.status == ApplicationStatus.REJECTED.value and application.reviewed_at is None)


class ApplicationLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher,
        admission: AdmissionService,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.admission = admission

    async def apply(self, student_id: Any, job_posting_id: Any) -> Application:
        """Create (or reopen a withdrawn) application, subject to admission."""
        async with self.session_factory() as session:
            async with session.begin():
                # Locks the student row so concurrent applies serialise on the quota
                await self.admission.ensure_can_apply(session, student_id)

                applications = AsyncRepository(Application, session)
                existing = await applications.find_one(student_id=student_id, job_posting_id=job_posting_id)
                if existing is not None and existing.status != ApplicationStatus.WITHDRAWN.value:
                    raise ConflictError("You have already applied to this job")

                job = await session.get(JobPosting, job_posting_id)
                if job is None or job.status != JobStatus.APPROVED.value:
                    raise NotFoundError("JobPosting", job_posting_id)

                now = utcnow()
                if existing is not None:
                    reopened = await applications.update_where(
                        existing.id,
                        ApplicationStatus.WITHDRAWN.value,
                        {
                            "status": ApplicationStatus.PENDING.value,
                            "rejection_reason": None,
                            "reviewed_at": None,
                            "created_at": now,
                        },
                    )
                    if not reopened:
                        raise ConflictError("You have already applied to this job")
                    application = existing
                else:
                    application = await applications.create(
                        student_id=student_id,
                        job_posting_id=job_posting_id,
                        status=ApplicationStatus.PENDING.value,
                        created_at=now,
                    )

                event = await self._event(session, EffectKind.APPLICATION_SUBMITTED, application, now)

        logger.info(
            "application_submitted",
            application_id=str(application.id),
            student_id=str(student_id),
            job_posting_id=str(job_posting_id),
            reopened=existing is not None,
        )
        self.dispatcher.dispatch(event)
        return application

    async def withdraw(self, student_id: Any, application_id: Any) -> Application:
        """pending | reviewed -> withdrawn, by the owning student."""
        async with self.session_factory() as session:
            async with session.begin():
                application = await AsyncRepository(Application, session).get_or_404(application_id)
                if application.student_id != student_id:
                    raise GuardViolation("You can only withdraw your own applications")
                if application.status == ApplicationStatus.WITHDRAWN.value:
                    raise ConflictError("Application is already withdrawn")
                if application.status not in OPEN_STATUSES:
                    raise GuardViolation(
                        f"Withdrawal request is not allowed for applications with status '{application.status}'."
                    )
                now = utcnow()
                await self._write(session, application, {"status": ApplicationStatus.WITHDRAWN.value})
                event = await self._event(session, EffectKind.APPLICATION_WITHDRAWN, application, now)

        logger.info("application_withdrawn", application_id=str(application.id), student_id=str(student_id))
        self.dispatcher.dispatch(event)
        return application

    async def review(self, admin_id: Any, application_id: Any) -> Application:
        """pending -> reviewed: the admin forwards the application to the company."""
        async with self.session_factory() as session:
            async with session.begin():
                application = await AsyncRepository(Application, session).get_or_404(application_id)
                self._admin_guard(application)
                now = utcnow()
                await self._write(
                    session,
                    application,
                    {"status": ApplicationStatus.REVIEWED.value, "reviewed_at": now, "rejection_reason": None},
                )
                event = await self._event(session, EffectKind.APPLICATION_REVIEWED, application, now)

        logger.info("application_reviewed", application_id=str(application.id), admin_id=str(admin_id))
        self.dispatcher.dispatch(event)
        return application

    async def admin_reject(self, admin_id: Any, application_id: Any, reason: str = None) -> Application:
        """pending -> rejected by an admin.

        ``reviewed_at`` stays null, which keeps the rejection hidden from the
        company.
        """
        reason = (reason or "").strip() or None
        async with self.session_factory() as session:
            async with session.begin():
                application = await AsyncRepository(Application, session).get_or_404(application_id)
                self._admin_guard(application)
                now = utcnow()
                await self._write(
                    session,
                    application,
                    {"status": ApplicationStatus.REJECTED.value, "rejection_reason": reason},
                )
                event = await self._event(session, EffectKind.APPLICATION_REJECTED, application, now, reason=reason)

        logger.info("application_rejected_by_admin", application_id=str(application.id), admin_id=str(admin_id))
        self.dispatcher.dispatch(event)
        return application

    async def company_decide(self, company_id: Any, application_id: Any, decision: str, reason: str = None) -> Application:
        """reviewed -> hired | rejected, by the company that owns the job."""
        decision = getattr(decision, "value", decision)
        if decision not in COMPANY_DECISIONS:
            raise ValidationFailed([FieldError("status", "Status must be 'hired' or 'rejected'")])

        async with self.session_factory() as session:
            async with session.begin():
                application = await AsyncRepository(Application, session).get_or_404(application_id)
                job = await session.get(JobPosting, application.job_posting_id)
                if job is None or job.company_id != company_id:
                    raise GuardViolation("You can only manage applications for your own jobs")

                if application.status in COMPANY_DECISIONS and not visible_to_company(application):
                    raise NotFoundError("Application", application_id)
                if application.status in COMPANY_DECISIONS:
                    raise ConflictError("This application has already been processed")
                if application.status == ApplicationStatus.PENDING.value:
                    raise GuardViolation("Can only hire/reject applications that have been reviewed by admin")
                if application.status != ApplicationStatus.REVIEWED.value:
                    raise GuardViolation("Cannot process withdrawn applications")

                now = utcnow()
                values = {"status": decision}
                if decision == ApplicationStatus.REJECTED.value:
                    values["rejection_reason"] = (reason or "").strip() or None
                await self._write(session, application, values)

                if decision == ApplicationStatus.HIRED.value:
                    # Blocks future admission only; other open applications are left as they are
                    await AsyncRepository(Student, session).update_values(application.student_id, {"is_hired": True})
                    kind = EffectKind.APPLICATION_HIRED
                else:
                    kind = EffectKind.APPLICATION_REJECTED
                event = await self._event(session, kind, application, now, reason=values.get("rejection_reason"))

        logger.info(
            "application_decided",
            application_id=str(application.id),
            company_id=str(company_id),
            decision=decision,
        )
        self.dispatcher.dispatch(event)
        return application

    async def reject_for_closed_job(self, session: AsyncSession, job: JobPosting) -> List[EffectEvent]:
        """Reject every open application on a closing job, inside the caller's transaction.

        Bypasses the per-application actor guards. Returns the events to
        dispatch once the caller commits.
        """
        applications = AsyncRepository(Application, session)
        open_rows = await applications.find_all(
            Application.status.in_(OPEN_STATUSES),
            job_posting_id=job.id,
        )
        if not open_rows:
            return []

        now = utcnow()
        await applications.bulk_update(
            [Application.id.in_([a.id for a in open_rows]), Application.status.in_(OPEN_STATUSES)],
            {"status": ApplicationStatus.REJECTED.value, "rejection_reason": JOB_CLOSED_REJECTION_REASON},
        )

        events = []
        for application in open_rows:
            await session.refresh(application)
            if application.status != ApplicationStatus.REJECTED.value:
                continue
            events.append(
                await self._event(
                    session,
                    EffectKind.APPLICATION_REJECTED,
                    application,
                    now,
                    reason=JOB_CLOSED_REJECTION_REASON,
                )
            )
        return events

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _admin_guard(application: Application) -> None:
        if application.status in (ApplicationStatus.REVIEWED.value, ApplicationStatus.REJECTED.value):
            raise ConflictError("This application has already been processed")
        if application.status != ApplicationStatus.PENDING.value:
            raise GuardViolation(f"Cannot act on an application that is {application.status}")

    @staticmethod
    async def _write(session: AsyncSession, application: Application, values: dict) -> None:
        ok = await AsyncRepository(Application, session).update_where(application.id, application.status, values)
        if not ok:
            raise ConflictError("Application was changed concurrently")

    async def _event(
        self,
        session: AsyncSession,
        kind: EffectKind,
        application: Application,
        occurred_at: datetime,
        reason: str = None,
    ) -> EffectEvent:
        student = await session.get(Student, application.student_id)
        job = await session.get(JobPosting, application.job_posting_id)
        company = await session.get(Company, job.company_id)
        return EffectEvent.build(
            kind,
            application.id,
            occurred_at,
            application_id=str(application.id),
            student_id=str(student.id),
            student_user_id=str(student.user_id),
            student_name=student.full_name,
            student_email=student.email,
            job_id=str(job.id),
            job_title=job.title,
            company_name=company.name,
            company_user_id=str(company.user_id),
            reason=reason,
        )
