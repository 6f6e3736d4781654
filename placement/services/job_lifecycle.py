"""Job posting lifecycle.

draft -> pending -> approved | rejected
approved <-> unpublished (republish re-enters the admin queue as pending)
approved | unpublished | pending -> closed (terminal; cascades to applications)
"""

from typing import Any, Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placement.core.errors import ConflictError, FieldError, GuardViolation, ValidationFailed
from placement.models import Company, JobPosting
from placement.repositories.base import AsyncRepository
from placement.schemas.effects import EffectEvent, EffectKind
from placement.schemas.job import JobDraft, validate_draft, validate_submission
from placement.services.application_lifecycle import ApplicationLifecycle
from placement.utils.constants import JobStatus
from placement.utils.helpers import utcnow

logger = structlog.get_logger(__name__)


class JobLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher,
        applications: ApplicationLifecycle,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.applications = applications

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def create_draft(self, company_id: Any, draft: Any = None) -> JobPosting:
        """Create a job in ``draft``. Only the relaxed draft rules apply."""
        content = self._draft_content(draft)
        async with self.session_factory() as session:
            async with session.begin():
                await AsyncRepository(Company, session).get_or_404(company_id)
                job = await AsyncRepository(JobPosting, session).create(
                    company_id=company_id,
                    status=JobStatus.DRAFT.value,
                    **content,
                )
        logger.info("job_draft_created", job_id=str(job.id), company_id=str(company_id))
        return job

    async def update_draft(self, company_id: Any, job_id: Any, draft: Any) -> JobPosting:
        """Replace the given draft fields. Only jobs still in ``draft`` are editable."""
        content = self._draft_content(draft, only_set=True)
        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id, company_id)
                if job.status != JobStatus.DRAFT.value:
                    raise GuardViolation("Can only edit jobs that are still drafts")
                if content:
                    await self._write(session, job, JobStatus.DRAFT.value, content)
        return job

    @staticmethod
    def _draft_content(draft: Any, only_set: bool = False) -> dict:
        if draft is None:
            return {}
        if isinstance(draft, JobDraft):
            model = draft
        else:
            model, result = validate_draft(dict(draft))
            if not result.ok:
                raise ValidationFailed(result.errors)
        return model.model_dump(exclude_unset=only_set)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit(self, company_id: Any, job_id: Any) -> JobPosting:
        """draft -> pending, gated by full validation."""
        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id, company_id)
                self._guard(job, {JobStatus.DRAFT}, JobStatus.PENDING, "submit")
                result = validate_submission(job)
                if not result.ok:
                    raise ValidationFailed(result.errors)
                now = utcnow()
                await self._write(session, job, job.status, {"status": JobStatus.PENDING.value})
                event = await self._pending_event(session, job, now)

        logger.info("job_submitted", job_id=str(job.id), company_id=str(company_id))
        self.dispatcher.dispatch(event)
        return job

    async def approve(self, admin_id: Any, job_id: Any) -> JobPosting:
        """pending -> approved."""
        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id)
                self._guard(job, {JobStatus.PENDING}, JobStatus.APPROVED, "approve")
                now = utcnow()
                await self._write(
                    session,
                    job,
                    job.status,
                    {"status": JobStatus.APPROVED.value, "approved_at": now, "rejection_reason": None},
                )
                event = await self._company_event(session, job, EffectKind.JOB_APPROVED, now)

        logger.info("job_approved", job_id=str(job.id), admin_id=str(admin_id))
        self.dispatcher.dispatch(event)
        return job

    async def reject(self, admin_id: Any, job_id: Any, reason: str) -> JobPosting:
        """pending -> rejected."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailed([FieldError("rejection_reason", "Rejection reason is required")])

        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id)
                self._guard(job, {JobStatus.PENDING}, JobStatus.REJECTED, "reject")
                now = utcnow()
                await self._write(
                    session,
                    job,
                    job.status,
                    {"status": JobStatus.REJECTED.value, "rejection_reason": reason, "approved_at": None},
                )
                event = await self._company_event(session, job, EffectKind.JOB_REJECTED, now, reason=reason)

        logger.info("job_rejected", job_id=str(job.id), admin_id=str(admin_id))
        self.dispatcher.dispatch(event)
        return job

    async def unpublish(self, company_id: Any, job_id: Any) -> JobPosting:
        """approved -> unpublished."""
        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id, company_id)
                self._guard(job, {JobStatus.APPROVED}, JobStatus.UNPUBLISHED, "unpublish")
                await self._write(session, job, job.status, {"status": JobStatus.UNPUBLISHED.value})

        logger.info("job_unpublished", job_id=str(job.id), company_id=str(company_id))
        return job

    async def republish(self, company_id: Any, job_id: Any) -> JobPosting:
        """unpublished -> pending; re-enters the admin review queue."""
        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id, company_id)
                self._guard(job, {JobStatus.UNPUBLISHED}, JobStatus.PENDING, "republish")
                now = utcnow()
                await self._write(
                    session,
                    job,
                    job.status,
                    {"status": JobStatus.PENDING.value, "approved_at": None, "rejection_reason": None},
                )
                event = await self._pending_event(session, job, now)

        logger.info("job_republished", job_id=str(job.id), company_id=str(company_id))
        self.dispatcher.dispatch(event)
        return job

    async def close(self, job_id: Any, *, company_id: Any = None) -> JobPosting:
        """approved | unpublished | pending -> closed.

        ``company_id`` restricts the action to the owning company; admins pass
        None. Open applications on the job are rejected in the same transaction.
        """
        async with self.session_factory() as session:
            async with session.begin():
                job = await self._load(session, job_id, company_id)
                self._guard(
                    job,
                    {JobStatus.APPROVED, JobStatus.UNPUBLISHED, JobStatus.PENDING},
                    JobStatus.CLOSED,
                    "close",
                )
                await self._write(session, job, job.status, {"status": JobStatus.CLOSED.value})
                events = await self.applications.reject_for_closed_job(session, job)

        logger.info("job_closed", job_id=str(job.id), cascaded_applications=len(events))
        for event in events:
            self.dispatcher.dispatch(event)
        return job

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, session: AsyncSession, job_id: Any, company_id: Any = None) -> JobPosting:
        job = await AsyncRepository(JobPosting, session).get_or_404(job_id)
        if company_id is not None and job.company_id != company_id:
            raise GuardViolation("You can only manage your own job postings")
        return job

    @staticmethod
    def _guard(job: JobPosting, sources: Iterable[JobStatus], target: JobStatus, action: str) -> None:
        if job.status in (target.value, JobStatus.CLOSED.value):
            raise ConflictError(f"Job posting is already {job.status}")
        if job.status not in {s.value for s in sources}:
            raise GuardViolation(f"Cannot {action} a job posting that is {job.status}")

    @staticmethod
    async def _write(session: AsyncSession, job: JobPosting, observed: str, values: dict) -> None:
        if not await AsyncRepository(JobPosting, session).update_where(job.id, observed, values):
            raise ConflictError("Job posting was changed concurrently")

    async def _pending_event(self, session: AsyncSession, job: JobPosting, now) -> EffectEvent:
        company = await session.get(Company, job.company_id)
        return EffectEvent.build(
            EffectKind.JOB_SUBMITTED,
            job.id,
            now,
            job_id=str(job.id),
            job_title=job.title,
            company_name=company.name if company else None,
        )

    async def _company_event(
        self, session: AsyncSession, job: JobPosting, kind: EffectKind, now, reason: Optional[str] = None
    ) -> EffectEvent:
        company = await session.get(Company, job.company_id)
        return EffectEvent.build(
            kind,
            job.id,
            now,
            job_id=str(job.id),
            job_title=job.title,
            company_name=company.name,
            company_user_id=str(company.user_id),
            company_email=company.email,
            reason=reason,
        )
