"""Tests for the application lifecycle."""

import uuid

import pytest
import pytest_asyncio

from placement.core.errors import (
    AdmissionDenied,
    ConflictError,
    GuardViolation,
    NotFoundError,
    QuotaExceeded,
    ValidationFailed,
)
from placement.models import Application, Student
from placement.schemas.effects import EffectKind
from placement.services.application_lifecycle import visible_to_company

ADMIN_ID = uuid.uuid4()


@pytest_asyncio.fixture
async def company(factory):
    return await factory.company(name="Acme Corp")


@pytest_asyncio.fixture
async def job(factory, company):
    return await factory.job(company, title="Data Analyst")


@pytest_asyncio.fixture
async def student(factory):
    return await factory.student(full_name="Ada Lovelace", email="ada@example.com")


async def _reviewed(services, student, job):
    application = await services.applications.apply(student.id, job.id)
    return await services.applications.review(ADMIN_ID, application.id)


# ----------------------------------------------------------------------
# Apply
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_apply_creates_pending_application(services, dispatcher, student, job, company):
    """Test that apply stores a pending application and emits an event."""
    application = await services.applications.apply(student.id, job.id)

    assert application.status == "pending"
    assert application.reviewed_at is None
    assert dispatcher.kinds == [EffectKind.APPLICATION_SUBMITTED]
    payload = dispatcher.last().payload
    assert payload["application_id"] == str(application.id)
    assert payload["student_user_id"] == str(student.user_id)
    assert payload["student_email"] == "ada@example.com"
    assert payload["job_title"] == "Data Analyst"
    assert payload["company_name"] == "Acme Corp"
    assert payload["company_user_id"] == str(company.user_id)


@pytest.mark.asyncio
async def test_duplicate_application_is_a_conflict(services, factory, student, job):
    """Test that applying twice to the same job is refused."""
    await services.applications.apply(student.id, job.id)

    with pytest.raises(ConflictError):
        await services.applications.apply(student.id, job.id)
    assert await factory.count(Application) == 1


@pytest.mark.asyncio
async def test_quota_is_checked_before_duplicate(services, factory, student, company, job):
    """Test that a student at the free limit hears about the quota even for a job already applied to."""
    await services.applications.apply(student.id, job.id)
    await services.applications.apply(student.id, (await factory.job(company)).id)

    with pytest.raises(QuotaExceeded):
        await services.applications.apply(student.id, job.id)
    assert await factory.count(Application) == 2


@pytest.mark.asyncio
async def test_apply_to_unapproved_job_is_not_found(services, factory, student, company):
    """Test that only approved jobs accept applications."""
    pending_job = await factory.job(company, status="pending")

    with pytest.raises(NotFoundError):
        await services.applications.apply(student.id, pending_job.id)
    with pytest.raises(NotFoundError):
        await services.applications.apply(student.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_reapply_after_withdrawal_reopens_same_row(services, factory, student, job):
    """Test that re-applying resets the withdrawn application in place."""
    application = await _reviewed(services, student, job)
    await services.applications.withdraw(student.id, application.id)

    reopened = await services.applications.apply(student.id, job.id)

    assert reopened.id == application.id
    assert reopened.status == "pending"
    assert reopened.reviewed_at is None
    assert reopened.rejection_reason is None
    assert await factory.count(Application) == 1


# ----------------------------------------------------------------------
# Withdraw
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_withdraw_pending_and_reviewed(services, dispatcher, factory, student, company):
    """Test that open applications can be withdrawn by their owner."""
    first = await services.applications.apply(student.id, (await factory.job(company)).id)
    second = await _reviewed(services, student, await factory.job(company))

    assert (await services.applications.withdraw(student.id, first.id)).status == "withdrawn"
    assert (await services.applications.withdraw(student.id, second.id)).status == "withdrawn"
    assert dispatcher.last().kind == EffectKind.APPLICATION_WITHDRAWN


@pytest.mark.asyncio
async def test_withdrawing_twice_is_a_conflict(services, student, job):
    """Test that a repeated withdrawal reports a conflict."""
    application = await services.applications.apply(student.id, job.id)
    await services.applications.withdraw(student.id, application.id)

    with pytest.raises(ConflictError):
        await services.applications.withdraw(student.id, application.id)


@pytest.mark.asyncio
async def test_only_the_owner_can_withdraw(services, factory, student, job):
    """Test that another student cannot withdraw the application."""
    other = await factory.student(full_name="Grace Hopper")
    application = await services.applications.apply(student.id, job.id)

    with pytest.raises(GuardViolation):
        await services.applications.withdraw(other.id, application.id)


@pytest.mark.asyncio
async def test_decided_applications_cannot_be_withdrawn(services, company, student, job):
    """Test that hired and rejected applications are final for the student."""
    application = await _reviewed(services, student, job)
    await services.applications.company_decide(company.id, application.id, "rejected")

    with pytest.raises(GuardViolation):
        await services.applications.withdraw(student.id, application.id)


@pytest.mark.asyncio
async def test_withdraw_unknown_application_is_not_found(services, student):
    with pytest.raises(NotFoundError):
        await services.applications.withdraw(student.id, uuid.uuid4())


# ----------------------------------------------------------------------
# Admin review
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_review_forwards_to_company(services, dispatcher, student, job):
    """Test that review moves pending to reviewed and stamps reviewed_at."""
    application = await _reviewed(services, student, job)

    assert application.status == "reviewed"
    assert application.reviewed_at is not None
    assert dispatcher.last().kind == EffectKind.APPLICATION_REVIEWED


@pytest.mark.asyncio
async def test_admin_actions_on_processed_application_conflict(services, student, job):
    """Test that admins cannot act twice on the same application."""
    application = await _reviewed(services, student, job)

    with pytest.raises(ConflictError):
        await services.applications.review(ADMIN_ID, application.id)
    with pytest.raises(ConflictError):
        await services.applications.admin_reject(ADMIN_ID, application.id, "Too late")


@pytest.mark.asyncio
async def test_admin_reject_keeps_application_hidden_from_company(services, dispatcher, student, job):
    """Test that an admin rejection leaves reviewed_at empty."""
    application = await services.applications.apply(student.id, job.id)

    rejected = await services.applications.admin_reject(ADMIN_ID, application.id, "Missing resume")

    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Missing resume"
    assert rejected.reviewed_at is None
    assert dispatcher.last().kind == EffectKind.APPLICATION_REJECTED
    assert dispatcher.last().payload["reason"] == "Missing resume"
    assert visible_to_company(rejected) is False


@pytest.mark.asyncio
async def test_company_cannot_decide_admin_rejected_application(services, company, student, job):
    application = await services.applications.apply(student.id, job.id)
    await services.applications.admin_reject(ADMIN_ID, application.id, "Missing resume")

    with pytest.raises(NotFoundError):
        await services.applications.company_decide(company.id, application.id, "hired")


@pytest.mark.asyncio
async def test_admin_cannot_act_on_withdrawn_application(services, student, job):
    """Test that withdrawn applications are outside the admin graph."""
    application = await services.applications.apply(student.id, job.id)
    await services.applications.withdraw(student.id, application.id)

    with pytest.raises(GuardViolation):
        await services.applications.review(ADMIN_ID, application.id)


# ----------------------------------------------------------------------
# Company decision
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_company_cannot_decide_before_review(services, company, student, job):
    """Test that a pending application is not yet the company's to decide."""
    application = await services.applications.apply(student.id, job.id)

    with pytest.raises(GuardViolation):
        await services.applications.company_decide(company.id, application.id, "hired")


@pytest.mark.asyncio
async def test_company_decision_must_be_hired_or_rejected(services, company, student, job):
    application = await _reviewed(services, student, job)

    with pytest.raises(ValidationFailed):
        await services.applications.company_decide(company.id, application.id, "reviewed")


@pytest.mark.asyncio
async def test_other_company_cannot_decide(services, factory, student, job):
    """Test that only the job's company may decide."""
    other = await factory.company(name="Globex")
    application = await _reviewed(services, student, job)

    with pytest.raises(GuardViolation):
        await services.applications.company_decide(other.id, application.id, "hired")


@pytest.mark.asyncio
async def test_hire_marks_student_and_blocks_admission(services, dispatcher, factory, company, student, job):
    """Test that hiring sets is_hired without touching other applications."""
    other_job = await factory.job(company, title="Platform Engineer")
    other_application = await services.applications.apply(student.id, other_job.id)
    application = await _reviewed(services, student, job)

    hired = await services.applications.company_decide(company.id, application.id, "hired")

    assert hired.status == "hired"
    assert dispatcher.last().kind == EffectKind.APPLICATION_HIRED
    assert (await factory.fetch(Student, student.id)).is_hired is True
    assert (await factory.fetch(Application, other_application.id)).status == "pending"

    with pytest.raises(AdmissionDenied) as exc_info:
        await services.applications.apply(student.id, (await factory.job(company)).id)
    assert exc_info.value.reason == "hired"


@pytest.mark.asyncio
async def test_company_rejection_is_final(services, dispatcher, company, student, job):
    """Test that a company rejection stores the reason and cannot repeat."""
    application = await _reviewed(services, student, job)

    rejected = await services.applications.company_decide(
        company.id, application.id, "rejected", reason="Position filled internally"
    )

    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "Position filled internally"
    assert dispatcher.last().kind == EffectKind.APPLICATION_REJECTED

    with pytest.raises(ConflictError):
        await services.applications.company_decide(company.id, application.id, "hired")


@pytest.mark.asyncio
async def test_company_cannot_decide_withdrawn_application(services, company, student, job):
    application = await _reviewed(services, student, job)
    await services.applications.withdraw(student.id, application.id)

    with pytest.raises(GuardViolation):
        await services.applications.company_decide(company.id, application.id, "hired")
