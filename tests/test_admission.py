"""Tests for admission control."""

import asyncio
import uuid
from unittest.mock import patch

import pytest
import pytest_asyncio

from placement.core.cache import MemoryTTLCache
from placement.core.container import build_services
from placement.core.errors import AdmissionDenied, NotFoundError, QuotaExceeded
from placement.db.session import Database
from placement.models import Application, Student
from placement.repositories.base import AsyncRepository
from tests.factories import Factory, RecordingDispatcher


@pytest_asyncio.fixture
async def company(factory):
    return await factory.company()


@pytest.mark.asyncio
async def test_free_student_is_admitted_until_the_limit(services, factory, company):
    """Test that the third application on a free tier of two is refused."""
    student = await factory.student()
    jobs = [await factory.job(company) for _ in range(3)]

    await services.applications.apply(student.id, jobs[0].id)
    decision = await services.admission.can_apply(student.id)
    assert decision.allowed is True
    assert decision.used == 1
    assert decision.limit == 2

    await services.applications.apply(student.id, jobs[1].id)
    decision = await services.admission.can_apply(student.id)
    assert decision.allowed is False
    assert decision.reason == "limit"
    assert decision.used == 2

    with pytest.raises(QuotaExceeded) as exc_info:
        await services.applications.apply(student.id, jobs[2].id)
    assert exc_info.value.used == 2
    assert exc_info.value.limit == 2
    assert exc_info.value.reason == "limit"


@pytest.mark.asyncio
async def test_withdrawal_frees_a_slot(services, factory, company):
    """Test that withdrawn applications no longer consume quota."""
    student = await factory.student()
    jobs = [await factory.job(company) for _ in range(3)]
    first = await services.applications.apply(student.id, jobs[0].id)
    await services.applications.apply(student.id, jobs[1].id)

    await services.applications.withdraw(student.id, first.id)

    application = await services.applications.apply(student.id, jobs[2].id)
    assert application.status == "pending"


@pytest.mark.asyncio
async def test_rejection_frees_a_slot(services, factory, company):
    """Test that rejected applications no longer consume quota."""
    student = await factory.student()
    jobs = [await factory.job(company) for _ in range(3)]
    first = await services.applications.apply(student.id, jobs[0].id)
    await services.applications.apply(student.id, jobs[1].id)

    await services.applications.admin_reject(uuid.uuid4(), first.id, "Incomplete profile")

    decision = await services.admission.can_apply(student.id)
    assert decision.allowed is True
    assert decision.used == 1


@pytest.mark.asyncio
async def test_hired_student_is_refused(services, factory, company):
    """Test that a hired student cannot apply regardless of quota."""
    student = await factory.student(is_hired=True)
    job = await factory.job(company)

    decision = await services.admission.can_apply(student.id)
    assert decision.allowed is False
    assert decision.reason == "hired"

    with pytest.raises(AdmissionDenied) as exc_info:
        await services.applications.apply(student.id, job.id)
    assert exc_info.value.reason == "hired"
    assert not isinstance(exc_info.value, QuotaExceeded)


@pytest.mark.asyncio
async def test_unknown_student_is_refused(services, factory, company):
    """Test that admission reports not_found for a missing student."""
    job = await factory.job(company)
    missing = uuid.uuid4()

    decision = await services.admission.can_apply(missing)
    assert decision.allowed is False
    assert decision.reason == "not_found"

    with pytest.raises(NotFoundError):
        await services.applications.apply(missing, job.id)


@pytest.mark.asyncio
async def test_paid_plan_raises_the_limit(services, factory, company):
    """Test that an active plan's limit replaces the free-tier limit."""
    student = await factory.student()
    plan = await factory.plan(max_applications=3)
    await factory.subscription(student, plan)
    jobs = [await factory.job(company) for _ in range(4)]

    for job in jobs[:3]:
        await services.applications.apply(student.id, job.id)

    with pytest.raises(QuotaExceeded) as exc_info:
        await services.applications.apply(student.id, jobs[3].id)
    assert exc_info.value.limit == 3


@pytest.mark.asyncio
async def test_unlimited_plan_never_refuses(services, factory, company):
    """Test that an unbounded plan admits without a limit."""
    student = await factory.student()
    plan = await factory.plan(max_applications=None)
    await factory.subscription(student, plan)
    for _ in range(3):
        await services.applications.apply(student.id, (await factory.job(company)).id)

    decision = await services.admission.can_apply(student.id)
    assert decision.allowed is True
    assert decision.limit is None
    assert decision.used == 3


@pytest.mark.asyncio
async def test_apply_reads_the_student_row_for_update(services, factory, company):
    student = await factory.student()
    job = await factory.job(company)
    original_get = AsyncRepository.get

    with patch.object(AsyncRepository, "get", autospec=True, side_effect=original_get) as get:
        await services.applications.apply(student.id, job.id)

    locked = [
        c for c in get.call_args_list
        if c.args[0].model is Student and c.kwargs.get("for_update") is True
    ]
    assert locked


@pytest_asyncio.fixture
async def file_database(settings, tmp_path):
    file_settings = settings.model_copy(update={"DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'placement.db'}"})
    db = Database(settings=file_settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.mark.asyncio
async def test_concurrent_applies_cannot_both_take_the_last_slot(file_database, settings):
    """Test that two racing applies for the final free slot admit only one."""
    factory = Factory(file_database)
    dispatcher = RecordingDispatcher()
    services = build_services(
        file_database,
        settings,
        cache=MemoryTTLCache(settings.CONFIG_CACHE_TTL),
        dispatcher=dispatcher,
    )
    await services.start()

    company = await factory.company()
    student = await factory.student()
    jobs = [await factory.job(company) for _ in range(3)]
    await services.applications.apply(student.id, jobs[0].id)

    results = await asyncio.gather(
        services.applications.apply(student.id, jobs[1].id),
        services.applications.apply(student.id, jobs[2].id),
        return_exceptions=True,
    )
    await dispatcher.dispose()

    admitted = [r for r in results if isinstance(r, Application)]
    refused = [r for r in results if isinstance(r, QuotaExceeded)]
    assert len(admitted) == 1
    assert len(refused) == 1
    assert await factory.count(Application) == 2
