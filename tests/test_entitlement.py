"""Tests for entitlement resolution."""

import uuid
from datetime import timedelta

import pytest

from placement.models import Student, Subscription
from placement.utils.helpers import utcnow


@pytest.mark.asyncio
async def test_student_without_subscription_gets_free_quota(services, factory):
    """Test that a student with no subscription is on the free tier."""
    student = await factory.student()

    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.tier == "free"
    assert entitlement.status == "free"
    assert entitlement.is_active is True
    assert entitlement.in_grace_period is False
    assert entitlement.quota == 2


@pytest.mark.asyncio
async def test_unknown_student_resolves_to_free(services):
    """Test that entitlement for a missing student falls back to free."""
    entitlement = await services.entitlements.resolve_entitlement(uuid.uuid4())

    assert entitlement.tier == "free"
    assert entitlement.quota == 2


@pytest.mark.asyncio
async def test_active_subscription_uses_plan_quota(services, factory):
    """Test that an active subscription applies the plan's limit."""
    student = await factory.student()
    plan = await factory.plan(max_applications=10)
    subscription = await factory.subscription(student, plan)

    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.tier == "paid"
    assert entitlement.status == "active"
    assert entitlement.is_active is True
    assert entitlement.quota == 10
    assert entitlement.subscription_id == subscription.id
    assert entitlement.plan_id == plan.id
    assert await services.entitlements.get_application_limit(student.id) == 10
    assert await services.entitlements.is_subscription_active(student.id) is True


@pytest.mark.asyncio
async def test_unlimited_plan_has_no_quota(services, factory):
    """Test that a plan without max_applications is unbounded."""
    student = await factory.student()
    plan = await factory.plan(max_applications=None)
    await factory.subscription(student, plan)

    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.quota is None
    assert entitlement.unlimited is True


@pytest.mark.asyncio
async def test_subscription_in_grace_period_stays_active(services, factory):
    """Test that a subscription past its end date but inside grace is active."""
    now = utcnow()
    student = await factory.student()
    plan = await factory.plan(max_applications=10)
    await factory.subscription(student, plan, end_date=now - timedelta(days=1))

    entitlement = await services.entitlements.resolve_entitlement(student.id, now=now)

    assert entitlement.is_active is True
    assert entitlement.in_grace_period is True
    assert entitlement.quota == 10
    assert entitlement.grace_period_ends_at == entitlement.end_date + timedelta(days=3)


@pytest.mark.asyncio
async def test_lapsed_subscription_is_expired_on_read(services, factory):
    """Test that a subscription past its grace window is expired and persisted."""
    now = utcnow()
    student = await factory.student()
    plan = await factory.plan(max_applications=10)
    subscription = await factory.subscription(student, plan, end_date=now - timedelta(days=5))

    entitlement = await services.entitlements.resolve_entitlement(student.id, now=now)

    assert entitlement.is_active is False
    assert entitlement.in_grace_period is False
    assert entitlement.status == "expired"
    assert entitlement.quota == 2

    stored = await factory.fetch(Subscription, subscription.id)
    assert stored.status == "expired"

    # Idempotent: a second read sees the same result
    again = await services.entitlements.resolve_entitlement(student.id, now=now)
    assert again.status == "expired"
    assert again.quota == 2


@pytest.mark.asyncio
async def test_cancelled_subscription_falls_back_to_free_quota(services, factory):
    """Test that a cancelled subscription is inactive with the free quota."""
    student = await factory.student()
    plan = await factory.plan(max_applications=10)
    await factory.subscription(student, plan, status="cancelled")

    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.status == "cancelled"
    assert entitlement.is_active is False
    assert entitlement.quota == 2


@pytest.mark.asyncio
async def test_pending_subscription_is_not_active(services, factory):
    """Test that a pending subscription grants only the free quota."""
    student = await factory.student()
    plan = await factory.plan(max_applications=10)
    await factory.subscription(student, plan, status="pending")

    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.status == "pending"
    assert entitlement.is_active is False
    assert entitlement.quota == 2


@pytest.mark.asyncio
async def test_dangling_subscription_reference_is_healed(services, factory):
    """Test that a reference to a missing subscription is cleared."""
    student = await factory.student(current_subscription_id=uuid.uuid4(), subscription_tier="paid")

    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.tier == "free"
    assert entitlement.quota == 2

    stored = await factory.fetch(Student, student.id)
    assert stored.current_subscription_id is None
    assert stored.subscription_tier == "free"


@pytest.mark.asyncio
async def test_free_quota_follows_system_config(services, factory):
    """Test that the free-tier limit is read from system config."""
    student = await factory.student()

    await services.config.set_value("free_tier_max_applications", 5)
    entitlement = await services.entitlements.resolve_entitlement(student.id)

    assert entitlement.quota == 5


@pytest.mark.asyncio
async def test_grace_period_follows_system_config(services, factory):
    """Test that the grace window length is read from system config."""
    now = utcnow()
    student = await factory.student()
    plan = await factory.plan(max_applications=10)
    await factory.subscription(student, plan, end_date=now - timedelta(days=5))

    await services.config.set_value("subscription_grace_period_days", 7)
    entitlement = await services.entitlements.resolve_entitlement(student.id, now=now)

    assert entitlement.is_active is True
    assert entitlement.in_grace_period is True
