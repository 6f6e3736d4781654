"""Pytest configuration and fixtures."""

import pytest
import pytest_asyncio

from placement.config import Settings
from placement.core.cache import MemoryTTLCache
from placement.core.container import build_services
from placement.db.session import Database
from tests.factories import Factory, RecordingDispatcher


@pytest.fixture
def settings():
    """Isolated settings: in-memory SQLite, email off, no retry delays."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENVIRONMENT="test",
        CACHE_BACKEND="memory",
        FREE_TIER_MAX_APPLICATIONS=2,
        SUBSCRIPTION_GRACE_PERIOD_DAYS=3,
        EMAIL_ENABLED=False,
        EMAIL_RETRY_DELAY_SECONDS=0,
        EFFECT_RETRY_DELAY_SECONDS=0,
        SENTRY_DSN="",
        SUBSCRIPTION_SWEEP_ENABLED=False,
    )


@pytest.fixture
def email_settings(settings):
    """Settings with a complete Mailgun configuration."""
    return settings.model_copy(
        update={
            "EMAIL_ENABLED": True,
            "MAILGUN_API_KEY": "key-test",
            "MAILGUN_DOMAIN": "mg.example.com",
            "MAILGUN_FROM_EMAIL": "Placement <no-reply@mg.example.com>",
            "APP_BASE_URL": "https://app.example.com",
        }
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings=settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def services(database, settings, dispatcher):
    services = build_services(
        database,
        settings,
        cache=MemoryTTLCache(settings.CONFIG_CACHE_TTL),
        dispatcher=dispatcher,
    )
    await services.start()
    yield services
    await dispatcher.dispose()


@pytest.fixture
def factory(database):
    return Factory(database)
