"""Explicit wiring of the engine's services for one process."""

from dataclasses import dataclass
from typing import Optional

import httpx

from placement.config import Settings, settings as default_settings
from placement.core.cache import build_cache
from placement.db.session import Database
from placement.services.admission_service import AdmissionService
from placement.services.application_lifecycle import ApplicationLifecycle
from placement.services.company_review import CompanyReview
from placement.services.config_resolver import ConfigResolver
from placement.services.effect_dispatcher import build_dispatcher
from placement.services.effect_handlers import EffectHandler
from placement.services.email_service import EmailSender
from placement.services.entitlement_service import EntitlementService
from placement.services.job_lifecycle import JobLifecycle
from placement.services.notification_service import NotificationSink
from placement.services.subscription_service import SubscriptionService


@dataclass
class Services:
    database: Database
    cache: object
    config: ConfigResolver
    notifications: NotificationSink
    email: EmailSender
    handler: EffectHandler
    dispatcher: object
    entitlements: EntitlementService
    admission: AdmissionService
    applications: ApplicationLifecycle
    jobs: JobLifecycle
    subscriptions: SubscriptionService
    companies: CompanyReview

    async def start(self) -> None:
        self.cache.connect()
        await self.dispatcher.start()

    async def dispose(self) -> None:
        await self.dispatcher.dispose()
        self.cache.disconnect()
        await self.database.dispose()


def build_effect_handler(
    database: Database,
    settings: Optional[Settings] = None,
    email_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EffectHandler:
    s = settings or default_settings
    notifications = NotificationSink(database.session_factory)
    email = EmailSender(database.session_factory, s, transport=email_transport)
    return EffectHandler(database.session_factory, notifications, email)


def build_services(
    database: Database,
    settings: Optional[Settings] = None,
    *,
    cache=None,
    dispatcher=None,
    email_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """Construct every service around one database. Nothing is started here."""
    s = settings or default_settings
    factory = database.session_factory
    cache = cache if cache is not None else build_cache(s)
    config = ConfigResolver(factory, cache, s)

    handler = build_effect_handler(database, s, email_transport)
    dispatcher = dispatcher if dispatcher is not None else build_dispatcher(handler, s)

    entitlements = EntitlementService(factory, config)
    admission = AdmissionService(factory, entitlements)
    applications = ApplicationLifecycle(factory, dispatcher, admission)
    return Services(
        database=database,
        cache=cache,
        config=config,
        notifications=handler.notifications,
        email=handler.email,
        handler=handler,
        dispatcher=dispatcher,
        entitlements=entitlements,
        admission=admission,
        applications=applications,
        jobs=JobLifecycle(factory, dispatcher, applications),
        subscriptions=SubscriptionService(factory, config, s),
        companies=CompanyReview(factory, dispatcher),
    )
