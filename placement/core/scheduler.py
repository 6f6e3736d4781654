"""
Application scheduler (APScheduler).

Subscription expiry is discovered on read; the periodic sweep here is an
optional extra that performs the same idempotent write in bulk.
"""

import logging

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from placement.config import Settings

logger = logging.getLogger(__name__)


def scheduler_listener(event):
    """Log executed and failed jobs."""
    if event.exception:
        logger.error(f"Job '{event.job_id}' failed with exception: {event.exception}")
    else:
        logger.info(f"Job '{event.job_id}' executed successfully")


def build_scheduler(settings: Settings, subscriptions) -> AsyncIOScheduler:
    """Scheduler with the subscription sweep registered (not started)."""
    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 3600,
        },
    )
    scheduler.add_listener(scheduler_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    scheduler.add_job(
        subscriptions.expire_lapsed,
        trigger=IntervalTrigger(minutes=settings.SUBSCRIPTION_SWEEP_INTERVAL_MINUTES),
        id="expire_lapsed_subscriptions",
        name="Expire lapsed subscriptions",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
