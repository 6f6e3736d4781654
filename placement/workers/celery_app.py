"""Celery application configuration."""

from celery import Celery
from dotenv import load_dotenv

load_dotenv()

from placement.config import settings  # noqa: E402  after .env is loaded

# Create Celery app
celery_app = Celery(
    "placement_lifecycle",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "placement.workers.effect_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    task_acks_late=True,  # At-least-once: redeliver if a worker dies mid-task
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

if __name__ == "__main__":
    celery_app.start()
