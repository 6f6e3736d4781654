"""Celery delivery of side-effect events."""

import asyncio
import logging
from typing import Dict

from placement.config import settings
from placement.core.container import build_effect_handler
from placement.db.session import Database
from placement.schemas.effects import EffectEvent
from placement.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _handle(event: EffectEvent) -> None:
    database = Database(settings=settings)
    try:
        await build_effect_handler(database, settings).handle(event)
    finally:
        await database.dispose()


@celery_app.task(
    bind=True,
    name="placement.workers.effect_tasks.deliver_effect",
    max_retries=max(settings.EFFECT_MAX_ATTEMPTS - 1, 0),
)
def deliver_effect(self, payload: Dict) -> Dict:
    """Run the effect handler for one serialized ``EffectEvent``."""
    event = EffectEvent.model_validate(payload)
    try:
        asyncio.run(_handle(event))
    except Exception as e:
        attempt = self.request.retries + 1
        logger.warning(f"Effect {event.key} failed (attempt {attempt}): {e}")
        raise self.retry(exc=e, countdown=settings.EFFECT_RETRY_DELAY_SECONDS * (2 ** self.request.retries))
    logger.info(f"Effect {event.kind.value} delivered ({event.key})")
    return {"status": "success", "key": event.key}
