"""Background delivery of side-effect events.

Transitions call ``dispatch`` after their transaction commits. Dispatch never
blocks and never raises; failures stop here.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from placement.config import Settings, settings as default_settings
from placement.schemas.effects import EffectEvent

logger = structlog.get_logger(__name__)

Handler = Callable[[EffectEvent], Awaitable[None]]


class EffectDispatcher:
    """Bounded in-process queue drained by a fixed pool of worker tasks.

    Delivery is at-least-once: a handler failure re-enqueues the event with
    exponential backoff until ``max_attempts`` is reached. Handlers must be
    idempotent.
    """

    def __init__(
        self,
        handler: Handler,
        *,
        maxsize: int = 1000,
        workers: int = 2,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        shutdown_timeout: float = 10.0,
    ):
        self.handler = handler
        self.maxsize = maxsize
        self.worker_count = workers
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.shutdown_timeout = shutdown_timeout
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._running = False
        self.dropped = 0

    @classmethod
    def from_settings(cls, handler: Handler, settings: Optional[Settings] = None) -> "EffectDispatcher":
        s = settings or default_settings
        return cls(
            handler,
            maxsize=s.EFFECT_QUEUE_MAXSIZE,
            workers=s.EFFECT_WORKERS,
            max_attempts=s.EFFECT_MAX_ATTEMPTS,
            retry_delay=s.EFFECT_RETRY_DELAY_SECONDS,
            shutdown_timeout=s.EFFECT_SHUTDOWN_TIMEOUT_SECONDS,
        )

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"effect-worker-{i}") for i in range(self.worker_count)
        ]
        self._running = True
        logger.info("effect_dispatcher_started", workers=self.worker_count, maxsize=self.maxsize)

    def dispatch(self, event: EffectEvent) -> bool:
        """Enqueue without blocking. Returns False when the event was dropped."""
        if not self._running or self._queue is None:
            self.dropped += 1
            logger.warning("effect_dropped_dispatcher_stopped", kind=event.kind.value, key=event.key)
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error("effect_dropped_queue_full", kind=event.kind.value, key=event.key, maxsize=self.maxsize)
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued event (including retries) has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def dispose(self) -> None:
        """Stop accepting events, drain within the shutdown timeout, then stop workers."""
        if not self._running:
            return
        self._running = False
        try:
            await asyncio.wait_for(self.join(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("effect_dispatcher_drain_timeout", pending=self._queue.qsize())

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("effect_dispatcher_stopped", dropped=self.dropped)

    async def _worker(self, index: int) -> None:
        while True:
            event = await self._queue.get()
            try:
                if event.attempt:
                    await asyncio.sleep(self.retry_delay * (2 ** (event.attempt - 1)))
                await self.handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._retry_or_drop(event, e)
            finally:
                self._queue.task_done()

    def _retry_or_drop(self, event: EffectEvent, error: Exception) -> None:
        attempt = event.attempt + 1
        if attempt >= self.max_attempts:
            self.dropped += 1
            logger.error(
                "effect_failed_permanently",
                kind=event.kind.value,
                key=event.key,
                attempts=attempt,
                error=str(error),
                exc_info=error,
            )
            return

        logger.warning("effect_failed_retrying", kind=event.kind.value, key=event.key, attempt=attempt, error=str(error))
        try:
            # Enqueued before task_done so join() keeps waiting for the retry
            self._queue.put_nowait(event.model_copy(update={"attempt": attempt}))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error("effect_retry_dropped_queue_full", kind=event.kind.value, key=event.key)


class CeleryEffectDispatcher:
    """Hands each event to the ``deliver_effect`` Celery task."""

    def __init__(self):
        self.dropped = 0

    @property
    def running(self) -> bool:
        return True

    async def start(self) -> None:
        return None

    def dispatch(self, event: EffectEvent) -> bool:
        from placement.workers.effect_tasks import deliver_effect

        try:
            deliver_effect.delay(event.model_dump(mode="json"))
        except Exception as e:  # broker unavailable; the transition already committed
            self.dropped += 1
            logger.error("effect_enqueue_failed", kind=event.kind.value, key=event.key, error=str(e))
            return False
        return True

    async def join(self) -> None:
        return None

    async def dispose(self) -> None:
        return None


def build_dispatcher(handler: Handler, settings: Optional[Settings] = None):
    s = settings or default_settings
    if s.EFFECT_BACKEND == "celery":
        return CeleryEffectDispatcher()
    return EffectDispatcher.from_settings(handler, s)
