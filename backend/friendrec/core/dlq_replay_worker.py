"""Dead-letter replay worker - re-applies parked friend events once Redis is back."""

import asyncio
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from friendrec.config import settings
from friendrec.core.exceptions import StoreUnavailable
from friendrec.services.dead_letter import FriendEventDlqRepository
from friendrec.services.friend_events import FriendEventHandler

logger = logging.getLogger(__name__)


class DlqReplayWorker:
    """Replays PENDING dead letters on a fixed interval.

    A cycle is skipped while Redis does not answer PING. An event that fails
    again has its retry count raised and is marked FAILED at ``max_retries``.
    """

    def __init__(
        self,
        dead_letters: FriendEventDlqRepository,
        handler: FriendEventHandler,
        redis: aioredis.Redis,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
        max_retries: int | None = None,
    ):
        self.dead_letters = dead_letters
        self.handler = handler
        self.redis = redis
        self.interval_seconds = interval_seconds or settings.DLQ_REPLAY_INTERVAL_SECONDS
        self.batch_size = batch_size or settings.DLQ_REPLAY_BATCH_SIZE
        self.max_retries = max_retries or settings.DLQ_MAX_RETRIES
        self._task: asyncio.Task | None = None

    async def redis_healthy(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning("Redis unhealthy, dead-letter replay skipped: %s", e)
            return False

    async def run_once(self) -> int | None:
        """Replay one batch. Returns the number replayed, or None if the cycle was skipped or failed."""
        if not await self.redis_healthy():
            return None
        try:
            events = await self.dead_letters.pending(self.batch_size)
            replayed = 0
            for event in events:
                try:
                    await self.handler.replay(event)
                except StoreUnavailable as e:
                    status = await self.dead_letters.mark_retry(event.id, self.max_retries)
                    logger.warning("Dead letter %s replay failed (%s): %s", event.id, status, e)
                    continue
                await self.dead_letters.mark_processed(event.id)
                replayed += 1
        except Exception:
            logger.exception("Dead-letter replay cycle failed")
            return None
        if events:
            logger.info("Replayed %d of %d dead letters", replayed, len(events))
        return replayed

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="friend-event-dlq-replay")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
