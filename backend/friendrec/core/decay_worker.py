"""Decay worker - periodically shrinks interaction scores in the background."""

import asyncio
import logging
import time

from friendrec.config import settings
from friendrec.stores.interaction import InteractionScoreStore

logger = logging.getLogger(__name__)


class DecayWorker:
    """Runs ``InteractionScoreStore.apply_decay`` on a fixed interval.

    A failed cycle is logged and the next one runs on schedule; nothing here
    is awaited by request handlers.
    """

    def __init__(self, store: InteractionScoreStore, interval_seconds: float | None = None):
        self.store = store
        self.interval_seconds = interval_seconds or settings.DECAY_INTERVAL_SECONDS
        self._task: asyncio.Task | None = None

    async def run_once(self) -> int | None:
        """Run a single decay cycle. Returns processed key count, or None on failure."""
        started = time.monotonic()
        try:
            processed = await self.store.apply_decay()
        except Exception:
            logger.exception("Interaction score decay cycle failed")
            return None
        logger.info(
            "Interaction score decay processed %d keys in %.2fs",
            processed, time.monotonic() - started,
        )
        return processed

    async def run_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="interaction-decay")

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
