"""Periodic refresh of the session's local state."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .constants import DEFAULT_SYNC_INTERVAL_SECONDS
from .errors import FollowUpError
from .session import FollowUpSession

logger = logging.getLogger(__name__)


class SyncLoop:
    """Cancellable background task that re-fetches items on a fixed interval.

    A tick is a cache refresh, not a lock: when a write is acknowledged while
    the fetch is running, the snapshot is discarded and the next tick picks
    up the server state.
    """

    def __init__(
        self,
        session: FollowUpSession,
        interval: float = DEFAULT_SYNC_INTERVAL_SECONDS,
    ) -> None:
        if interval <= 0:
            raise ValueError("Sync interval must be positive")
        self.session = session
        self.interval = interval
        self.ticks = 0
        self.failures = 0
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """Run one refresh. Returns ``True`` when local state was replaced."""
        generation = self.session.write_generation
        try:
            items = await self.session.repository.fetch_items()
            configs = await self.session.repository.fetch_step_config()
        except FollowUpError as exc:
            self.failures += 1
            logger.warning(f"Sync tick failed: {exc}")
            return False
        self.ticks += 1
        return self.session.replace_state(items, configs, generation=generation)

    async def _run(self, lifespan: Optional[float]) -> None:
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        while True:
            await self.tick()
            if lifespan is not None and loop.time() - start_time + self.interval > lifespan:
                break
            await asyncio.sleep(self.interval)

    def start(self, lifespan: Optional[float] = None) -> asyncio.Task[None]:
        """Schedule the loop on the running event loop.

        Args:
            lifespan: Maximum time in seconds to keep refreshing. If None, runs
                until :meth:`stop` is called.
        """
        if self.running:
            raise RuntimeError("Sync loop already running")
        self._task = asyncio.create_task(self._run(lifespan), name="o2d-sync")
        logger.info(f"Sync loop started (interval={self.interval}s)")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Sync loop stopped after {self.ticks} tick(s)")

    async def wait(self) -> None:
        """Wait for a loop started with a lifespan to finish."""
        if self._task is not None:
            await self._task

    async def __aenter__(self) -> "SyncLoop":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
