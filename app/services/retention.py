"""Background retention sweep for the window counter store."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from starlette.concurrency import run_in_threadpool

from app.adapters.rate_limit.base import AbstractWindowStore
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Periodically purge usage windows older than the retention horizon.

    Attributes:
        interval_seconds: Delay between sweeps.
    """

    def __init__(self, store: AbstractWindowStore, *, interval_seconds: float = 60) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._store = store
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """Run a single sweep; store failures are logged and reported as 0."""

        try:
            removed = await run_in_threadpool(self._store.purge_expired)
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.sweep_failed",
                extra={"error_code": exc.code, "error_message": exc.message},
            )
            return 0

        logger.info("rate_limit.sweep", extra={"removed": removed})
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.sweep_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="rate-limit-retention")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
