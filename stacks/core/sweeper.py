import asyncio
import logging
from typing import Optional
from starlette.concurrency import run_in_threadpool
from stacks.configs import SWEEP_INTERVAL
from stacks.core.db import session
from stacks.core.engine import BorrowingEngine
from stacks.core.exceptions import StacksAPIError

logger = logging.getLogger(__name__)


class OverdueSweeper:
    """Runs the overdue sweep every `interval` seconds on the event loop,
    doing the database work on a worker thread.
    """

    def __init__(self, interval: int = SWEEP_INTERVAL):
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self, now=None) -> int:
        try:
            return BorrowingEngine.sweep_overdue(now=now)
        except StacksAPIError as e:
            logger.error(f"Overdue sweep failed: {e}")
            return 0
        finally:
            session.remove()

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await run_in_threadpool(self.run_once)
            except Exception:
                logger.exception("Overdue sweep crashed; retrying next interval")

    def start(self):
        if self.interval <= 0:
            logger.info("Overdue sweeper disabled")
            return
        if not self.running:
            logger.info(f"Overdue sweeper running every {self.interval}s")
            self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
