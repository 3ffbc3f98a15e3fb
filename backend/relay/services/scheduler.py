"""
Repeating background jobs on the application's event loop.

PeriodicTask runs an async job every `interval` seconds after an optional
initial delay. A failing run is logged and the loop carries on. stop() cancels
the loop; it is called from the FastAPI lifespan on shutdown.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[object]],
        interval: float,
        initial_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.job = job
        self.interval = interval
        self.initial_delay = interval if initial_delay is None else initial_delay
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)
        logger.info(f"{self.name} started (every {self.interval / 60:g} minutes)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"{self.name} stopped")

    async def run_once(self) -> None:
        self.runs += 1
        try:
            await self.job()
        except Exception:
            logger.exception(f"{self.name} run failed")

    async def _loop(self) -> None:
        await self._sleep(self.initial_delay)
        while True:
            await self.run_once()
            await self._sleep(self.interval)


def token_monitor(guard, interval_minutes: int, initial_delay: float = 2.0) -> PeriodicTask:
    """Validate the Gmail credential shortly after boot and then periodically."""

    async def check() -> None:
        logger.info("Checking Gmail token status...")
        if await guard.ensure_live():
            logger.info("Gmail token is valid")
        else:
            logger.warning("Gmail token is not valid - re-authorization may be required")

    return PeriodicTask("Token monitor", check, interval_minutes * 60, initial_delay=initial_delay)


def queue_drainer(queue, engine, interval_minutes: int) -> PeriodicTask:
    """Drain the fallback queue periodically; an empty queue is a no-op."""

    async def drain() -> None:
        if len(queue) == 0:
            return
        logger.info(f"Auto-retry starting for {len(queue)} failed emails...")
        await queue.drain(engine)

    return PeriodicTask("Email auto-retry", drain, interval_minutes * 60)
