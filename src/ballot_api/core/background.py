"""Fixed-interval background task runner.

Runs maintenance coroutines (such as the expired-code sweep) on an asyncio
loop alongside the API, decoupled from request handling. A failing run is
logged and the schedule continues; nothing propagates to request paths.
"""

import asyncio
import contextlib
import enum
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger


class TaskState(enum.StrEnum):
    """Lifecycle state of a periodic task."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class PeriodicTask:
    """Run an async callable every ``interval`` seconds until stopped.

    Args:
        name: Name used in log lines.
        func: Zero-argument coroutine function to run on each tick.
        interval: Seconds to wait between runs.
        run_immediately: Run once right after start instead of waiting a
            full interval first.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        run_immediately: bool = False,
    ) -> None:
        if interval <= 0:
            msg = "interval must be positive"
            raise ValueError(msg)
        self.name = name
        self.interval = interval
        self.run_immediately = run_immediately
        self.runs = 0
        self.failures = 0
        self._func = func
        self._task: asyncio.Task[None] | None = None
        self._state = TaskState.IDLE

    @property
    def state(self) -> TaskState:
        """Current lifecycle state."""
        return self._state

    def start(self) -> None:
        """Schedule the loop on the running event loop.

        Raises:
            RuntimeError: If the task is already running.
        """
        if self._task is not None and not self._task.done():
            msg = f"Periodic task '{self.name}' is already running"
            raise RuntimeError(msg)
        self._state = TaskState.RUNNING
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info("Periodic task '{}' started (interval={}s)", self.name, self.interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._state = TaskState.STOPPED

    async def run_once(self) -> bool:
        """Execute a single run, isolating failures.

        Returns:
            True if the run completed, False if it raised.
        """
        self.runs += 1
        try:
            await self._func()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failures += 1
            logger.exception("Periodic task '{}' failed", self.name)
            return False
        return True

    async def _loop(self) -> None:
        try:
            if self.run_immediately:
                await self.run_once()
            while True:
                await asyncio.sleep(self.interval)
                await self.run_once()
        except asyncio.CancelledError:
            logger.info("Periodic task '{}' cancelled", self.name)
            raise
