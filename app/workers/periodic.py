"""Interval runner for housekeeping jobs (rate-window sweep, cache purge)."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Job = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTask:
    """Run *job* every *interval* seconds on the running event loop.

    A failing run is logged and the schedule continues.
    """

    def __init__(self, name: str, interval: float, job: Job) -> None:
        self.name = name
        self.interval = interval
        self._job = job
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=self.name
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self._job()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Periodic task %s failed", self.name)
