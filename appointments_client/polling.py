from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable

from .errors import ApiError

logger = logging.getLogger(__name__)


class PollingTask:
    """Run ``callback`` every ``interval`` seconds until stopped.

    A failing tick is logged and the loop carries on; there is no backoff.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], interval: float, name: str = "poll"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.callback = callback
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug("Started %s every %ss", self.name, self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        if task is asyncio.current_task():
            # stopped from inside a tick (a 401 while polling); the pending cancel ends the loop
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped %s", self.name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except ApiError as exc:
                logger.warning("%s tick failed: %s", self.name, exc.message)
            except Exception:
                logger.exception("%s tick raised", self.name)
