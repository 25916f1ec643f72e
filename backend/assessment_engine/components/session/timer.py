from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from ...platform.config import settings

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], Any]
ExpireCallback = Callable[[], Any]


async def maybe_await(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class TimerController:
    """One-second countdown for a single session.

    There is no pause: once started the clock only stops on expiry or
    ``stop()``. ``guard`` is checked before every tick; when it returns True
    (a submit is already in flight) the countdown ends without expiring.
    """

    def __init__(
        self,
        tick_interval: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.tick_interval = settings.TIMER_TICK_SECONDS if tick_interval is None else tick_interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._remaining = 0
        self._expired = False

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def expired(self) -> bool:
        return self._expired

    def start(
        self,
        duration_seconds: int,
        on_tick: Optional[TickCallback] = None,
        on_expire: Optional[ExpireCallback] = None,
        guard: Optional[Callable[[], bool]] = None,
    ) -> asyncio.Task:
        if self.running:
            raise RuntimeError("Timer already running")
        self._remaining = max(0, int(duration_seconds))
        self._expired = False
        self._task = asyncio.create_task(self._run(on_tick, on_expire, guard))
        return self._task

    def stop(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        if task is asyncio.current_task():
            # Stopped from inside a callback; the loop checks _task and exits.
            self._task = None
            return
        task.cancel()
        self._task = None

    async def _run(self, on_tick, on_expire, guard) -> None:
        task = asyncio.current_task()
        try:
            while self._remaining > 0:
                await self._sleep(self.tick_interval)
                if self._task is not task or (guard is not None and guard()):
                    return
                self._remaining -= 1
                try:
                    await maybe_await(on_tick, self._remaining)
                except Exception:
                    logger.exception("Timer tick callback failed at %d seconds remaining", self._remaining)
                if self._task is not task:
                    return
            if guard is not None and guard():
                return
            self._expired = True
            logger.info("Timer expired")
            await maybe_await(on_expire)
        except asyncio.CancelledError:
            logger.debug("Timer cancelled with %d seconds remaining", self._remaining)
            raise
        finally:
            if self._task is task:
                self._task = None
