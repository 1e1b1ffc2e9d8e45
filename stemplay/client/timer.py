"""Single per-question countdown on the running asyncio loop."""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]
ExpireCallback = Callable[[], Union[None, Awaitable[None]]]


class CountdownTimer:
    """
    At most one countdown at a time: ``start`` cancels any running one first.

    ``on_tick(remaining)`` fires once per elapsed tick, ``on_expire()`` exactly
    once when remaining hits zero (awaited if it is a coroutine). The timer
    releases itself before calling ``on_expire`` so the callback may start
    the next countdown. ``cancel`` is idempotent.
    """

    def __init__(self, tick_seconds: float = 1.0):
        self.tick_seconds = tick_seconds
        self._task: Optional[asyncio.Task] = None
        self._remaining = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def remaining(self) -> int:
        return self._remaining

    def start(
        self,
        duration_sec: int,
        on_tick: Optional[TickCallback] = None,
        on_expire: Optional[ExpireCallback] = None,
    ) -> None:
        if duration_sec <= 0:
            raise ValueError("duration_sec must be positive")
        self.cancel()
        self._remaining = int(duration_sec)
        self._task = asyncio.get_running_loop().create_task(self._run(on_tick, on_expire))

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # called from inside a callback: detaching is enough, _run checks ownership
        if task is not asyncio.current_task():
            task.cancel()

    async def _run(self, on_tick: Optional[TickCallback], on_expire: Optional[ExpireCallback]):
        me = asyncio.current_task()
        while self._remaining > 0:
            await asyncio.sleep(self.tick_seconds)
            if self._task is not me:
                return
            self._remaining -= 1
            if on_tick:
                on_tick(self._remaining)
            if self._task is not me:
                return

        self._task = None
        if on_expire:
            result = on_expire()
            if inspect.isawaitable(result):
                await result
