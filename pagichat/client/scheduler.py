"""
MODULE OVERVIEW:
The timer capability handed to the core.

WHAT IS HAPPENING HERE:
The reconnect loop, the stats poller and the join timeout all need "run this
later". Instead of each of them sleeping inside its own coroutine, they ask a
Scheduler. Production uses the running asyncio loop's `call_later`; tests swap
in a manual scheduler and fire callbacks by hand, so no test ever waits on a
real clock.
"""
import asyncio
from typing import Any, Callable, Protocol


class Scheduler(Protocol):
    def after(self, ms: int, fn: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def after(self, ms: int, fn: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(ms / 1000.0, fn)

    def cancel(self, handle: asyncio.TimerHandle | None) -> None:
        if handle is not None:
            handle.cancel()
