"""
MODULE OVERVIEW:
Periodic read of the server's aggregate counters (users online, room count).

WHAT IS HAPPENING HERE:
This is plain short polling with HTTPX, completely outside the WebSocket
protocol. Every tick fires one GET and re-arms the timer straight away, so a
slow or failing request never delays the next one. Failures are swallowed: the
dashboard simply keeps showing the last good numbers.
"""
import asyncio
from typing import Any

import httpx
from loguru import logger

from pagichat.client.render import RenderSink
from pagichat.client.scheduler import Scheduler
from pagichat.shared.models import StatsSnapshot


class StatsPoller:
    def __init__(
        self,
        stats_url: str,
        sink: RenderSink,
        scheduler: Scheduler,
        interval_ms: int = 10000,
        timeout_s: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.stats_url = stats_url
        self.sink = sink
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

        self.last: StatsSnapshot | None = None
        self._handle: Any = None
        self._inflight: set[asyncio.Task] = set()
        self._running = False

    def start(self) -> None:
        self._running = True
        self._arm()

    def _arm(self) -> None:
        self._handle = self.scheduler.after(self.interval_ms, self._tick)

    def _tick(self) -> None:
        self._handle = None
        if not self._running:
            return
        task = asyncio.get_running_loop().create_task(self.poll_once())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        self._arm()

    async def poll_once(self) -> StatsSnapshot | None:
        try:
            response = await self.client.get(self.stats_url)
            response.raise_for_status()
            stats = StatsSnapshot.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"protocol=short-poll url={self.stats_url} event=poll_failed reason='{e}'")
            return None

        self.last = stats
        self.sink.set_stats(stats)
        return stats

    async def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None
        for task in list(self._inflight):
            task.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        if self._owns_client:
            await self.client.aclose()
