from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Hashable

import structlog

from status_checks import default_user_agent
from status_checks.probe import ProbeResponse, ProbeRunner


logger = structlog.get_logger(__name__)

CACHE_KEY = "moltbook-status-check"
REVALIDATE_SECONDS = 300


class TTLCache:
    """
    Memoize-with-TTL plus single-flight.

    Each key maps to (value, expires_at) and at most one in-flight load task.
    Concurrent misses on the same key await the same task instead of starting
    their own. Failed loads are not cached.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if float(ttl_seconds) <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._values: dict[Hashable, tuple[Any, float]] = {}
        self._inflight: dict[Hashable, asyncio.Task[Any]] = {}

    def peek(self, key: Hashable) -> Any | None:
        """Return the fresh cached value for `key`, or None."""
        stored = self._values.get(key)
        if stored is None:
            return None
        value, expires_at = stored
        if self._clock() >= expires_at:
            return None
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        # A detached in-flight load still resolves for its waiters but is not stored.
        if key is None:
            self._values.clear()
            self._inflight.clear()
            return
        self._values.pop(key, None)
        self._inflight.pop(key, None)

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        stored = self._values.get(key)
        if stored is not None and self._clock() < stored[1]:
            return stored[0]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, loader))
            task.add_done_callback(_consume_exception)
            self._inflight[key] = task
        # A cancelled waiter must not cancel the shared load.
        return await asyncio.shield(task)

    async def _load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        this_task = asyncio.current_task()
        try:
            value = await loader()
        except BaseException:
            if self._inflight.get(key) is this_task:
                del self._inflight[key]
            raise

        if self._inflight.get(key) is this_task:
            self._values[key] = (value, self._clock() + self.ttl_seconds)
            del self._inflight[key]
        return value


def _consume_exception(task: asyncio.Future[Any]) -> None:
    if not task.cancelled():
        task.exception()


class ProbeService:
    """Cached front door for probe runs, safe to share across concurrent requests."""

    def __init__(
        self,
        runner: ProbeRunner,
        *,
        revalidate_seconds: float = REVALIDATE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.cache = TTLCache(revalidate_seconds, clock=clock)

    @property
    def revalidate_seconds(self) -> int:
        return int(self.cache.ttl_seconds)

    async def snapshot(self, user_agent: str | None = None) -> ProbeResponse:
        ua = user_agent or default_user_agent()

        async def _load() -> ProbeResponse:
            logger.info("probe_cache_refresh", key=CACHE_KEY)
            return await self.runner.run(ua)

        return await self.cache.get_or_load(CACHE_KEY, _load)

    async def run_uncached(self, user_agent: str | None = None, *, include_auth: bool = True) -> ProbeResponse:
        return await self.runner.run(user_agent or default_user_agent(), include_auth=include_auth)

    def invalidate(self) -> None:
        self.cache.invalidate(CACHE_KEY)
