from __future__ import annotations

import asyncio
import json

import pytest

from status_checks.cache import CACHE_KEY, ProbeService, TTLCache
from status_checks.probe import ProbeResponse, ProbeResult
from status_checks.targets import DEFAULT_REGISTRY


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class StubRunner:
    """Returns a fresh ProbeResponse per run; counts runs."""

    def __init__(self, *, delay: float = 0.0) -> None:
        self.registry = DEFAULT_REGISTRY
        self.calls = 0
        self.include_auth_args: list[bool] = []
        self.delay = delay

    async def run(self, user_agent: str, *, include_auth: bool = True) -> ProbeResponse:
        self.calls += 1
        self.include_auth_args.append(include_auth)
        if self.delay:
            await asyncio.sleep(self.delay)
        return ProbeResponse(
            ok=True,
            checked_at=f"2026-01-01T00:00:{self.calls:02d}.000Z",
            total_ms=12,
            results=(ProbeResult(name="Homepage", url="https://x.test/", category="site", status=200, ok=True, ms=12),),
            auth_enabled=False,
            auth_probes_included=0,
        )


def test_ttl_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TTLCache(0)


@pytest.mark.asyncio
async def test_hit_within_window_and_reload_after_expiry() -> None:
    clock = FakeClock()
    cache = TTLCache(300, clock=clock)
    calls = 0

    async def loader() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await cache.get_or_load("k", loader) == 1
    clock.now += 299
    assert await cache.get_or_load("k", loader) == 1
    assert cache.peek("k") == 1

    clock.now += 1
    assert cache.peek("k") is None
    assert await cache.get_or_load("k", loader) == 2
    assert calls == 2


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_load() -> None:
    cache = TTLCache(300, clock=FakeClock())
    gate = asyncio.Event()
    calls = 0

    async def loader() -> dict[str, int]:
        nonlocal calls
        calls += 1
        await gate.wait()
        return {"run": calls}

    waiters = [asyncio.ensure_future(cache.get_or_load("k", loader)) for _ in range(5)]
    await asyncio.sleep(0)
    gate.set()
    values = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(v is values[0] for v in values)


@pytest.mark.asyncio
async def test_failed_load_is_not_cached() -> None:
    cache = TTLCache(300, clock=FakeClock())
    attempts = 0

    async def loader() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("upstream exploded")
        return "fresh"

    with pytest.raises(RuntimeError):
        await cache.get_or_load("k", loader)
    assert cache.peek("k") is None

    assert await cache.get_or_load("k", loader) == "fresh"
    assert attempts == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_load() -> None:
    cache = TTLCache(300, clock=FakeClock())
    gate = asyncio.Event()

    async def loader() -> str:
        await gate.wait()
        return "done"

    first = asyncio.ensure_future(cache.get_or_load("k", loader))
    second = asyncio.ensure_future(cache.get_or_load("k", loader))
    await asyncio.sleep(0)
    first.cancel()
    gate.set()

    assert await second == "done"
    assert cache.peek("k") == "done"


@pytest.mark.asyncio
async def test_invalidate_forces_reload() -> None:
    cache = TTLCache(300, clock=FakeClock())
    calls = 0

    async def loader() -> int:
        nonlocal calls
        calls += 1
        return calls

    await cache.get_or_load("a", loader)
    await cache.get_or_load("b", loader)
    cache.invalidate("a")
    assert cache.peek("a") is None
    assert cache.peek("b") == 2

    cache.invalidate()
    assert cache.peek("b") is None
    assert await cache.get_or_load("a", loader) == 3


@pytest.mark.asyncio
async def test_service_snapshot_is_identical_within_window() -> None:
    clock = FakeClock()
    runner = StubRunner()
    service = ProbeService(runner, revalidate_seconds=300, clock=clock)

    first = await service.snapshot("ua/1")
    clock.now += 120
    second = await service.snapshot("ua/1")

    assert runner.calls == 1
    assert json.dumps(first.to_dict()) == json.dumps(second.to_dict())
    assert second.checked_at == first.checked_at

    clock.now += 300
    third = await service.snapshot("ua/1")
    assert runner.calls == 2
    assert third.checked_at != first.checked_at


@pytest.mark.asyncio
async def test_service_concurrent_snapshots_converge_on_one_run() -> None:
    runner = StubRunner(delay=0.05)
    service = ProbeService(runner, clock=FakeClock())

    results = await asyncio.gather(*[service.snapshot() for _ in range(8)])

    assert runner.calls == 1
    assert len({r.checked_at for r in results}) == 1


@pytest.mark.asyncio
async def test_service_invalidate_and_uncached_run() -> None:
    runner = StubRunner()
    service = ProbeService(runner, clock=FakeClock())

    await service.snapshot()
    service.invalidate()
    assert service.cache.peek(CACHE_KEY) is None
    await service.snapshot()
    assert runner.calls == 2

    await service.run_uncached(include_auth=False)
    assert runner.calls == 3
    assert runner.include_auth_args[-1] is False
    # Uncached runs never replace the cached snapshot.
    assert service.cache.peek(CACHE_KEY).checked_at.endswith(":02.000Z")
