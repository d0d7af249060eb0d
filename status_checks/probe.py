from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

import httpx
import structlog

from status_checks.targets import ProbeTarget, TargetRegistry


logger = structlog.get_logger(__name__)

TIMEOUT_ERROR = "timeout"


@dataclass(frozen=True)
class ProbeResult:
    name: str
    url: str
    category: str
    status: int
    ok: bool
    ms: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "url": self.url,
            "category": self.category,
            "status": self.status,
            "ok": self.ok,
            "ms": self.ms,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class ProbeResponse:
    ok: bool
    checked_at: str
    total_ms: int
    results: tuple[ProbeResult, ...]
    auth_enabled: bool
    auth_probes_included: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checkedAt": self.checked_at,
            "totalMs": self.total_ms,
            "results": [r.to_dict() for r in self.results],
            "authEnabled": self.auth_enabled,
            "authProbesIncluded": self.auth_probes_included,
        }


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000.0))


def classify_status(status: int, *, requires_auth: bool) -> bool:
    """
    Auth-gated targets only pass on 2xx/3xx: a 401/403 there means the credential
    is missing or invalid. On public targets a 401/403 still proves the service
    is up and answering.
    """
    success = 200 <= int(status) < 400
    if requires_auth:
        return success
    return success or status in (401, 403)


def _error_message(exc: BaseException) -> str:
    msg = str(exc or "").strip()
    return msg or type(exc).__name__


async def probe_target(
    client: httpx.AsyncClient,
    target: ProbeTarget,
    *,
    user_agent: str,
    auth_header: dict[str, str] | None = None,
    requires_auth: bool = False,
) -> ProbeResult:
    """Issue a single request for `target`. Failures are returned, never raised."""
    headers = {"user-agent": user_agent}
    if requires_auth and auth_header:
        headers.update(auth_header)

    async def _send() -> int:
        request = client.build_request(
            target.method,
            target.url,
            headers=headers,
            timeout=httpx.Timeout(target.timeout_seconds),
        )
        resp = await client.send(request, follow_redirects=True, stream=True)
        try:
            return resp.status_code
        finally:
            await resp.aclose()

    started = time.perf_counter()
    try:
        status = await asyncio.wait_for(_send(), timeout=target.timeout_seconds)
    except (asyncio.TimeoutError, httpx.TimeoutException):
        return ProbeResult(
            name=target.name,
            url=target.url,
            category=target.category,
            status=0,
            ok=False,
            ms=_elapsed_ms(started),
            error=TIMEOUT_ERROR,
        )
    except Exception as e:
        return ProbeResult(
            name=target.name,
            url=target.url,
            category=target.category,
            status=0,
            ok=False,
            ms=_elapsed_ms(started),
            error=_error_message(e),
        )

    return ProbeResult(
        name=target.name,
        url=target.url,
        category=target.category,
        status=status,
        ok=classify_status(status, requires_auth=requires_auth),
        ms=_elapsed_ms(started),
    )


def bearer_header(credential: str | None) -> dict[str, str] | None:
    token = str(credential or "").strip()
    if not token:
        return None
    return {"authorization": f"Bearer {token}"}


async def run_probe(
    registry: TargetRegistry,
    *,
    user_agent: str,
    credential: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> ProbeResponse:
    """
    Probe every active target concurrently and aggregate the outcome.

    Public targets are always included; auth targets only when `credential` is
    non-empty. Results keep registration order regardless of completion order.
    """
    auth_header = bearer_header(credential)
    auth_enabled = auth_header is not None
    active = registry.active_targets(auth_enabled)

    checked_at = iso_now()
    started = time.perf_counter()

    async def _run(c: httpx.AsyncClient) -> list[ProbeResult]:
        return await asyncio.gather(
            *[
                probe_target(c, target, user_agent=user_agent, auth_header=auth_header, requires_auth=requires_auth)
                for target, requires_auth in active
            ]
        )

    if client is None:
        async with httpx.AsyncClient() as own_client:
            results = await _run(own_client)
    else:
        results = await _run(client)

    total_ms = _elapsed_ms(started)
    ok = all(r.ok for r in results)

    for r in results:
        if not r.ok:
            logger.warning("probe_failed", name=r.name, category=r.category, status=r.status, error=r.error, ms=r.ms)
    logger.info(
        "probe_run_complete",
        ok=ok,
        probes=len(results),
        failures=sum(1 for r in results if not r.ok),
        auth_enabled=auth_enabled,
        total_ms=total_ms,
    )

    return ProbeResponse(
        ok=ok,
        checked_at=checked_at,
        total_ms=total_ms,
        results=tuple(results),
        auth_enabled=auth_enabled,
        auth_probes_included=len(registry.auth) if auth_enabled else 0,
    )


@dataclass(frozen=True)
class ProbeRunner:
    """
    Binds a registry to a credential source. The credential is re-read on every
    run so a rotated key is picked up by the next (uncached) run.
    """

    registry: TargetRegistry
    credential_provider: Callable[[], str | None] = lambda: None
    client_factory: Callable[[], httpx.AsyncClient] | None = None

    async def run(self, user_agent: str, *, include_auth: bool = True) -> ProbeResponse:
        credential = self.credential_provider() if include_auth else None
        if self.client_factory is None:
            return await run_probe(self.registry, user_agent=user_agent, credential=credential)
        async with self.client_factory() as client:
            return await run_probe(self.registry, user_agent=user_agent, credential=credential, client=client)
