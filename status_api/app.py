from __future__ import annotations

from typing import Any, Mapping

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from status_checks import APP_NAME, APP_VERSION, default_user_agent
from status_checks.cache import ProbeService
from status_checks.probe import ProbeRunner
from status_checks.scope import InvalidScopeError, Scope, UnknownScopeError
from status_checks.targets import DEFAULT_REGISTRY, TargetRegistry, load_registry
from status_checks.views import (
    agent_check,
    agent_check_text,
    agent_context,
    agent_context_markdown,
    health_summary,
    health_text,
    prometheus_text,
    status_summary,
)
from status_api.schema import InvalidCategoryResponse, ScopeModel, UnknownScopeResponse
from status_api.settings import StatusSettings


logger = structlog.get_logger(__name__)

PROMETHEUS_CONTENT_TYPE = CONTENT_TYPE_LATEST


def probe_region(settings: StatusSettings, headers: Mapping[str, str]) -> str | None:
    """Best-effort region the probe ran from, for debugging region-specific issues."""
    if settings.probe_region:
        return settings.probe_region

    # x-vercel-id usually starts with the region, e.g. "sfo1::abcd-123".
    vercel_id = str(headers.get("x-vercel-id") or "")
    if vercel_id:
        first = vercel_id.split("::")[0].strip()
        if first:
            return first

    region = str(headers.get("x-vercel-region") or headers.get("x-vercel-execution-region") or "").strip()
    return region or None


def build_registry(settings: StatusSettings) -> TargetRegistry:
    if settings.targets_path:
        return load_registry(settings.targets_path)
    return DEFAULT_REGISTRY


def build_service(settings: StatusSettings) -> ProbeService:
    runner = ProbeRunner(registry=build_registry(settings), credential_provider=settings.read_credential)
    return ProbeService(runner, revalidate_seconds=settings.revalidate_seconds)


def _base_url(settings: StatusSettings, request: Request) -> str:
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    return f"{request.url.scheme}://{request.url.netloc}"


def create_app(settings: StatusSettings | None = None, service: ProbeService | None = None) -> FastAPI:
    app = FastAPI(title="Moltbook Down Detector", version=APP_VERSION)
    app.state.settings = settings or StatusSettings()
    app.state.service = service or build_service(app.state.settings)

    @app.on_event("startup")
    def _startup() -> None:
        runner: ProbeRunner = app.state.service.runner
        logger.info(
            "status_api_started",
            app=APP_NAME,
            version=APP_VERSION,
            public_targets=len(runner.registry.public),
            auth_targets=len(runner.registry.auth),
            revalidate_seconds=app.state.service.revalidate_seconds,
        )

    @app.exception_handler(InvalidScopeError)
    async def _invalid_scope(_request: Request, exc: InvalidScopeError) -> JSONResponse:
        body = InvalidCategoryResponse(allowed=exc.allowed)
        return JSONResponse(body.model_dump(), status_code=400)

    @app.exception_handler(UnknownScopeError)
    async def _unknown_scope(_request: Request, exc: UnknownScopeError) -> JSONResponse:
        body = UnknownScopeResponse(scope=ScopeModel(**exc.scope.to_dict()))
        return JSONResponse(body.model_dump(exclude_none=True), status_code=404)

    def _cache_headers() -> dict[str, str]:
        return {"Cache-Control": app.state.settings.cache_control()}

    async def _snapshot():
        return await app.state.service.snapshot(default_user_agent())

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"ok": True, "app": APP_NAME, "version": APP_VERSION}

    @app.get("/api/status")
    async def api_status(request: Request, category: str | None = None, name: str | None = None) -> JSONResponse:
        scope = Scope.parse(category, name)
        data = await _snapshot()
        region = probe_region(app.state.settings, request.headers)
        return JSONResponse(status_summary(data, scope, probe_region=region), headers=_cache_headers())

    @app.get("/api/health")
    async def api_health(
        request: Request,
        category: str | None = None,
        name: str | None = None,
        format: str = "text",  # noqa: A002
    ) -> Response:
        scope = Scope.parse(category, name)
        data = await _snapshot()
        region = probe_region(app.state.settings, request.headers)
        health = health_summary(data, scope, probe_region=region)
        status_code = 200 if health["ok"] else 503
        if format.strip().lower() == "json":
            return JSONResponse(health, status_code=status_code, headers=_cache_headers())
        return PlainTextResponse(health_text(health), status_code=status_code, headers=_cache_headers())

    @app.get("/api/agent-check")
    async def api_agent_check(
        category: str | None = None,
        name: str | None = None,
        format: str = "json",  # noqa: A002
    ) -> Response:
        scope = Scope.parse(category, name)
        data = await _snapshot()
        check = agent_check(data, scope)
        if format.strip().lower() == "text":
            return PlainTextResponse(agent_check_text(check), headers=_cache_headers())
        return JSONResponse(check, headers=_cache_headers())

    @app.get("/api/agent-context")
    async def api_agent_context(request: Request, format: str = "md") -> Response:  # noqa: A002
        data = await _snapshot()
        region = probe_region(app.state.settings, request.headers)
        ctx = agent_context(data, _base_url(app.state.settings, request), probe_region=region)
        if format.strip().lower() == "json":
            return JSONResponse(ctx, headers=_cache_headers())
        return Response(
            content=agent_context_markdown(ctx),
            media_type="text/markdown; charset=utf-8",
            headers=_cache_headers(),
        )

    @app.get("/api/metrics")
    async def api_metrics() -> Response:
        data = await _snapshot()
        return Response(content=prometheus_text(data), media_type=PROMETHEUS_CONTENT_TYPE, headers=_cache_headers())

    @app.get("/api/probe")
    async def api_probe() -> JSONResponse:
        data = await _snapshot()
        return JSONResponse(data.to_dict(), headers=_cache_headers())

    @app.get("/api/check")
    async def api_check() -> JSONResponse:
        # Public targets only, never cached.
        data = await app.state.service.run_uncached(default_user_agent(), include_auth=False)
        return JSONResponse(
            {"ok": data.ok, "checkedAt": data.checked_at, "totalMs": data.total_ms, "results": [r.to_dict() for r in data.results]},
            headers={"Cache-Control": "no-store"},
        )

    return app
