from __future__ import annotations

from typing import Any
from urllib.parse import urljoin

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from status_checks import APP_NAME
from status_checks.classify import (
    action,
    is_degraded,
    is_failing,
    is_timeout,
    recommended_backoff_minutes,
)
from status_checks.probe import ProbeResponse, ProbeResult, iso_now
from status_checks.scope import Scope, apply_scope


SERVICE_LABEL = "Moltbook"
METRIC_PREFIX = "moltbook"
MAX_LISTED = 4


def _issue(r: ProbeResult) -> dict[str, Any]:
    out: dict[str, Any] = {
        "name": r.name,
        "category": r.category,
        "status": r.status,
        "ms": r.ms,
        "url": r.url,
    }
    if r.error is not None:
        out["error"] = r.error
    return out


def _with_optional(out: dict[str, Any], *, scope: Scope | None, probe_region: str | None) -> dict[str, Any]:
    if probe_region:
        out["probeRegion"] = probe_region
    if scope is not None and not scope.is_empty:
        out["scope"] = scope.to_dict()
    return out


def status_summary(
    response: ProbeResponse,
    scope: Scope | None = None,
    *,
    probe_region: str | None = None,
) -> dict[str, Any]:
    """Full dashboard view: totals, per-category rollup and the scoped results."""
    selected = apply_scope(response, scope)

    by_category: dict[str, dict[str, Any]] = {}
    for r in selected:
        key = r.category or "unknown"
        entry = by_category.setdefault(key, {"ok": True, "total": 0, "failures": 0, "timeouts": 0})
        entry["total"] += 1
        if is_failing(r):
            entry["ok"] = False
            entry["failures"] += 1
        if is_timeout(r):
            entry["timeouts"] += 1

    total_failures = sum(1 for r in selected if is_failing(r))
    ok = total_failures == 0

    out: dict[str, Any] = {
        "ok": ok,
        "status": "operational" if ok else "degraded",
        "checkedAt": response.checked_at,
        "authEnabled": response.auth_enabled,
        "authProbesIncluded": response.auth_probes_included,
        "totalMs": response.total_ms,
        "totals": {
            "totalProbes": len(selected),
            "totalFailures": total_failures,
            "totalTimeouts": sum(1 for r in selected if is_timeout(r)),
        },
        "byCategory": by_category,
        "results": [r.to_dict() for r in selected],
    }
    return _with_optional(out, scope=scope, probe_region=probe_region)


def health_summary(
    response: ProbeResponse,
    scope: Scope | None = None,
    *,
    probe_region: str | None = None,
) -> dict[str, Any]:
    selected = apply_scope(response, scope)
    failures = sum(1 for r in selected if is_failing(r))
    ok = failures == 0
    out: dict[str, Any] = {
        "ok": ok,
        "checkedAt": response.checked_at,
        "action": action(ok),
        "recommendedBackoffMinutes": recommended_backoff_minutes(ok),
        "failures": failures,
    }
    return _with_optional(out, scope=scope, probe_region=probe_region)


def _scope_suffix(scope: dict[str, Any] | None) -> str:
    if not scope:
        return ""
    parts = [f"{k}={scope[k]}" for k in ("category", "name") if scope.get(k)]
    return f" (scope: {', '.join(parts)})"


def health_text(health: dict[str, Any]) -> str:
    suffix = _scope_suffix(health.get("scope"))
    if health["ok"]:
        return f"OK{suffix} - checkedAt={health['checkedAt']}"
    return (
        f"BACKOFF{suffix} - checkedAt={health['checkedAt']}"
        f" - failures={health['failures']} - backoff={health['recommendedBackoffMinutes']}m"
    )


def agent_check(response: ProbeResponse, scope: Scope | None = None) -> dict[str, Any]:
    """Compact verdict for automated agents: what to do, and which probes caused it."""
    selected = apply_scope(response, scope)
    failures = [r for r in selected if is_failing(r)]
    degraded = [r for r in selected if is_degraded(r)]
    ok = not failures
    out: dict[str, Any] = {
        "ok": ok,
        "checkedAt": response.checked_at,
        "action": action(ok),
        "recommendedBackoffMinutes": recommended_backoff_minutes(ok),
        "failures": [_issue(r) for r in failures],
        "degraded": [_issue(r) for r in degraded],
    }
    return _with_optional(out, scope=scope, probe_region=None)


def agent_check_text(check: dict[str, Any]) -> str:
    suffix = _scope_suffix(check.get("scope"))
    line = f"{check['action']}{suffix} - checkedAt={check['checkedAt']}"
    if not check["ok"]:
        line += f" - failures={len(check['failures'])} - backoff={check['recommendedBackoffMinutes']}m"
    if check["degraded"]:
        line += f" - degraded={len(check['degraded'])}"
    return line


def _listed(items: list[str]) -> str:
    shown = ", ".join(items[:MAX_LISTED])
    if len(items) > MAX_LISTED:
        shown += f" (+{len(items) - MAX_LISTED} more)"
    return shown


def agent_context(
    response: ProbeResponse,
    base_url: str,
    *,
    probe_region: str | None = None,
) -> dict[str, Any]:
    """Summary and copy-paste integration snippets for agent prompts and heartbeats."""
    results = list(response.results)
    failures = [r for r in results if is_failing(r)]
    degraded = [r for r in results if is_degraded(r)]
    ok = not failures
    backoff = recommended_backoff_minutes(ok)

    worst = max(results, key=lambda r: r.ms) if results else None

    if failures:
        failures_line = "Failures: " + _listed(
            [f"{f.name} ({f.category}, {f.status or f.error or 'err'})" for f in failures]
        ) + "."
    else:
        failures_line = "No failing probes."

    if degraded:
        degraded_line = "Degraded (slow): " + _listed([f"{d.name} ({d.ms}ms)" for d in degraded]) + "."
    else:
        degraded_line = "No degraded probes."

    lines = [
        f"{SERVICE_LABEL} status from {APP_NAME} ({base_url}): {'OK' if ok else 'DEGRADED'}.",
        f"Checked at {response.checked_at}.",
    ]
    if probe_region:
        lines.append(f"Probe region: {probe_region}.")
    lines.append(f"Action: {'OK' if ok else f'BACKOFF (~{backoff}m)'}.")
    if worst is not None:
        lines.append(f"Worst latency: {worst.name} ({worst.ms}ms).")
    lines.append(failures_line)
    lines.append(degraded_line)
    if ok:
        lines.append(
            "Guidance: proceed normally. If you still see failures, compare with your own "
            "region/auth and retry with exponential backoff."
        )
    else:
        lines.append(
            f"Guidance: back off writes (posting/commenting) and reduce {SERVICE_LABEL} traffic; "
            "retry after the backoff window."
        )

    base = base_url.rstrip("/") + "/"
    agent_check_url = urljoin(base, "api/agent-check")
    agent_check_text_url = urljoin(base, "api/agent-check?format=text")
    agent_context_url = urljoin(base, "api/agent-context")
    agent_context_json_url = urljoin(base, "api/agent-context?format=json")

    integration = (
        f"## {SERVICE_LABEL} reliability check (every 10-30m)\n"
        f"1) GET {agent_check_url}\n"
        f"2) Also fetch context: {agent_context_url} (paste summary into logs)\n"
        "3) If action=BACKOFF: pause writes for recommendedBackoffMinutes and retry later\n"
        "4) If action=OK: proceed normally\n"
    )
    heartbeat = (
        "## Heartbeat integration (quick copy/paste)\n\n"
        "### HEARTBEAT.md\nAdd a line like:\n\n"
        f"- {SERVICE_LABEL} reliability: {agent_check_text_url}\n\n"
        "Optional: also capture context (Markdown) when investigating incidents:\n\n"
        f"- {SERVICE_LABEL} context: {agent_context_url}\n\n"
        "### Cron (agent reminder)\n"
        "If your agent runtime supports scheduled reminders, run this every 10-30 minutes and alert if ok=false:\n\n"
        f"- JSON check: {agent_check_url}\n"
        f"- JSON context: {agent_context_json_url}\n"
    )

    out: dict[str, Any] = {
        "ok": ok,
        "checkedAt": response.checked_at,
        "action": action(ok),
        "recommendedBackoffMinutes": backoff,
        "summary": "\n".join(lines),
        "integrationSnippetMarkdown": integration,
        "openclawSnippetMarkdown": heartbeat,
        "failures": [_issue(r) for r in failures],
        "degraded": [_issue(r) for r in degraded],
    }
    return _with_optional(out, scope=None, probe_region=probe_region)


def agent_context_markdown(ctx: dict[str, Any]) -> str:
    action_line = f"**Action:** {ctx['action']}"
    if ctx["action"] == "BACKOFF":
        action_line += f" (suggested backoff: {ctx['recommendedBackoffMinutes']}m)"
    return "\n".join(
        [
            f"# {APP_NAME} - Agent Context",
            "",
            f"**Status:** {'OK' if ctx['ok'] else 'DEGRADED'}",
            f"**Checked at:** {ctx['checkedAt']}",
            action_line,
            "",
            "## Summary",
            "",
            ctx["summary"],
            "",
            "## Integration snippet (copy/paste)",
            "",
            "```markdown",
            ctx["integrationSnippetMarkdown"].rstrip(),
            "```",
            "",
            "## Heartbeat snippet (copy/paste)",
            "",
            "```markdown",
            ctx["openclawSnippetMarkdown"].rstrip(),
            "```",
        ]
    )


def prometheus_text(response: ProbeResponse, *, scraped_at: str | None = None) -> str:
    """Render one scrape of `response` into a fresh registry, prefixed with run timestamps."""
    p = METRIC_PREFIX
    registry = CollectorRegistry()
    Gauge(f"{p}_probe_ok", "Overall probe status (1=ok, 0=degraded)", registry=registry).set(
        1 if response.ok else 0
    )
    Gauge(f"{p}_probe_total_ms", "Total probe wall time in milliseconds", registry=registry).set(response.total_ms)

    labelnames = ("endpoint", "category", "url")
    endpoint_ok = Gauge(f"{p}_endpoint_ok", "Endpoint status (1=ok, 0=fail)", labelnames, registry=registry)
    latency = Gauge(f"{p}_endpoint_latency_ms", "Endpoint latency in milliseconds", labelnames, registry=registry)
    http_status = Gauge(
        f"{p}_endpoint_http_status",
        "Last observed HTTP status (0 on network error/timeout)",
        labelnames,
        registry=registry,
    )
    for r in response.results:
        labels = {"endpoint": r.name, "category": r.category, "url": r.url}
        endpoint_ok.labels(**labels).set(1 if r.ok else 0)
        latency.labels(**labels).set(r.ms)
        http_status.labels(**labels).set(r.status)

    header = "\n".join(
        [
            f"# {APP_NAME} metrics",
            f"# scraped_at {scraped_at or iso_now()}",
            f"# checked_at {response.checked_at}",
        ]
    )
    return header + "\n" + generate_latest(registry).decode("utf-8")
