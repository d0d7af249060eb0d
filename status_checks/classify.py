from __future__ import annotations

from status_checks.probe import TIMEOUT_ERROR, ProbeResult


# Policy constants shared by every consumer of probe results.
DEGRADED_THRESHOLD_MS = 2500
BACKOFF_MINUTES = 20

ACTION_OK = "OK"
ACTION_BACKOFF = "BACKOFF"


def is_failing(result: ProbeResult) -> bool:
    return not result.ok


def is_degraded(result: ProbeResult) -> bool:
    """Succeeded, but slow enough to warn about. Never true for a failing result."""
    return result.ok and result.ms >= DEGRADED_THRESHOLD_MS


def is_timeout(result: ProbeResult) -> bool:
    return not result.ok and result.error == TIMEOUT_ERROR


def recommended_backoff_minutes(ok: bool) -> int:
    return 0 if ok else BACKOFF_MINUTES


def action(ok: bool) -> str:
    return ACTION_OK if ok else ACTION_BACKOFF
