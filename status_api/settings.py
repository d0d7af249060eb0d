from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


def _default_region() -> str:
    return _env_str("STATUS_PROBE_REGION", "") or _env_str("VERCEL_REGION", "")


@dataclass(frozen=True)
class StatusSettings:
    # Name of the env var holding the upstream API key. Read on every probe run.
    credential_env: str = field(default_factory=lambda: _env_str("STATUS_CREDENTIAL_ENV", "MOLTBOOK_API_KEY"))
    # Optional YAML file with a `targets:` list; empty uses the built-in registry.
    targets_path: str = field(default_factory=lambda: _env_str("STATUS_TARGETS_PATH", ""))
    revalidate_seconds: int = field(default_factory=lambda: _env_int("STATUS_REVALIDATE_SECONDS", 300))
    stale_while_revalidate_seconds: int = field(default_factory=lambda: _env_int("STATUS_STALE_WHILE_REVALIDATE_SECONDS", 60))

    # Used to build links in agent snippets; falls back to the request's own origin.
    public_base_url: str = field(default_factory=lambda: _env_str("STATUS_PUBLIC_BASE_URL", ""))
    probe_region: str = field(default_factory=_default_region)

    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO").upper())

    def read_credential(self) -> str | None:
        raw = os.getenv(self.credential_env)
        s = str(raw or "").strip()
        return s or None

    def cache_control(self) -> str:
        return f"public, s-maxage={int(self.revalidate_seconds)}, stale-while-revalidate={int(self.stale_while_revalidate_seconds)}"
