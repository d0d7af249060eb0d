from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml


CATEGORIES: tuple[str, ...] = ("site", "api", "docs", "auth")
AUTH_CATEGORY = "auth"
METHODS: tuple[str, ...] = ("GET", "HEAD")
DEFAULT_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class ProbeTarget:
    name: str
    url: str
    category: str
    method: str = "GET"
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    def __post_init__(self) -> None:
        if not str(self.name or "").strip():
            raise ValueError("probe target name is required")
        if self.category not in CATEGORIES:
            raise ValueError(f"{self.name}: category must be one of {list(CATEGORIES)}, got {self.category!r}")
        if self.method not in METHODS:
            raise ValueError(f"{self.name}: method must be GET or HEAD, got {self.method!r}")
        parts = urlsplit(self.url or "")
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ValueError(f"{self.name}: url must be an absolute http(s) URL, got {self.url!r}")
        if int(self.timeout_ms) <= 0:
            raise ValueError(f"{self.name}: timeout_ms must be positive")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class TargetRegistry:
    """
    Immutable set of probe targets, split into public targets (always probed)
    and auth-gated targets (probed only when a credential is configured).
    """

    public: tuple[ProbeTarget, ...] = ()
    auth: tuple[ProbeTarget, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "public", tuple(self.public))
        object.__setattr__(self, "auth", tuple(self.auth))

        for t in self.public:
            if t.category == AUTH_CATEGORY:
                raise ValueError(f"{t.name}: auth-category targets belong in the auth partition")
        for t in self.auth:
            if t.category != AUTH_CATEGORY:
                raise ValueError(f"{t.name}: auth partition only accepts category {AUTH_CATEGORY!r}")

        seen: set[str] = set()
        for t in self.all_targets():
            if t.name in seen:
                raise ValueError(f"duplicate probe target name: {t.name!r}")
            seen.add(t.name)

    def all_targets(self) -> tuple[ProbeTarget, ...]:
        return self.public + self.auth

    def active_targets(self, auth_enabled: bool) -> list[tuple[ProbeTarget, bool]]:
        """Targets for one run as (target, requires_auth), in registration order."""
        active = [(t, False) for t in self.public]
        if auth_enabled:
            active.extend((t, True) for t in self.auth)
        return active

    def expected_count(self, auth_enabled: bool) -> int:
        return len(self.public) + (len(self.auth) if auth_enabled else 0)

    def without(self, *, category: str | None = None, name: str | None = None) -> "TargetRegistry":
        def keep(t: ProbeTarget) -> bool:
            if category is not None and t.category == category:
                return False
            if name is not None and t.name == name:
                return False
            return True

        return TargetRegistry(
            public=tuple(t for t in self.public if keep(t)),
            auth=tuple(t for t in self.auth if keep(t)),
        )


_BASE = "https://www.moltbook.com"

DEFAULT_REGISTRY = TargetRegistry(
    public=(
        # Core site
        ProbeTarget(name="Homepage", url=f"{_BASE}/", method="HEAD", category="site"),
        # Public API
        ProbeTarget(name="Posts Feed", url=f"{_BASE}/api/v1/posts?sort=new&limit=1", category="api"),
        ProbeTarget(name="Submolts List", url=f"{_BASE}/api/v1/submolts", category="api"),
        # Agent documentation
        ProbeTarget(name="skill.md", url=f"{_BASE}/skill.md", method="HEAD", category="docs"),
        ProbeTarget(name="heartbeat.md", url=f"{_BASE}/heartbeat.md", method="HEAD", category="docs"),
        ProbeTarget(name="messaging.md", url=f"{_BASE}/messaging.md", method="HEAD", category="docs"),
        ProbeTarget(name="skill.json", url=f"{_BASE}/skill.json", method="HEAD", category="docs"),
    ),
    auth=(
        ProbeTarget(name="Profile (me)", url=f"{_BASE}/api/v1/agents/me", category="auth"),
        ProbeTarget(name="Claim Status", url=f"{_BASE}/api/v1/agents/status", category="auth"),
        ProbeTarget(name="Personal Feed", url=f"{_BASE}/api/v1/feed?limit=1", category="auth"),
    ),
)


def target_from_dict(item: Any, *, idx: int = 0) -> ProbeTarget:
    if not isinstance(item, dict):
        raise ValueError(f"targets[{idx}] must be a mapping, got {type(item).__name__}")
    name = str(item.get("name") or "").strip()
    if not name:
        raise ValueError(f"targets[{idx}].name is required")
    try:
        timeout_ms = int(item.get("timeout_ms", DEFAULT_TIMEOUT_MS))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"targets[{idx}].timeout_ms must be an int") from exc
    return ProbeTarget(
        name=name,
        url=str(item.get("url") or "").strip(),
        method=str(item.get("method") or "GET").strip().upper(),
        timeout_ms=timeout_ms,
        category=str(item.get("category") or "").strip().lower(),
    )


def registry_from_config(config: dict[str, Any]) -> TargetRegistry:
    raw = config.get("targets")
    if not isinstance(raw, list) or not raw:
        raise ValueError("config must define a non-empty 'targets' list")

    targets = [target_from_dict(item, idx=idx) for idx, item in enumerate(raw)]
    return TargetRegistry(
        public=tuple(t for t in targets if t.category != AUTH_CATEGORY),
        auth=tuple(t for t in targets if t.category == AUTH_CATEGORY),
    )


def load_registry(path: Path | str) -> TargetRegistry:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Targets YAML must be a mapping")
    return registry_from_config(data)
