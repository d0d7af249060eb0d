from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from status_checks.probe import ProbeResponse, ProbeResult
from status_checks.targets import CATEGORIES


class ScopeError(ValueError):
    """Base class for request-level scope problems."""


class InvalidScopeError(ScopeError):
    def __init__(self, category: str) -> None:
        self.category = category
        self.allowed = sorted(CATEGORIES)
        super().__init__(f"invalid category {category!r}; allowed: {', '.join(self.allowed)}")


class UnknownScopeError(ScopeError):
    def __init__(self, scope: "Scope") -> None:
        self.scope = scope
        super().__init__(f"no matching probes for requested scope {scope.to_dict()}")


@dataclass(frozen=True)
class Scope:
    category: str | None = None
    name: str | None = None

    @classmethod
    def parse(cls, category: str | None = None, name: str | None = None) -> "Scope":
        """Empty values mean "no filter". Unknown categories are rejected before any probing."""
        cat = str(category or "").strip() or None
        nm = name if name is not None and str(name).strip() else None
        if cat is not None and cat not in CATEGORIES:
            raise InvalidScopeError(cat)
        return cls(category=cat, name=nm)

    @property
    def is_empty(self) -> bool:
        return self.category is None and self.name is None

    def matches(self, result: ProbeResult) -> bool:
        if self.category is not None and result.category != self.category:
            return False
        if self.name is not None and result.name != self.name:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.category is not None:
            out["category"] = self.category
        if self.name is not None:
            out["name"] = self.name
        return out


def apply_scope(response: ProbeResponse, scope: Scope | None = None) -> list[ProbeResult]:
    """
    Filter results down to `scope`.

    A non-empty scope that matches none of the targets included in the run raises
    UnknownScopeError, so an empty selection is never mistaken for "all OK".
    """
    if scope is None or scope.is_empty:
        return list(response.results)
    selected = [r for r in response.results if scope.matches(r)]
    if not selected:
        raise UnknownScopeError(scope)
    return selected
