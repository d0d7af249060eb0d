from __future__ import annotations

from pydantic import BaseModel, Field


class ScopeModel(BaseModel):
    category: str | None = None
    name: str | None = None


class InvalidCategoryResponse(BaseModel):
    error: str = "invalid category"
    allowed: list[str] = Field(default_factory=list)


class UnknownScopeResponse(BaseModel):
    error: str = "no matching probes for requested scope"
    scope: ScopeModel
