"""Request/response models for the Citadel HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LockAcquireRequest(BaseModel):
    """Body of ``POST /api/apps/{app_id}/lock``.

    Example:
        >>> LockAcquireRequest(task_id="task-42", session_id="sess-1", ttl=300)
    """

    task_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    ttl: float | None = Field(default=None, gt=0)
    scope: str = Field(default="agent", min_length=1)


class HealthResponse(BaseModel):
    """Health probe result for one app."""

    ok: bool
    id: str
    source: str  # "local" | "registry"
    status: int | None = None
    upstream: str | None = None
    ts: str


class ErrorResponse(BaseModel):
    """Error body shared by all endpoints."""

    ok: bool = False
    error: str
    id: str | None = None
