# Copyright (c) Nex-AGI. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""App HTTP endpoints.

Provides per-app health, selftest, coordination lock and settings
endpoints, plus the generic gateway proxy.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse, Response

from citadel.archs.gateway import GatewayRequest, GatewayRouter, ProxyOutcome
from citadel.archs.session import DEFAULT_SCOPE, SettingsService, TaskLockService
from citadel.archs.transports.http.models import HealthResponse, LockAcquireRequest

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def create_apps_router(
    gateway: GatewayRouter,
    locks: TaskLockService,
    settings: SettingsService,
) -> APIRouter:
    """Create the router for ``/api/apps`` and ``/api/gateway`` endpoints.

    Args:
        gateway: Gateway router (owns the registry)
        locks: Coordination lock service
        settings: Per-app settings service

    Returns:
        APIRouter with all app routes.
    """
    router = APIRouter(tags=["apps"])

    @router.get("/api/apps")
    async def list_apps(include_disabled: bool = Query(default=False)):  # pyright: ignore[reportUnusedFunction]
        """List registered apps."""
        apps = gateway.registry.list_apps(include_disabled=include_disabled)
        return {"ok": True, "apps": [record.to_public_dict() for record in apps]}

    @router.get(
        "/api/apps/{app_id}/health",
        response_model=HealthResponse,
        response_model_exclude_none=True,
    )
    async def app_health(app_id: str):  # pyright: ignore[reportUnusedFunction]
        """Probe an app: local apps answer in-process, external apps via their upstream."""
        outcome = await gateway.route(app_id, "health")
        if isinstance(outcome, ProxyOutcome):
            return HealthResponse(
                ok=True,
                id=app_id,
                source="registry",
                status=outcome.status_code,
                upstream=outcome.url,
                ts=_now_iso(),
            )
        return HealthResponse(ok=True, id=app_id, source="local", ts=_now_iso())

    @router.get("/api/apps/{app_id}/selftest")
    async def app_selftest(app_id: str):  # pyright: ignore[reportUnusedFunction]
        """Run a database and storage round trip inside the app's namespace."""
        outcome = await gateway.route(app_id, "selftest")
        result: dict[str, Any] = outcome.result if not isinstance(outcome, ProxyOutcome) else {}
        return {"ok": True, "id": app_id, **result}

    # --- Coordination lock ---

    @router.get("/api/apps/{app_id}/lock")
    async def get_lock(app_id: str, scope: str = Query(default=DEFAULT_SCOPE)):  # pyright: ignore[reportUnusedFunction]
        """Return the live lock for ``scope`` if any."""
        gateway.resolve_enabled(app_id)
        lock = await locks.get_active_lock(app_id, scope=scope)
        return {
            "ok": True,
            "locked": lock is not None,
            "lock": lock.to_public_dict() if lock is not None else None,
        }

    @router.post("/api/apps/{app_id}/lock")
    async def acquire_lock(app_id: str, request: LockAcquireRequest):  # pyright: ignore[reportUnusedFunction]
        """Acquire or refresh the lock. Answers 409 with the holder when taken."""
        gateway.resolve_enabled(app_id)
        lock = await locks.acquire(
            app_id,
            task_id=request.task_id,
            session_id=request.session_id,
            ttl=request.ttl,
            scope=request.scope,
        )
        return {"ok": True, "lock": lock.to_public_dict()}

    @router.delete("/api/apps/{app_id}/lock")
    async def release_lock(  # pyright: ignore[reportUnusedFunction]
        app_id: str,
        session_id: str = Query(min_length=1),
        task_id: str | None = Query(default=None),
        scope: str = Query(default=DEFAULT_SCOPE),
    ):
        """Release the caller's lock. Releasing a lock not held is a no-op."""
        gateway.resolve_enabled(app_id)
        released = await locks.release(app_id, session_id=session_id, task_id=task_id, scope=scope)
        return {"ok": True, "released": released}

    # --- Settings ---

    @router.get("/api/apps/{app_id}/settings")
    async def get_settings(app_id: str):  # pyright: ignore[reportUnusedFunction]
        gateway.resolve_enabled(app_id)
        return {"ok": True, "settings": await settings.get_settings(app_id)}

    @router.patch("/api/apps/{app_id}/settings")
    async def update_settings(app_id: str, changes: dict[str, Any] = Body(...)):  # pyright: ignore[reportUnusedFunction]
        """Merge the body into the app's settings."""
        gateway.resolve_enabled(app_id)
        try:
            merged = await settings.update_settings(app_id, changes)
        except ValueError as e:
            return JSONResponse(status_code=400, content={"ok": False, "error": str(e), "id": app_id})
        return {"ok": True, "settings": merged}

    # --- Gateway proxy ---

    @router.api_route("/api/gateway/apps/{app_id}/proxy/{path:path}", methods=PROXY_METHODS)
    async def proxy(app_id: str, path: str, request: Request):  # pyright: ignore[reportUnusedFunction]
        """Forward a request to the app's upstream and pass the response through."""
        gateway_request = GatewayRequest(
            method=request.method,
            path=path,
            query=request.url.query,
            headers=dict(request.headers),
            body=await request.body(),
        )
        outcome = await gateway.route(app_id, "proxy", gateway_request)
        if isinstance(outcome, ProxyOutcome):
            return Response(content=outcome.body, status_code=outcome.status_code, headers=outcome.headers)
        return JSONResponse({"ok": True, "id": app_id, "result": outcome.result})

    return router
