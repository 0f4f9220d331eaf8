"""FastAPI HTTP server for the Citadel host.

This module wires the isolation and routing core (store manager, registry,
gateway router, coordination locks, settings and audit sink) into one
FastAPI application.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from citadel.archs.audit import AuditSink
from citadel.archs.config import CitadelConfig
from citadel.archs.gateway import GatewayRouter, register_default_handlers
from citadel.archs.registry import AppRegistry
from citadel.archs.session import SettingsService, TaskLockService
from citadel.archs.storage import TenantStoreManager
from citadel.archs.transports.http.app_routes import create_apps_router
from citadel.archs.transports.http.config import HTTPConfig
from citadel.core.errors import (
    CitadelError,
    GuardrailViolationError,
    InvalidAppIdError,
    LockHeldError,
    NotFoundError,
    PathEscapeError,
    UnknownAppError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

# First match wins; anything else derived from CitadelError is a 500.
ERROR_STATUS: tuple[tuple[type[CitadelError], int], ...] = (
    (InvalidAppIdError, 400),
    (GuardrailViolationError, 400),
    (PathEscapeError, 400),
    (UnknownAppError, 404),
    (NotFoundError, 404),
    (LockHeldError, 409),
    (UpstreamUnavailableError, 502),
)


def status_for_error(error: CitadelError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_body(error: CitadelError) -> dict[str, object]:
    """JSON body for a Citadel error."""
    body: dict[str, object] = {"ok": False, "error": str(error)}
    app_id = getattr(error, "app_id", None)
    if isinstance(app_id, str):
        body["id"] = app_id
    if isinstance(error, LockHeldError):
        body["error"] = "locked"
        body["lock"] = error.lock.to_public_dict()
    elif isinstance(error, UpstreamUnavailableError):
        body["upstream"] = error.url
        if error.status_code is not None:
            body["status"] = error.status_code
    return body


class CitadelHTTPServer:
    """HTTP server exposing the Citadel host API.

    Example:
        >>> from citadel.archs.config import CitadelConfig
        >>> from citadel.archs.transports.http import CitadelHTTPServer, HTTPConfig
        >>>
        >>> server = CitadelHTTPServer(
        ...     citadel_config=CitadelConfig(data_root="./data", registry_path="apps.yaml"),
        ...     config=HTTPConfig(port=3000),
        ... )
        >>> server.run()  # blocks
    """

    def __init__(
        self,
        *,
        citadel_config: CitadelConfig | None = None,
        config: HTTPConfig | None = None,
        registry: AppRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        """Initialize the server and its components.

        Args:
            citadel_config: Host configuration (default: CitadelConfig())
            config: HTTP-specific configuration (default: HTTPConfig())
            registry: App registry (default: loaded from ``registry_path``, else empty)
            http_client: Client for upstream calls (default: created lazily)
            clock: Nanosecond clock for coordination locks and settings
        """
        self._citadel_config = citadel_config or CitadelConfig()
        self._config = config or HTTPConfig()
        self._is_running = False

        cfg = self._citadel_config
        if registry is None:
            registry = AppRegistry.from_yaml(cfg.registry_path) if cfg.registry_path is not None else AppRegistry()

        self.audit = AuditSink(max_queue_size=cfg.audit_queue_size, audit_dir=cfg.audit_dir)
        self.registry = registry
        self.stores = TenantStoreManager(cfg.data_root, audit=self.audit)
        self.gateway = GatewayRouter(
            registry=registry,
            http_client=http_client,
            timeout=cfg.upstream_timeout,
            audit=self.audit,
        )
        register_default_handlers(self.gateway, self.stores, self.audit)
        self.locks = TaskLockService(stores=self.stores, lock_ttl=cfg.lock_ttl, clock=clock, audit=self.audit)
        self.settings = SettingsService(stores=self.stores, clock=clock, audit=self.audit)

        self.app = self._create_app()

    def _create_app(self) -> FastAPI:
        """Create the FastAPI application.

        Returns:
            Configured FastAPI app
        """

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            """Start the audit drain on startup; close engines and clients on shutdown."""
            self.audit.start()
            self._is_running = True
            try:
                yield
            finally:
                self._is_running = False
                await self.gateway.aclose()
                await self.stores.close()
                await self.audit.stop()

        app = FastAPI(
            title="Citadel Host",
            description="Multi-app host: per-app isolated storage, gateway routing and coordination locks",
            version="1.0.0",
            lifespan=lifespan,
        )

        app.add_middleware(
            CORSMiddleware,
            allow_origins=self._config.cors_origins,
            allow_credentials=self._config.cors_credentials,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.exception_handler(CitadelError)
        async def citadel_error_handler(request: Request, exc: CitadelError):  # pyright: ignore[reportUnusedFunction]
            status_code = status_for_error(exc)
            if status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc}")
            else:
                logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc}")
            return JSONResponse(status_code=status_code, content=error_body(exc))

        self._add_routes(app)
        app.include_router(create_apps_router(self.gateway, self.locks, self.settings))
        return app

    def _add_routes(self, app: FastAPI) -> None:
        @app.get("/")
        async def root():  # pyright: ignore[reportUnusedFunction]
            """Root endpoint with service info."""
            return {
                "service": "Citadel Host",
                "version": self.app.version,
                "status": "running" if self.is_running else "uninitialized",
                "apps": len(self.registry),
                "endpoints": {
                    "health": "/health",
                    "apps": "/api/apps",
                    "app_health": "/api/apps/{app_id}/health",
                    "selftest": "/api/apps/{app_id}/selftest",
                    "lock": "/api/apps/{app_id}/lock",
                    "settings": "/api/apps/{app_id}/settings",
                    "proxy": "/api/gateway/apps/{app_id}/proxy/{path}",
                },
            }

        @app.get("/health")
        async def health():  # pyright: ignore[reportUnusedFunction]
            """Host health check endpoint."""
            return {"status": "healthy" if self.is_running else "unhealthy"}

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def host(self) -> str:
        return self._config.host

    @property
    def port(self) -> int:
        return self._config.port

    @property
    def health_url(self) -> str:
        return f"http://{self.host}:{self.port}/health"

    def run(self) -> None:
        """Run the server (blocking) with uvicorn."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.host,
            port=self.port,
            log_level=self._config.log_level,
            loop="asyncio",
        )
