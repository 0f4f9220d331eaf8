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

"""Gateway router: serve an app locally or forward it to its upstream.

For each request the router resolves the app in the registry. Apps with an
``upstream_base_url`` have their remote-capable capabilities forwarded with
exactly one outbound HTTP call; everything else goes to the local handler
registered for the capability.

Upstream failures never escape as transport errors: a network error or a
non-2xx status becomes ``UpstreamUnavailableError``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from citadel.archs.audit import AuditSink
from citadel.archs.registry import AppRecord, AppRegistry
from citadel.core.app_ids import validate_app_id
from citadel.core.errors import NotFoundError, UnknownAppError, UpstreamUnavailableError

from .models import GatewayRequest, LocalDispatch, ProxyOutcome, RouteOutcome

logger = logging.getLogger(__name__)

LocalHandler = Callable[[AppRecord, GatewayRequest], Awaitable[Any]]

# Capabilities an external app may serve itself; the rest always run locally.
REMOTE_CAPABILITIES: frozenset[str] = frozenset({"health", "proxy"})

HOP_BY_HOP_HEADERS: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    }
)

_STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding"}


def _filter_headers(headers: dict[str, str] | httpx.Headers, dropped: frozenset[str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items() if k.lower() not in dropped}


class GatewayRouter:
    """Per-request dispatcher between local handlers and external upstreams.

    Example:
        >>> router = GatewayRouter(registry=registry)
        >>> router.register_local("health", local_health)
        >>> outcome = await router.route("gym-tracker", "health")
    """

    def __init__(
        self,
        *,
        registry: AppRegistry,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        audit: AuditSink | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            registry: App registry consulted on every request
            http_client: Shared client for upstream calls (created lazily if None)
            timeout: Per-call upstream timeout in seconds
            audit: Audit sink for gateway events
        """
        self._registry = registry
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._audit = audit
        self._handlers: dict[str, LocalHandler] = {}

    @property
    def registry(self) -> AppRegistry:
        return self._registry

    def register_local(self, capability: str, handler: LocalHandler) -> None:
        """Register the in-process handler for ``capability``."""
        self._handlers[capability] = handler

    def resolve_enabled(self, app_id: str) -> AppRecord:
        """Validate ``app_id`` and return its enabled registry record.

        Raises:
            InvalidAppIdError: If the id is malformed
            UnknownAppError: If the app is not registered or disabled
        """
        validate_app_id(app_id)
        record = self._registry.resolve(app_id)
        if record is None or not record.enabled:
            raise UnknownAppError(app_id)
        return record

    def is_remote(self, record: AppRecord, capability: str) -> bool:
        return record.upstream_base_url is not None and capability in REMOTE_CAPABILITIES

    async def route(
        self,
        app_id: str,
        capability: str,
        request: GatewayRequest | None = None,
    ) -> RouteOutcome:
        """Dispatch one request.

        Returns:
            ``ProxyOutcome`` for forwarded requests, ``LocalDispatch`` otherwise

        Raises:
            InvalidAppIdError, UnknownAppError: Resolution failures
            UpstreamUnavailableError: Upstream unreachable or non-2xx
            NotFoundError: No local handler for the capability
        """
        request = request or GatewayRequest()
        record = self.resolve_enabled(app_id)

        if self.is_remote(record, capability):
            return await self._forward(record, capability, request)

        handler = self._handlers.get(capability)
        if handler is None:
            raise NotFoundError(f"No local handler for capability {capability!r} (app {app_id})")
        result = await handler(record, request)
        return LocalDispatch(app_id=app_id, capability=capability, result=result)

    def build_upstream_url(self, record: AppRecord, capability: str, request: GatewayRequest) -> str:
        """Join the upstream base URL with the capability path.

        Raises:
            ValueError: If the app has no upstream
        """
        if record.upstream_base_url is None:
            raise ValueError(f"App {record.id} has no upstream base URL")
        if capability == "health":
            path = record.effective_health_path
        else:
            path = "/" + request.path.lstrip("/")
        url = record.upstream_base_url + path
        if request.query:
            url = f"{url}?{request.query}"
        return url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def _forward(self, record: AppRecord, capability: str, request: GatewayRequest) -> ProxyOutcome:
        url = self.build_upstream_url(record, capability, request)
        method = "GET" if capability == "health" else request.method.upper()
        headers = _filter_headers(request.headers, HOP_BY_HOP_HEADERS) if capability != "health" else {}
        content = request.body if capability != "health" and request.body else None

        started = time.perf_counter()
        try:
            response = await self._get_client().request(
                method,
                url,
                headers=headers,
                content=content,
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            detail = str(e) or type(e).__name__
            logger.warning(f"Upstream request failed for app={record.id} url={url}: {detail}")
            self._emit(record.id, "gateway.upstream.error", {"capability": capability, "url": url, "error": detail})
            raise UpstreamUnavailableError(record.id, url, detail=detail) from e

        ms = int((time.perf_counter() - started) * 1000)
        if not response.is_success:
            logger.warning(f"Upstream for app={record.id} returned HTTP {response.status_code}: {url}")
            self._emit(
                record.id,
                "gateway.upstream.error",
                {"capability": capability, "url": url, "status": response.status_code, "ms": ms},
            )
            raise UpstreamUnavailableError(record.id, url, status_code=response.status_code)

        self._emit(record.id, "gateway.proxy", {"capability": capability, "status": response.status_code, "ms": ms})
        return ProxyOutcome(
            app_id=record.id,
            capability=capability,
            url=url,
            status_code=response.status_code,
            headers=_filter_headers(response.headers, _STRIPPED_RESPONSE_HEADERS),
            body=response.content,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this router created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _emit(self, app_id: str, event_name: str, payload: dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit.emit(app_id, event_name, payload)
