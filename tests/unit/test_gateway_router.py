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

"""Unit tests for GatewayRouter.

Upstreams are simulated with httpx.MockTransport so every outbound call is
recorded.
"""

import asyncio

import httpx
import pytest

from citadel.archs.gateway import (
    GatewayRequest,
    GatewayRouter,
    LocalDispatch,
    ProxyOutcome,
    register_default_handlers,
)
from citadel.core.errors import (
    InvalidAppIdError,
    NotFoundError,
    UnknownAppError,
    UpstreamUnavailableError,
)


class RecordingTransport:
    """Builds a MockTransport and records every request it sees."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def _router(registry, transport, stores=None):
    router = GatewayRouter(registry=registry, http_client=transport.client(), timeout=2.0)
    if stores is not None:
        register_default_handlers(router, stores)
    return router


class TestLocalDispatch:
    def test_local_app_health_is_served_in_process(self, registry, stores):
        transport = RecordingTransport(lambda request: httpx.Response(500))
        router = _router(registry, transport, stores)

        outcome = asyncio.run(router.route("gym-tracker", "health"))

        assert isinstance(outcome, LocalDispatch)
        assert outcome.result == {"ok": True}
        assert transport.requests == []

    def test_selftest_is_always_local(self, registry, stores):
        transport = RecordingTransport(lambda request: httpx.Response(200))
        router = _router(registry, transport, stores)

        async def run():
            try:
                return await router.route("french-translator", "selftest")
            finally:
                await stores.close()

        outcome = asyncio.run(run())
        assert isinstance(outcome, LocalDispatch)
        assert outcome.result["storage"]["readBack"].startswith("citadel selftest (french-translator)")
        assert len(outcome.result["db"]["recent"]) == 1
        assert transport.requests == []

    def test_missing_local_handler(self, registry):
        router = GatewayRouter(registry=registry)
        with pytest.raises(NotFoundError):
            asyncio.run(router.route("gym-tracker", "proxy"))

    def test_custom_local_handler(self, registry):
        router = GatewayRouter(registry=registry)

        async def echo(record, request):
            return {"app": record.id, "path": request.path}

        router.register_local("proxy", echo)
        outcome = asyncio.run(router.route("gym-tracker", "proxy", GatewayRequest(path="entries")))
        assert outcome.result == {"app": "gym-tracker", "path": "entries"}


class TestResolution:
    def test_invalid_id(self, registry):
        router = GatewayRouter(registry=registry)
        with pytest.raises(InvalidAppIdError):
            asyncio.run(router.route("Not Valid", "health"))

    def test_unknown_app(self, registry):
        router = GatewayRouter(registry=registry)
        with pytest.raises(UnknownAppError):
            asyncio.run(router.route("does-not-exist", "health"))

    def test_disabled_app_is_unknown(self, registry):
        router = GatewayRouter(registry=registry)
        with pytest.raises(UnknownAppError):
            asyncio.run(router.route("legacy-app", "health"))


class TestUpstream:
    def test_health_makes_exactly_one_call(self, registry):
        transport = RecordingTransport(lambda request: httpx.Response(200, json={"ok": True}))
        router = _router(registry, transport)

        outcome = asyncio.run(router.route("french-translator", "health"))

        assert isinstance(outcome, ProxyOutcome)
        assert outcome.status_code == 200
        assert outcome.url == "https://x/h"
        assert [str(r.url) for r in transport.requests] == ["https://x/h"]
        assert transport.requests[0].method == "GET"

    def test_non_2xx_is_upstream_unavailable(self, registry):
        transport = RecordingTransport(lambda request: httpx.Response(503, text="down"))
        router = _router(registry, transport)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            asyncio.run(router.route("french-translator", "health"))

        assert exc_info.value.status_code == 503
        assert exc_info.value.url == "https://x/h"
        assert len(transport.requests) == 1

    def test_network_error_is_upstream_unavailable(self, registry):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = RecordingTransport(refuse)
        router = _router(registry, transport)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            asyncio.run(router.route("french-translator", "health"))

        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.detail
        assert len(transport.requests) == 1

    def test_redirect_is_not_followed(self, registry):
        transport = RecordingTransport(lambda request: httpx.Response(302, headers={"location": "https://x/elsewhere"}))
        router = _router(registry, transport)

        with pytest.raises(UpstreamUnavailableError):
            asyncio.run(router.route("french-translator", "health"))
        assert len(transport.requests) == 1

    def test_default_health_path(self):
        from citadel.archs.registry import AppRegistry

        registry = AppRegistry.from_records({"id": "scrum-board", "name": "Scrum", "upstreamBaseUrl": "http://up:3200"})
        transport = RecordingTransport(lambda request: httpx.Response(204))
        router = _router(registry, transport)

        outcome = asyncio.run(router.route("scrum-board", "health"))
        assert outcome.url == "http://up:3200/healthz"

    def test_proxy_forwards_method_path_query_and_body(self, registry):
        def handler(request):
            return httpx.Response(
                201,
                content=b'{"translated":"bonjour"}',
                headers={"content-type": "application/json", "connection": "close", "x-upstream": "1"},
            )

        transport = RecordingTransport(handler)
        router = _router(registry, transport)

        outcome = asyncio.run(
            router.route(
                "french-translator",
                "proxy",
                GatewayRequest(
                    method="post",
                    path="/api/translate",
                    query="lang=fr",
                    headers={"Content-Type": "application/json", "Host": "citadel.local", "Connection": "keep-alive"},
                    body=b'{"text":"hello"}',
                ),
            )
        )

        sent = transport.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://x/api/translate?lang=fr"
        assert sent.content == b'{"text":"hello"}'
        assert sent.headers["host"] == "x"
        assert outcome.status_code == 201
        assert outcome.body == b'{"translated":"bonjour"}'
        assert outcome.headers["x-upstream"] == "1"
        assert "connection" not in outcome.headers

    def test_proxy_to_local_app_without_handler(self, registry):
        transport = RecordingTransport(lambda request: httpx.Response(200))
        router = _router(registry, transport)
        with pytest.raises(NotFoundError):
            asyncio.run(router.route("gym-tracker", "proxy", GatewayRequest(path="x")))
        assert transport.requests == []

    def test_upstream_url_requires_an_upstream(self, registry):
        router = GatewayRouter(registry=registry)
        record = registry.resolve("gym-tracker")
        with pytest.raises(ValueError):
            router.build_upstream_url(record, "health", GatewayRequest())
