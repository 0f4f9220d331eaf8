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

"""Gateway request and outcome types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class GatewayRequest:
    """Inbound request as seen by the gateway.

    Attributes:
        method: HTTP method forwarded upstream
        path: Sub-path below the app (proxy capability only)
        query: Raw query string without the leading ``?``
        headers: Request headers to forward
        body: Raw request body
    """

    method: str = "GET"
    path: str = ""
    query: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""


@dataclass(frozen=True)
class LocalDispatch:
    """Result of a capability served in-process."""

    app_id: str
    capability: str
    result: Any


@dataclass(frozen=True)
class ProxyOutcome:
    """Successful (2xx) upstream response, body passed through unchanged."""

    app_id: str
    capability: str
    url: str
    status_code: int
    headers: dict[str, str]
    body: bytes

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")


RouteOutcome = LocalDispatch | ProxyOutcome
