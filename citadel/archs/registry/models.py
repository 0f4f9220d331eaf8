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

"""App registry record model."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from citadel.core.app_ids import validate_app_id

ALLOWED_PERMISSIONS: frozenset[str] = frozenset(
    {
        "notifications",
        "camera",
        "microphone",
        "gallery",
        "filesystem",
        "agent:run",
    }
)

DEFAULT_HEALTH_PATH = "/healthz"


class AppRecord(BaseModel):
    """Registry entry for one app.

    An app with ``upstream_base_url`` is served by an external process and
    the gateway forwards remote-capable requests to it. Without it, the app
    is served in-process.

    Attributes:
        id: App id (validated identifier)
        name: Display name
        permissions: Granted capabilities, drawn from ``ALLOWED_PERMISSIONS``
        upstream_base_url: Base URL of the external upstream, if any
        health_path: Upstream health path, must start with ``/``
        version: Optional manifest version
        enabled: Disabled apps resolve as unknown to the gateway
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    permissions: frozenset[str] = Field(default_factory=frozenset)
    upstream_base_url: str | None = Field(default=None, alias="upstreamBaseUrl")
    health_path: str | None = Field(default=None, alias="healthPath")
    version: str | None = None
    enabled: bool = True

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return validate_app_id(value)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value

    @field_validator("permissions")
    @classmethod
    def _check_permissions(cls, value: frozenset[str]) -> frozenset[str]:
        invalid = sorted(value - ALLOWED_PERMISSIONS)
        if invalid:
            raise ValueError(f"invalid permission(s): {', '.join(invalid)}")
        return value

    @field_validator("upstream_base_url")
    @classmethod
    def _check_upstream(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("upstreamBaseUrl must be an http(s) URL")
        return value.rstrip("/")

    @field_validator("health_path")
    @classmethod
    def _check_health_path(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value.startswith("/"):
            raise ValueError("healthPath must be a path starting with /")
        return value

    @property
    def is_external(self) -> bool:
        return self.upstream_base_url is not None

    @property
    def effective_health_path(self) -> str:
        return self.health_path or DEFAULT_HEALTH_PATH

    def to_public_dict(self) -> dict[str, object]:
        """JSON-friendly view used by the HTTP surface."""
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "permissions": sorted(self.permissions),
            "upstreamBaseUrl": self.upstream_base_url,
            "healthPath": self.health_path,
            "enabled": self.enabled,
            "source": "registry" if self.is_external else "local",
        }
