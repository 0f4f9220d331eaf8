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

"""Error taxonomy for the Citadel host core.

Every error raised by the isolation and routing layers derives from
``CitadelError`` so transports can map them to responses in one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from citadel.archs.session.models.coordination_lock import CoordinationLockModel


class CitadelError(Exception):
    """Base class for all Citadel errors."""


class ConfigError(CitadelError):
    """Raised when configuration or the app registry cannot be loaded."""


class InvalidAppIdError(CitadelError, ValueError):
    """Raised when an app id does not match the identifier grammar."""

    def __init__(self, app_id: object) -> None:
        self.app_id = app_id
        super().__init__(f"Invalid appId: {app_id!r}")


class UnknownAppError(CitadelError):
    """Raised when a well-formed app id has no (enabled) registry record."""

    def __init__(self, app_id: str) -> None:
        self.app_id = app_id
        super().__init__(f"Unknown app: {app_id}")


class StoreInitError(CitadelError):
    """Raised when a tenant store handle cannot be created."""

    def __init__(self, app_id: str, reason: str) -> None:
        self.app_id = app_id
        self.reason = reason
        super().__init__(f"Failed to initialize store for {app_id}: {reason}")


class StoreError(CitadelError):
    """Raised when the database engine or filesystem fails for a tenant."""

    def __init__(self, app_id: str, reason: str) -> None:
        self.app_id = app_id
        self.reason = reason
        super().__init__(f"Store failure for {app_id}: {reason}")


class PathEscapeError(CitadelError):
    """Raised when a relative path resolves outside the tenant root.

    File operations also raise it for the root itself or a directory.
    """

    def __init__(self, app_id: str, rel_path: str, reason: str = "Path escapes app root") -> None:
        self.app_id = app_id
        self.rel_path = rel_path
        self.reason = reason
        super().__init__(f"{reason} for {app_id}: {rel_path!r}")


class GuardrailViolationError(CitadelError):
    """Raised when a SQL statement is rejected before execution."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"SQL rejected: {reason}")


class UpstreamUnavailableError(CitadelError):
    """Raised when an external upstream fails or answers non-2xx."""

    def __init__(self, app_id: str, url: str, *, status_code: int | None = None, detail: str = "") -> None:
        self.app_id = app_id
        self.url = url
        self.status_code = status_code
        self.detail = detail
        if status_code is not None:
            message = f"Upstream for {app_id} returned HTTP {status_code}: {url}"
        else:
            message = f"Upstream for {app_id} unreachable: {url} ({detail})"
        super().__init__(message)


class LockHeldError(CitadelError):
    """Raised when a coordination lock is held by another session."""

    def __init__(self, app_id: str, lock: CoordinationLockModel) -> None:
        self.app_id = app_id
        self.lock = lock
        super().__init__(f"Lock {lock.scope} for {app_id} is held by session {lock.session_id} (task {lock.task_id})")


class NotFoundError(CitadelError):
    """Raised when a scoped file or a local capability does not exist."""


__all__ = [
    "CitadelError",
    "ConfigError",
    "GuardrailViolationError",
    "InvalidAppIdError",
    "LockHeldError",
    "NotFoundError",
    "PathEscapeError",
    "StoreError",
    "StoreInitError",
    "UnknownAppError",
    "UpstreamUnavailableError",
]
