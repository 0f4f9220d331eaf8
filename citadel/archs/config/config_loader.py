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

"""Host configuration loaded from environment variables.

Environment variables:
    CITADEL_DATA_ROOT: Root for app data (default: ./data)
    CITADEL_REGISTRY_PATH: Registry YAML file (default: none, empty registry)
    CITADEL_UPSTREAM_TIMEOUT: Upstream call timeout in seconds (default: 10)
    CITADEL_LOCK_TTL: Default coordination lock TTL in seconds (default: 600)
    CITADEL_AUDIT_QUEUE_SIZE: Pending audit events before dropping (default: 1000)
    CITADEL_AUDIT_FILE: "1"/"true" to also write <data_root>/audit/<app_id>.jsonl
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from citadel.core.errors import ConfigError

_TRUE_VALUES = {"1", "true", "yes", "on"}


class CitadelConfig(BaseModel):
    """Settings shared by the store manager, gateway, locks and audit sink."""

    data_root: Path = Path("./data")
    registry_path: Path | None = None
    upstream_timeout: float = Field(default=10.0, gt=0)
    lock_ttl: float = Field(default=600.0, gt=0)
    audit_queue_size: int = Field(default=1000, gt=0)
    audit_to_file: bool = False

    @property
    def audit_dir(self) -> Path | None:
        return self.data_root / "audit" if self.audit_to_file else None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> CitadelConfig:
        """Build a config from ``environ`` (defaults to ``os.environ``).

        Raises:
            ConfigError: If a variable has an invalid value
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        if env.get("CITADEL_DATA_ROOT"):
            values["data_root"] = Path(env["CITADEL_DATA_ROOT"]).expanduser()
        if env.get("CITADEL_REGISTRY_PATH"):
            values["registry_path"] = Path(env["CITADEL_REGISTRY_PATH"]).expanduser()
        if env.get("CITADEL_UPSTREAM_TIMEOUT"):
            values["upstream_timeout"] = env["CITADEL_UPSTREAM_TIMEOUT"]
        if env.get("CITADEL_LOCK_TTL"):
            values["lock_ttl"] = env["CITADEL_LOCK_TTL"]
        if env.get("CITADEL_AUDIT_QUEUE_SIZE"):
            values["audit_queue_size"] = env["CITADEL_AUDIT_QUEUE_SIZE"]
        if env.get("CITADEL_AUDIT_FILE"):
            values["audit_to_file"] = env["CITADEL_AUDIT_FILE"].strip().lower() in _TRUE_VALUES

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigError(f"Invalid Citadel configuration: {e}") from e
