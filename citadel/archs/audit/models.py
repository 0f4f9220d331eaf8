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

"""Audit event data model."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AuditEvent(BaseModel):
    """One append-only audit record.

    Serialized with ``by_alias=True`` the record reads
    ``{"ts": ..., "appId": ..., "event": ..., "payload": {...}}``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ts: str = Field(default_factory=_utc_now_iso)
    app_id: str = Field(alias="appId")
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True)
