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

"""Coordination lock data model.

Stored in each app's own database, one row per lock scope.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def _ns_to_iso(value_ns: int) -> str:
    return datetime.fromtimestamp(value_ns / 1_000_000_000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class CoordinationLockModel(SQLModel, table=True):
    """Single-writer lock for an app's background agent.

    Attributes:
        scope: Lockable unit (primary key), e.g. "agent" or "task:<id>".
        task_id: Task the holder is working on.
        session_id: Holding session; the same session may refresh the lock.
        locked_at_ns: Nanosecond timestamp of the latest acquire.
        expires_at_ns: Nanosecond timestamp after which the row is ignored.
    """

    __tablename__ = "coordination_locks"  # type: ignore[assignment]

    scope: str = Field(primary_key=True)

    task_id: str
    session_id: str
    locked_at_ns: int
    expires_at_ns: int

    def is_expired(self, now_ns: int) -> bool:
        return now_ns >= self.expires_at_ns

    def to_public_dict(self) -> dict[str, object]:
        return {
            "scope": self.scope,
            "task_id": self.task_id,
            "session_id": self.session_id,
            "locked_at": _ns_to_iso(self.locked_at_ns),
            "expires_at": _ns_to_iso(self.expires_at_ns),
        }
