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

"""In-process handlers for apps without an upstream."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from citadel.archs.audit import AuditSink
from citadel.archs.registry import AppRecord
from citadel.archs.storage import TenantStoreManager

from .models import GatewayRequest
from .router import GatewayRouter, LocalHandler

SELFTEST_PATH = "selftest.txt"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


async def local_health(record: AppRecord, request: GatewayRequest) -> dict[str, Any]:
    return {"ok": True}


def make_selftest_handler(stores: TenantStoreManager, audit: AuditSink | None = None) -> LocalHandler:
    """Build the selftest handler: a database and storage round trip in the app's namespace."""

    async def selftest(record: AppRecord, request: GatewayRequest) -> dict[str, Any]:
        app_id = record.id
        await stores.execute(
            app_id,
            "CREATE TABLE IF NOT EXISTS selftest (id INTEGER PRIMARY KEY AUTOINCREMENT, note TEXT, created_at TEXT)",
        )
        await stores.execute(
            app_id,
            "INSERT INTO selftest (note, created_at) VALUES (?, ?)",
            [f"hello from {app_id}", _now_iso()],
        )
        recent = await stores.query(app_id, "SELECT id, note, created_at FROM selftest ORDER BY id DESC LIMIT 5")

        content = f"citadel selftest ({app_id}) @ {_now_iso()}\n"
        await stores.write_scoped(app_id, SELFTEST_PATH, content)
        read_back = await stores.read_scoped(app_id, SELFTEST_PATH)

        if audit is not None:
            audit.emit(app_id, "selftest", {"rows": len(recent), "wrotePath": SELFTEST_PATH})
        return {"db": {"recent": recent}, "storage": {"path": SELFTEST_PATH, "readBack": read_back}}

    return selftest


def register_default_handlers(
    router: GatewayRouter,
    stores: TenantStoreManager,
    audit: AuditSink | None = None,
) -> None:
    """Register the built-in ``health`` and ``selftest`` capabilities."""
    router.register_local("health", local_health)
    router.register_local("selftest", make_selftest_handler(stores, audit))
