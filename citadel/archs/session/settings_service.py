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

"""Per-app settings stored in the app's own database."""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from citadel.archs.audit import AuditSink
from citadel.archs.session.models.app_setting import AppSettingModel
from citadel.archs.storage import TenantStoreManager
from citadel.core.app_ids import validate_app_id
from citadel.core.errors import StoreError

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Mapping[str, Any] = {"autopilot_enabled": True}

SETTING_KEY_PATTERN = re.compile(r"[a-z][a-z0-9_]{0,63}")

_SETTINGS_TABLE = AppSettingModel.__table__  # type: ignore[attr-defined]


def _check_setting(key: object, value: object) -> None:
    if not isinstance(key, str) or SETTING_KEY_PATTERN.fullmatch(key) is None:
        raise ValueError(f"Invalid setting key: {key!r}")
    if value is not None and not isinstance(value, (bool, int, float, str)):
        raise ValueError(f"Setting {key} must be a scalar (bool, number, string or null)")


class SettingsService:
    """Key/value settings per app, overlaid on ``DEFAULT_SETTINGS``."""

    def __init__(
        self,
        *,
        stores: TenantStoreManager,
        defaults: Mapping[str, Any] | None = None,
        clock: Callable[[], int] = time.time_ns,
        audit: AuditSink | None = None,
    ) -> None:
        self._stores = stores
        self._defaults = dict(DEFAULT_SETTINGS if defaults is None else defaults)
        self._clock = clock
        self._audit = audit

    async def get_settings(self, app_id: str) -> dict[str, Any]:
        validate_app_id(app_id)
        await self._stores.setup_models(app_id, [AppSettingModel])
        handle = await self._stores.get_handle(app_id)
        try:
            async with handle.engine.connect() as conn:
                rows = (await conn.execute(select(_SETTINGS_TABLE.c.key, _SETTINGS_TABLE.c.value))).all()
        except SQLAlchemyError as e:
            raise StoreError(app_id, str(e)) from e

        settings = dict(self._defaults)
        for key, raw in rows:
            try:
                settings[key] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring undecodable setting {key} for app={app_id}")
        return settings

    async def update_settings(self, app_id: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Merge ``changes`` into the stored settings and return the result.

        Raises:
            ValueError: If a key or value is not acceptable (nothing is written)
        """
        validate_app_id(app_id)
        for key, value in changes.items():
            _check_setting(key, value)
        if not changes:
            return await self.get_settings(app_id)

        await self._stores.setup_models(app_id, [AppSettingModel])
        handle = await self._stores.get_handle(app_id)
        now = self._clock()
        try:
            async with handle.engine.begin() as conn:
                for key, value in changes.items():
                    stmt = sqlite_insert(_SETTINGS_TABLE).values(key=key, value=json.dumps(value), updated_at_ns=now)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[_SETTINGS_TABLE.c.key],
                        set_={"value": stmt.excluded.value, "updated_at_ns": stmt.excluded.updated_at_ns},
                    )
                    await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(app_id, str(e)) from e

        for key, value in changes.items():
            self._emit(app_id, "settings.update", {"key": key, "value": value})
        logger.info(f"Updated settings {sorted(changes)} for app={app_id}")
        return await self.get_settings(app_id)

    def _emit(self, app_id: str, event_name: str, payload: dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit.emit(app_id, event_name, payload)
