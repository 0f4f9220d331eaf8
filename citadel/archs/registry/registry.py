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

"""App registry.

Holds an immutable snapshot of ``AppRecord`` entries keyed by app id.
Readers never lock: ``reload`` builds a complete new snapshot and swaps the
reference in one assignment.

Registry file format (YAML)::

    apps:
      - id: gym-tracker
        name: Gym Tracker
        permissions: [microphone]
      - id: french-translator
        name: French Translator
        upstreamBaseUrl: http://127.0.0.1:3101
        healthPath: /api/healthz
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import ValidationError

from citadel.core.errors import ConfigError

from .models import AppRecord

logger = logging.getLogger(__name__)


def _build_snapshot(records: Iterable[AppRecord]) -> Mapping[str, AppRecord]:
    snapshot: dict[str, AppRecord] = {}
    for record in records:
        if record.id in snapshot:
            raise ConfigError(f"Duplicate app id in registry: {record.id}")
        snapshot[record.id] = record
    return MappingProxyType(snapshot)


def load_registry_file(path: str | Path) -> list[AppRecord]:
    """Parse a registry YAML file into records.

    Raises:
        ConfigError: If the file is missing, unparsable or has invalid entries
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Registry file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            raw: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML parsing error in {path}: {e}") from e

    if raw is None:
        return []
    if not isinstance(raw, dict) or not isinstance(raw.get("apps", []), list):
        raise ConfigError(f"Registry file {path} must be a mapping with an 'apps' list")

    records: list[AppRecord] = []
    for index, entry in enumerate(raw.get("apps") or []):
        if not isinstance(entry, dict):
            raise ConfigError(f"Registry entry #{index} in {path} must be a mapping")
        try:
            records.append(AppRecord.model_validate(entry))
        except ValidationError as e:
            raise ConfigError(f"Invalid registry entry #{index} in {path}: {e}") from e
    return records


class AppRegistry:
    """Immutable-snapshot registry of apps.

    Example:
        >>> registry = AppRegistry.from_yaml("apps.yaml")
        >>> registry.resolve("gym-tracker")
        AppRecord(id='gym-tracker', ...)
    """

    def __init__(self, records: Iterable[AppRecord] = (), *, source_path: str | Path | None = None) -> None:
        self._snapshot: Mapping[str, AppRecord] = _build_snapshot(records)
        self._source_path = Path(source_path) if source_path is not None else None

    @classmethod
    def from_yaml(cls, path: str | Path) -> AppRegistry:
        """Build a registry from a YAML file. ``reload`` re-reads the same file."""
        registry = cls(load_registry_file(path), source_path=path)
        logger.info(f"Loaded {len(registry)} app(s) from {path}")
        return registry

    @classmethod
    def from_records(cls, *records: AppRecord | Mapping[str, Any]) -> AppRegistry:
        """Build a registry from records or plain mappings."""
        parsed = [r if isinstance(r, AppRecord) else AppRecord.model_validate(r) for r in records]
        return cls(parsed)

    @property
    def source_path(self) -> Path | None:
        return self._source_path

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, app_id: object) -> bool:
        return app_id in self._snapshot

    def resolve(self, app_id: str) -> AppRecord | None:
        """Return the record for ``app_id`` or None."""
        return self._snapshot.get(app_id)

    def list_apps(self, *, include_disabled: bool = False) -> list[AppRecord]:
        """Return records sorted by id."""
        snapshot = self._snapshot
        return sorted(
            (r for r in snapshot.values() if include_disabled or r.enabled),
            key=lambda r: r.id,
        )

    def snapshot(self) -> Mapping[str, AppRecord]:
        """Return the current read-only snapshot."""
        return self._snapshot

    def replace(self, records: Iterable[AppRecord]) -> None:
        """Swap in a new snapshot built from ``records``."""
        self._snapshot = _build_snapshot(records)
        logger.info(f"Registry snapshot replaced ({len(self._snapshot)} app(s))")

    def reload(self) -> None:
        """Re-read the source file and swap the snapshot.

        On failure the previous snapshot stays in place.

        Raises:
            ConfigError: If there is no source file or it is invalid
        """
        if self._source_path is None:
            raise ConfigError("Registry has no source file to reload from")
        self.replace(load_registry_file(self._source_path))
