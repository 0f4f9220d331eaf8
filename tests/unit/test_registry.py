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

"""Unit tests for the app registry."""

import pytest
import yaml
from pydantic import ValidationError

from citadel.archs.registry import AppRecord, AppRegistry
from citadel.core.errors import ConfigError


class TestAppRecord:
    def test_local_record_defaults(self):
        record = AppRecord(id="gym-tracker", name="Gym Tracker")
        assert record.permissions == frozenset()
        assert record.upstream_base_url is None
        assert not record.is_external
        assert record.enabled

    def test_external_record_normalizes_base_url(self):
        record = AppRecord.model_validate(
            {"id": "french-translator", "name": "FT", "upstreamBaseUrl": "http://127.0.0.1:3101/"}
        )
        assert record.upstream_base_url == "http://127.0.0.1:3101"
        assert record.is_external
        assert record.effective_health_path == "/healthz"

    def test_records_are_frozen(self):
        record = AppRecord(id="gym-tracker", name="Gym Tracker")
        with pytest.raises(ValidationError):
            record.name = "Other"

    @pytest.mark.parametrize(
        "data",
        [
            {"id": "Bad_Id", "name": "x"},
            {"id": "app", "name": "  "},
            {"id": "app", "name": "x", "permissions": ["root"]},
            {"id": "app", "name": "x", "healthPath": "healthz"},
            {"id": "app", "name": "x", "upstreamBaseUrl": "ftp://host"},
        ],
    )
    def test_invalid_records(self, data):
        with pytest.raises(ValidationError):
            AppRecord.model_validate(data)

    def test_public_dict(self):
        record = AppRecord(id="smart-notes", name="Smart Notes", permissions=frozenset({"gallery", "camera"}))
        assert record.to_public_dict()["permissions"] == ["camera", "gallery"]
        assert record.to_public_dict()["source"] == "local"


class TestAppRegistry:
    def test_resolve(self, registry):
        assert registry.resolve("gym-tracker").name == "Gym Tracker"
        assert registry.resolve("unknown-app") is None
        assert "french-translator" in registry

    def test_list_apps_sorted_and_filtered(self, registry):
        assert [r.id for r in registry.list_apps()] == ["french-translator", "gym-tracker", "smart-notes"]
        assert "legacy-app" in [r.id for r in registry.list_apps(include_disabled=True)]

    def test_snapshot_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.snapshot()["new-app"] = AppRecord(id="new-app", name="New")

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ConfigError):
            AppRegistry.from_records({"id": "a", "name": "A"}, {"id": "a", "name": "A again"})

    def test_from_yaml(self, registry_file):
        registry = AppRegistry.from_yaml(registry_file)
        assert len(registry) == 2
        external = registry.resolve("french-translator")
        assert external.upstream_base_url == "http://127.0.0.1:3101"
        assert external.health_path == "/api/healthz"
        assert external.version == "0.2.0"
        assert registry.resolve("gym-tracker").permissions == frozenset({"microphone"})

    def test_reload_swaps_snapshot(self, registry_file):
        registry = AppRegistry.from_yaml(registry_file)
        before = registry.snapshot()

        registry_file.write_text(yaml.safe_dump({"apps": [{"id": "scrum-board", "name": "Scrum Board"}]}))
        registry.reload()

        assert [r.id for r in registry.list_apps()] == ["scrum-board"]
        # Readers holding the old snapshot keep a consistent view
        assert set(before) == {"gym-tracker", "french-translator"}

    def test_failed_reload_keeps_previous_snapshot(self, registry_file):
        registry = AppRegistry.from_yaml(registry_file)
        registry_file.write_text(yaml.safe_dump({"apps": [{"id": "BAD", "name": "x"}]}))

        with pytest.raises(ConfigError):
            registry.reload()
        assert len(registry) == 2

    def test_reload_without_source(self, registry):
        with pytest.raises(ConfigError):
            registry.reload()

    @pytest.mark.parametrize(
        "content",
        ["apps: [", "- just\n- a list\n", "apps: not-a-list\n", "apps:\n  - 42\n"],
    )
    def test_invalid_files(self, tmp_path, content):
        path = tmp_path / "apps.yaml"
        path.write_text(content)
        with pytest.raises(ConfigError):
            AppRegistry.from_yaml(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            AppRegistry.from_yaml(tmp_path / "missing.yaml")

    def test_empty_file_is_empty_registry(self, tmp_path):
        path = tmp_path / "apps.yaml"
        path.write_text("")
        assert len(AppRegistry.from_yaml(path)) == 0
