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

"""
Pytest configuration and fixtures for citadel tests.

This module provides shared fixtures for the store manager, registry,
audit sink and a controllable clock.
"""

from pathlib import Path

import pytest
import yaml

from citadel.archs.audit import AuditSink
from citadel.archs.registry import AppRecord, AppRegistry
from citadel.archs.storage import TenantStoreManager


class FakeClock:
    """Nanosecond clock that only moves when told to."""

    def __init__(self, start_ns: int = 1_700_000_000_000_000_000):
        self.now_ns = start_ns

    def __call__(self) -> int:
        return self.now_ns

    def advance(self, seconds: float) -> None:
        self.now_ns += int(seconds * 1_000_000_000)


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Fresh data root per test."""
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def audit_sink(data_root: Path) -> AuditSink:
    """Audit sink writing JSONL files under the data root."""
    return AuditSink(max_queue_size=100, audit_dir=data_root / "audit")


@pytest.fixture
def stores(data_root: Path, audit_sink: AuditSink) -> TenantStoreManager:
    """Store manager over the per-test data root."""
    return TenantStoreManager(data_root, audit=audit_sink)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> AppRegistry:
    """Registry with two local apps, one external app and one disabled app."""
    return AppRegistry.from_records(
        AppRecord(id="gym-tracker", name="Gym Tracker", permissions=frozenset({"microphone"})),
        AppRecord(id="smart-notes", name="Smart Notes", permissions=frozenset({"camera", "filesystem"})),
        AppRecord(
            id="french-translator",
            name="French Translator",
            upstream_base_url="https://x",
            health_path="/h",
        ),
        AppRecord(id="legacy-app", name="Legacy App", enabled=False),
    )


@pytest.fixture
def registry_file(tmp_path: Path) -> Path:
    """Registry YAML with a local and an external app."""
    path = tmp_path / "apps.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "apps": [
                    {"id": "gym-tracker", "name": "Gym Tracker", "permissions": ["microphone"]},
                    {
                        "id": "french-translator",
                        "name": "French Translator",
                        "upstreamBaseUrl": "http://127.0.0.1:3101/",
                        "healthPath": "/api/healthz",
                        "version": "0.2.0",
                    },
                ]
            }
        ),
        encoding="utf-8",
    )
    return path
