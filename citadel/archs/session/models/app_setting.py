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

"""Per-app key/value settings model."""

from __future__ import annotations

from sqlmodel import Field, SQLModel


class AppSettingModel(SQLModel, table=True):
    """One setting of an app.

    Attributes:
        key: Setting name (primary key).
        value: JSON-encoded value.
        updated_at_ns: Nanosecond timestamp of the last write.
    """

    __tablename__ = "app_settings"  # type: ignore[assignment]

    key: str = Field(primary_key=True)

    value: str
    updated_at_ns: int
