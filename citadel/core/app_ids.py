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

"""App id validation.

An app id is the only namespacing key for storage, databases, locks and
audit records, so every path and database name is derived from a value
that passed ``validate_app_id``.
"""

from __future__ import annotations

import re

from citadel.core.errors import InvalidAppIdError

APP_ID_PATTERN = re.compile(r"[a-z][a-z0-9-]{0,63}")


def is_valid_app_id(app_id: object) -> bool:
    """Return True when ``app_id`` is a well-formed app id."""
    return isinstance(app_id, str) and APP_ID_PATTERN.fullmatch(app_id) is not None


def validate_app_id(app_id: object) -> str:
    """Validate an app id and return it unchanged.

    Args:
        app_id: Candidate identifier (anything; non-strings are rejected)

    Returns:
        The same string

    Raises:
        InvalidAppIdError: If the id does not match ``[a-z][a-z0-9-]{0,63}``
    """
    if not isinstance(app_id, str) or APP_ID_PATTERN.fullmatch(app_id) is None:
        raise InvalidAppIdError(app_id)
    return app_id
