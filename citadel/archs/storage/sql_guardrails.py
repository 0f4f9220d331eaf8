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

"""Textual guardrail for raw SQL statements.

The check is a denylist over the statement text, applied before the
statement reaches the engine:

- any ``;`` is rejected (one statement per call)
- the keywords ATTACH, DETACH, PRAGMA and VACUUM are rejected as whole words

Keywords inside string literals or identifiers also trip the check. That
over-rejection is accepted; a tokenizer-based check is not attempted here.
"""

from __future__ import annotations

import re

from citadel.core.errors import GuardrailViolationError

BLOCKED_KEYWORDS: tuple[str, ...] = ("attach", "detach", "pragma", "vacuum")

_BLOCKED_PATTERN = re.compile(r"\b(" + "|".join(BLOCKED_KEYWORDS) + r")\b", re.IGNORECASE)


def find_sql_violation(statement: str) -> str | None:
    """Return the rejection reason for ``statement``, or None if allowed."""
    if ";" in statement:
        return "multiple statements are not allowed"
    match = _BLOCKED_PATTERN.search(statement)
    if match:
        return f"{match.group(1).upper()} is not allowed"
    return None


def assert_sql_allowed(statement: str) -> None:
    """Raise ``GuardrailViolationError`` if ``statement`` is not allowed.

    Examples:
        >>> assert_sql_allowed("SELECT 1")
        >>> assert_sql_allowed("SELECT 1; DROP TABLE x")
        Traceback (most recent call last):
        ...
        citadel.core.errors.GuardrailViolationError: SQL rejected: multiple statements are not allowed
    """
    reason = find_sql_violation(statement)
    if reason is not None:
        raise GuardrailViolationError(reason)
