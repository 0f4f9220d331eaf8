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

"""Path scoping for tenant storage roots."""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

from citadel.core.errors import PathEscapeError


def resolve_scoped_path(app_id: str, root: Path, rel_path: str) -> Path:
    """Resolve ``rel_path`` against ``root`` and reject escapes.

    Symlinks are followed, so a link pointing outside the root is rejected
    the same way as ``..`` segments or absolute paths.

    Raises:
        PathEscapeError: If the target is not ``root`` or a descendant of it
    """
    if not isinstance(rel_path, str) or "\x00" in rel_path:
        raise PathEscapeError(app_id, str(rel_path))

    resolved_root = root.resolve()
    target = (resolved_root / rel_path).resolve()
    if target != resolved_root and resolved_root not in target.parents:
        raise PathEscapeError(app_id, rel_path)
    return target


def resolve_scoped_file(app_id: str, root: Path, rel_path: str) -> Path:
    """Like ``resolve_scoped_path``, for operations that replace or remove a file.

    Raises:
        PathEscapeError: If the target escapes the root, is the root itself,
            or is an existing directory
    """
    target = resolve_scoped_path(app_id, root, rel_path)
    if target == root.resolve():
        raise PathEscapeError(app_id, rel_path, reason="Path is the app root")
    if target.is_dir():
        raise PathEscapeError(app_id, rel_path, reason="Path is a directory")
    return target


def atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise

