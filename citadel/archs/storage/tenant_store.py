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

"""Per-app SQLite databases and storage roots.

Each app id owns ``<data_root>/apps/<app_id>/`` and the SQLite database
``db.sqlite`` inside it. Handles are created lazily, exactly once per app
id, and cached for the lifetime of the manager.

Layout:
    <data_root>/apps/<app_id>/db.sqlite
    <data_root>/apps/<app_id>/<scoped files>
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from citadel.archs.audit import AuditSink
from citadel.core.app_ids import validate_app_id
from citadel.core.errors import (
    GuardrailViolationError,
    NotFoundError,
    StoreError,
    StoreInitError,
)

from .scoped_path import atomic_write, resolve_scoped_file, resolve_scoped_path
from .sql_guardrails import assert_sql_allowed

logger = logging.getLogger(__name__)

DB_FILENAME = "db.sqlite"

SQLParams = Sequence[Any] | Mapping[str, Any] | None


@dataclass
class TenantStoreHandle:
    """Live database engine and storage root for one app id."""

    app_id: str
    root: Path
    db_path: Path
    engine: AsyncEngine
    initialized_models: set[type[SQLModel]] = field(default_factory=set)
    setup_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of a write statement."""

    changes: int
    last_insert_rowid: int | None


def _verb(statement: str) -> str:
    parts = statement.split(None, 1)
    return parts[0].lower() if parts else "unknown"


def _driver_params(params: SQLParams) -> tuple[Any, ...] | dict[str, Any] | None:
    if params is None:
        return None
    if isinstance(params, Mapping):
        return dict(params)
    if isinstance(params, (str, bytes)):
        raise TypeError("SQL params must be a sequence or a mapping, not a string")
    values = tuple(params)
    return values or None


class TenantStoreManager:
    """Registry of per-app store handles.

    Example:
        >>> stores = TenantStoreManager("./data", audit=AuditSink())
        >>> await stores.execute("gym-tracker", "CREATE TABLE IF NOT EXISTS t (v TEXT)")
        >>> await stores.execute("gym-tracker", "INSERT INTO t (v) VALUES (?)", ["hi"])
        >>> await stores.query("gym-tracker", "SELECT v FROM t")
        [{'v': 'hi'}]
    """

    def __init__(
        self,
        data_root: str | Path,
        *,
        audit: AuditSink | None = None,
        busy_timeout_ms: int = 30000,
        echo: bool = False,
    ) -> None:
        """Initialize the manager.

        Args:
            data_root: Root directory; app roots live under ``<data_root>/apps``
            audit: Audit sink for db/storage events (None disables auditing)
            busy_timeout_ms: SQLite busy timeout applied to every connection
            echo: Echo SQL through the SQLAlchemy logger
        """
        self._data_root = Path(data_root).expanduser()
        self._audit = audit
        self._busy_timeout_ms = busy_timeout_ms
        self._echo = echo
        self._handles: dict[str, TenantStoreHandle] = {}
        self._init_locks: dict[str, asyncio.Lock] = {}

    @property
    def data_root(self) -> Path:
        return self._data_root

    def app_root(self, app_id: str) -> Path:
        """Return the storage root for ``app_id`` (not created)."""
        return self._data_root / "apps" / validate_app_id(app_id)

    def has_handle(self, app_id: str) -> bool:
        return app_id in self._handles

    async def get_handle(self, app_id: str) -> TenantStoreHandle:
        """Return the cached handle for ``app_id``, creating it on first use.

        Concurrent first calls for the same app id share one creation; other
        app ids are never blocked.

        Raises:
            InvalidAppIdError: If the app id is malformed
            StoreInitError: If the directory or database cannot be opened
        """
        validate_app_id(app_id)
        handle = self._handles.get(app_id)
        if handle is not None:
            return handle

        init_lock = self._init_locks.setdefault(app_id, asyncio.Lock())
        async with init_lock:
            handle = self._handles.get(app_id)
            if handle is None:
                handle = await self._create_handle(app_id)
                self._handles[app_id] = handle
            # Only needed until the handle is cached
            self._init_locks.pop(app_id, None)
        return handle

    async def _create_handle(self, app_id: str) -> TenantStoreHandle:
        root = self.app_root(app_id)
        db_path = root / DB_FILENAME
        engine: AsyncEngine | None = None
        try:
            await asyncio.to_thread(root.mkdir, parents=True, exist_ok=True)
            engine = create_async_engine(
                f"sqlite+aiosqlite:///{db_path}",
                echo=self._echo,
                connect_args={"check_same_thread": False, "timeout": self._busy_timeout_ms / 1000},
                poolclass=NullPool,
            )
            event.listen(engine.sync_engine, "connect", self._on_connect)
            async with engine.begin() as conn:
                # WAL is persistent in the database file, so once per handle is enough
                await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        except BaseException as e:
            if engine is not None:
                await engine.dispose()
            if isinstance(e, (OSError, SQLAlchemyError)):
                logger.error(f"Failed to initialize store for app={app_id}: {e}")
                raise StoreInitError(app_id, str(e)) from e
            raise

        logger.info(f"Opened store for app={app_id} at {db_path}")
        return TenantStoreHandle(app_id=app_id, root=root, db_path=db_path, engine=engine)

    def _on_connect(self, dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        cursor.close()

    async def setup_models(self, app_id: str, model_classes: Sequence[type[SQLModel]]) -> None:
        """Create the tables for ``model_classes`` in one app's database."""
        handle = await self.get_handle(app_id)
        async with handle.setup_lock:
            pending = [m for m in model_classes if m not in handle.initialized_models]
            if not pending:
                return
            tables = [m.__table__ for m in pending]  # type: ignore[attr-defined]
            try:
                async with handle.engine.begin() as conn:
                    await conn.run_sync(lambda sync_conn: SQLModel.metadata.create_all(sync_conn, tables=tables))
            except SQLAlchemyError as e:
                raise StoreError(app_id, str(e)) from e
            handle.initialized_models.update(pending)
            logger.debug(f"Created tables {[t.name for t in tables]} for app={app_id}")

    def _guard(self, app_id: str, statement: str) -> None:
        try:
            assert_sql_allowed(statement)
        except GuardrailViolationError as e:
            logger.warning(f"Blocked SQL for app={app_id}: {e.reason}")
            self._emit(app_id, "db.guardrail.blocked", {"verb": _verb(statement), "reason": e.reason})
            raise

    async def execute(self, app_id: str, statement: str, params: SQLParams = None) -> ExecuteResult:
        """Run one guarded write statement in the app's database.

        Args:
            app_id: Owning app
            statement: Single SQL statement with ``?`` or ``:name`` placeholders
            params: Positional sequence or named mapping

        Returns:
            ExecuteResult with affected row count and last inserted rowid

        Raises:
            GuardrailViolationError: If the statement is rejected (nothing runs)
            StoreError: If the engine fails
        """
        validate_app_id(app_id)
        self._guard(app_id, statement)
        handle = await self.get_handle(app_id)
        verb = _verb(statement)
        started = time.perf_counter()
        try:
            async with handle.engine.begin() as conn:
                result = await conn.exec_driver_sql(statement, _driver_params(params))
                changes = max(result.rowcount, 0)
                last_insert_rowid = result.lastrowid
        except SQLAlchemyError as e:
            self._emit(app_id, "db.exec.error", {"verb": verb, "ms": _elapsed_ms(started), "error": _error_text(e)})
            raise StoreError(app_id, _error_text(e)) from e

        self._emit(app_id, "db.exec", {"verb": verb, "ms": _elapsed_ms(started), "changes": changes})
        return ExecuteResult(changes=changes, last_insert_rowid=last_insert_rowid)

    async def query(self, app_id: str, statement: str, params: SQLParams = None) -> list[dict[str, Any]]:
        """Run one guarded read statement and return rows as dicts.

        Column order follows the statement. No implicit limit is applied.
        """
        validate_app_id(app_id)
        self._guard(app_id, statement)
        handle = await self.get_handle(app_id)
        verb = _verb(statement)
        started = time.perf_counter()
        try:
            async with handle.engine.connect() as conn:
                result = await conn.exec_driver_sql(statement, _driver_params(params))
                rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            self._emit(app_id, "db.query.error", {"verb": verb, "ms": _elapsed_ms(started), "error": _error_text(e)})
            raise StoreError(app_id, _error_text(e)) from e

        self._emit(app_id, "db.query", {"verb": verb, "ms": _elapsed_ms(started), "rows": len(rows)})
        return rows

    async def read_scoped(self, app_id: str, rel_path: str, *, binary: bool = False) -> str | bytes:
        """Read a file under the app root.

        Raises:
            PathEscapeError: If ``rel_path`` resolves outside the app root
            NotFoundError: If the target is not an existing file
            StoreError: If the file cannot be read, or is not UTF-8 in text mode
        """
        root = self.app_root(app_id)
        target = resolve_scoped_path(app_id, root, rel_path)

        def _read() -> bytes:
            if not target.is_file():
                raise NotFoundError(f"No such file for {app_id}: {rel_path}")
            return target.read_bytes()

        try:
            data = await asyncio.to_thread(_read)
        except OSError as e:
            raise StoreError(app_id, str(e)) from e

        content: str | bytes = data
        if not binary:
            try:
                content = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise StoreError(app_id, f"{rel_path} is not valid UTF-8 text: {e}") from e

        self._emit(app_id, "storage.read", {"path": rel_path, "bytes": len(data)})
        return content

    async def write_scoped(self, app_id: str, rel_path: str, content: str | bytes) -> int:
        """Atomically write a file under the app root, creating parent directories.

        Returns:
            Number of bytes written

        Raises:
            PathEscapeError: If ``rel_path`` escapes the app root, or names the
                root itself or an existing directory
        """
        root = self.app_root(app_id)
        target = resolve_scoped_file(app_id, root, rel_path)
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)

        try:
            await asyncio.to_thread(atomic_write, target, data)
        except OSError as e:
            raise StoreError(app_id, str(e)) from e

        self._emit(app_id, "storage.write", {"path": rel_path, "bytes": len(data)})
        return len(data)

    async def delete_scoped(self, app_id: str, rel_path: str) -> bool:
        """Delete a file under the app root. Returns False if it did not exist."""
        root = self.app_root(app_id)
        target = resolve_scoped_file(app_id, root, rel_path)

        def _delete() -> bool:
            if not target.is_file():
                return False
            target.unlink()
            return True

        try:
            deleted = await asyncio.to_thread(_delete)
        except OSError as e:
            raise StoreError(app_id, str(e)) from e

        if deleted:
            self._emit(app_id, "storage.delete", {"path": rel_path})
        return deleted

    async def list_scoped(self, app_id: str, rel_dir: str = ".") -> list[str]:
        """List entries of a directory under the app root.

        Directories carry a trailing ``/``. The database files are included,
        since they live in the app root too.
        """
        root = self.app_root(app_id)
        target = resolve_scoped_path(app_id, root, rel_dir)

        def _list() -> list[str]:
            if not target.exists():
                if target == root.resolve():
                    return []
                raise NotFoundError(f"No such directory for {app_id}: {rel_dir}")
            if not target.is_dir():
                raise NotFoundError(f"Not a directory for {app_id}: {rel_dir}")
            return sorted(p.name + "/" if p.is_dir() else p.name for p in target.iterdir())

        try:
            return await asyncio.to_thread(_list)
        except OSError as e:
            raise StoreError(app_id, str(e)) from e

    async def close(self) -> None:
        """Dispose every cached engine."""
        handles = list(self._handles.values())
        self._handles.clear()
        self._init_locks.clear()
        for handle in handles:
            await handle.engine.dispose()
            logger.debug(f"Closed store for app={handle.app_id}")

    def _emit(self, app_id: str, event_name: str, payload: dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit.emit(app_id, event_name, payload)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _error_text(e: SQLAlchemyError) -> str:
    return str(getattr(e, "orig", None) or e)
