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

"""Coordination lock service.

Single-writer TTL lock stored in each app's own database, used so that at
most one background agent session works on an app (or one of its tasks)
at a time.

Design principles:
- Atomic acquire: one conditional upsert, no read-then-write window
- Same session refreshes: re-acquiring by the holder extends the TTL
- Lazy expiry: expired rows are ignored at read time, never swept
- Idempotent release: only the caller's live row is removed
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from citadel.archs.audit import AuditSink
from citadel.archs.session.models.coordination_lock import CoordinationLockModel
from citadel.archs.storage import TenantStoreManager
from citadel.core.app_ids import validate_app_id
from citadel.core.errors import LockHeldError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "agent"
DEFAULT_LOCK_TTL = 600.0

_LOCK_TABLE = CoordinationLockModel.__table__  # type: ignore[attr-defined]


class TaskLockService:
    """DB-backed TTL lock per app and scope.

    Example:
        >>> locks = TaskLockService(stores=stores)
        >>> lock = await locks.acquire("scrum-board", task_id="t1", session_id="s1")
        >>> await locks.acquire("scrum-board", task_id="t2", session_id="s2")
        Traceback (most recent call last):
        ...
        citadel.core.errors.LockHeldError: Lock agent for scrum-board is held by session s1 (task t1)
        >>> await locks.release("scrum-board", task_id="t1", session_id="s1")
        True
    """

    def __init__(
        self,
        *,
        stores: TenantStoreManager,
        lock_ttl: float = DEFAULT_LOCK_TTL,
        clock: Callable[[], int] = time.time_ns,
        audit: AuditSink | None = None,
    ) -> None:
        """Initialize the lock service.

        Args:
            stores: Tenant store manager owning the per-app databases
            lock_ttl: Default lock time-to-live in seconds (default: 600s)
            clock: Nanosecond clock, injectable for tests
            audit: Audit sink for lock events
        """
        if lock_ttl <= 0:
            raise ValueError("lock_ttl must be positive")
        self._stores = stores
        self._lock_ttl = lock_ttl
        self._clock = clock
        self._audit = audit

    @property
    def lock_ttl(self) -> float:
        return self._lock_ttl

    async def _ensure_initialized(self, app_id: str) -> None:
        await self._stores.setup_models(app_id, [CoordinationLockModel])

    async def acquire(
        self,
        app_id: str,
        *,
        task_id: str,
        session_id: str,
        ttl: float | None = None,
        scope: str = DEFAULT_SCOPE,
    ) -> CoordinationLockModel:
        """Acquire or refresh the lock for ``scope``.

        Succeeds when no live lock exists, the existing lock has expired, or
        the caller's session already holds it (the TTL is then extended).

        Returns:
            The lock as stored after the write

        Raises:
            LockHeldError: If another session holds a live lock
        """
        validate_app_id(app_id)
        ttl = self._lock_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        await self._ensure_initialized(app_id)

        # A holder can release between the failed upsert and the read; retry once.
        for _attempt in range(2):
            lock = await self._try_upsert(app_id, scope=scope, task_id=task_id, session_id=session_id, ttl=ttl)
            if lock is not None:
                logger.info(f"Lock acquired for app={app_id}, scope={scope}, session={session_id}, task={task_id}")
                self._emit(app_id, "lock.acquire", {"scope": scope, "session_id": session_id, "task_id": task_id})
                return lock

            holder = await self.get_active_lock(app_id, scope=scope)
            if holder is not None:
                logger.warning(
                    f"Lock conflict for app={app_id}, scope={scope}: held by session={holder.session_id}, task={holder.task_id}"
                )
                self._emit(
                    app_id,
                    "lock.conflict",
                    {"scope": scope, "session_id": session_id, "holder_session_id": holder.session_id},
                )
                raise LockHeldError(app_id, holder)

        raise StoreError(app_id, f"could not acquire lock {scope}: lock row changed concurrently")

    async def _try_upsert(
        self,
        app_id: str,
        *,
        scope: str,
        task_id: str,
        session_id: str,
        ttl: float,
    ) -> CoordinationLockModel | None:
        now = self._clock()
        expires_at_ns = now + int(ttl * 1_000_000_000)

        insert_stmt = sqlite_insert(_LOCK_TABLE).values(
            scope=scope,
            task_id=task_id,
            session_id=session_id,
            locked_at_ns=now,
            expires_at_ns=expires_at_ns,
        )
        upsert = insert_stmt.on_conflict_do_update(
            index_elements=[_LOCK_TABLE.c.scope],
            set_={
                "task_id": insert_stmt.excluded.task_id,
                "session_id": insert_stmt.excluded.session_id,
                "locked_at_ns": insert_stmt.excluded.locked_at_ns,
                "expires_at_ns": insert_stmt.excluded.expires_at_ns,
            },
            where=or_(
                _LOCK_TABLE.c.expires_at_ns <= now,
                _LOCK_TABLE.c.session_id == insert_stmt.excluded.session_id,
            ),
        ).returning(*_LOCK_TABLE.c)

        handle = await self._stores.get_handle(app_id)
        try:
            async with handle.engine.begin() as conn:
                row = (await conn.execute(upsert)).mappings().first()
        except SQLAlchemyError as e:
            raise StoreError(app_id, str(e)) from e

        return CoordinationLockModel(**row) if row is not None else None

    async def release(
        self,
        app_id: str,
        *,
        session_id: str,
        task_id: str | None = None,
        scope: str = DEFAULT_SCOPE,
    ) -> bool:
        """Release the caller's live lock.

        Returns:
            True if a row was deleted; False if the lock was not held by this
            session (or task), or had already expired
        """
        validate_app_id(app_id)
        await self._ensure_initialized(app_id)

        now = self._clock()
        conditions = [
            _LOCK_TABLE.c.scope == scope,
            _LOCK_TABLE.c.session_id == session_id,
            _LOCK_TABLE.c.expires_at_ns > now,
        ]
        if task_id is not None:
            conditions.append(_LOCK_TABLE.c.task_id == task_id)

        handle = await self._stores.get_handle(app_id)
        try:
            async with handle.engine.begin() as conn:
                result = await conn.execute(delete(_LOCK_TABLE).where(*conditions))
                deleted_count = result.rowcount
        except SQLAlchemyError as e:
            raise StoreError(app_id, str(e)) from e

        if deleted_count > 0:
            logger.info(f"Lock released for app={app_id}, scope={scope}, session={session_id}")
            self._emit(app_id, "lock.release", {"scope": scope, "session_id": session_id, "task_id": task_id})
            return True
        logger.debug(f"Lock already released or expired for app={app_id}, scope={scope}, session={session_id}")
        return False

    async def get_active_lock(self, app_id: str, *, scope: str = DEFAULT_SCOPE) -> CoordinationLockModel | None:
        """Return the live lock for ``scope``, or None if absent or expired."""
        validate_app_id(app_id)
        await self._ensure_initialized(app_id)

        handle = await self._stores.get_handle(app_id)
        try:
            async with handle.engine.connect() as conn:
                row = (await conn.execute(select(_LOCK_TABLE).where(_LOCK_TABLE.c.scope == scope))).mappings().first()
        except SQLAlchemyError as e:
            raise StoreError(app_id, str(e)) from e

        if row is None:
            return None
        lock = CoordinationLockModel(**row)
        if lock.is_expired(self._clock()):
            logger.debug(f"Found expired lock for app={app_id}, scope={scope}, session={lock.session_id}")
            return None
        return lock

    async def is_locked(self, app_id: str, *, scope: str = DEFAULT_SCOPE) -> bool:
        return await self.get_active_lock(app_id, scope=scope) is not None

    @asynccontextmanager
    async def hold(
        self,
        app_id: str,
        *,
        task_id: str,
        session_id: str,
        ttl: float | None = None,
        scope: str = DEFAULT_SCOPE,
    ) -> AsyncGenerator[CoordinationLockModel, None]:
        """Acquire the lock for the duration of an ``async with`` block.

        Raises:
            LockHeldError: If another session holds a live lock
        """
        lock = await self.acquire(app_id, task_id=task_id, session_id=session_id, ttl=ttl, scope=scope)
        try:
            yield lock
        finally:
            released = await self.release(app_id, session_id=session_id, task_id=task_id, scope=scope)
            if not released:
                logger.warning(f"Lock for app={app_id}, scope={scope} expired before release (session={session_id})")

    def _emit(self, app_id: str, event_name: str, payload: dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit.emit(app_id, event_name, payload)
