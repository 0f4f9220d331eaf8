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

"""Best-effort audit sink.

Callers enqueue events with ``emit`` which never raises and never waits.
A single drain task writes them, in insertion order, to the
``citadel.audit`` logger and optionally to one JSONL file per app.

Design principles:
- Bounded queue: a full queue drops the event with a warning
- One drain task: per-app ordering follows enqueue order
- Writer failures are logged, never surfaced to the caller
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any

from .models import AuditEvent

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "citadel.audit"


class AuditSink:
    """Bounded queue plus drain task for audit events.

    Example:
        >>> sink = AuditSink(max_queue_size=1000, audit_dir=Path("data/audit"))
        >>> sink.emit("gym-tracker", "storage.write", {"path": "ping.txt", "bytes": 24})
        >>> await sink.flush()
    """

    def __init__(
        self,
        *,
        max_queue_size: int = 1000,
        audit_dir: str | Path | None = None,
    ) -> None:
        """Initialize the audit sink.

        Args:
            max_queue_size: Maximum number of pending events before dropping
            audit_dir: Directory for ``<app_id>.jsonl`` files (None = logger only)
        """
        self._max_queue_size = max_queue_size
        self._audit_dir = Path(audit_dir).expanduser() if audit_dir is not None else None
        self._audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self._queue: asyncio.Queue[AuditEvent] | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of events dropped because the queue was full."""
        return self._dropped

    @property
    def audit_dir(self) -> Path | None:
        return self._audit_dir

    def audit_file(self, app_id: str) -> Path | None:
        """Return the JSONL file for ``app_id`` when file output is enabled."""
        if self._audit_dir is None:
            return None
        return self._audit_dir / f"{app_id}.jsonl"

    def start(self) -> None:
        """Start the drain task on the running event loop."""
        self._ensure_drain_task(asyncio.get_running_loop())

    def _ensure_drain_task(self, loop: asyncio.AbstractEventLoop) -> asyncio.Queue[AuditEvent]:
        # A queue and its drain task belong to one loop; a new loop gets a fresh pair.
        if self._queue is None or self._loop is not loop:
            self._queue = asyncio.Queue(maxsize=self._max_queue_size)
            self._loop = loop
            self._drain_task = None
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain(self._queue), name="citadel-audit-drain")
            logger.debug("Audit drain task started")
        return self._queue

    def emit(self, app_id: str, event: str, payload: dict[str, Any] | None = None) -> None:
        """Enqueue an audit event. Never raises, never blocks."""
        try:
            record = AuditEvent(app_id=app_id, event=event, payload=payload or {})
        except Exception as e:
            logger.warning(f"Dropping malformed audit event {event} for {app_id}: {e}")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop there is no drain task; write inline.
            self._write_sync(record)
            return

        queue = self._ensure_drain_task(loop)
        try:
            queue.put_nowait(record)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(f"Audit queue full, dropping event {event} for {app_id} (dropped={self._dropped})")

    async def flush(self) -> None:
        """Wait until every enqueued event has been written."""
        if self._queue is None or self._loop is not asyncio.get_running_loop():
            return
        if self._drain_task is None or self._drain_task.done():
            return
        await self._queue.join()

    async def stop(self) -> None:
        """Flush pending events and stop the drain task."""
        await self.flush()
        task = self._drain_task
        self._drain_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.debug("Audit drain task stopped")

    async def _drain(self, queue: asyncio.Queue[AuditEvent]) -> None:
        while True:
            record = await queue.get()
            try:
                await self._write(record)
            except Exception as e:
                logger.warning(f"Audit write failed for {record.app_id}/{record.event}: {e}")
            finally:
                queue.task_done()

    async def _write(self, record: AuditEvent) -> None:
        line = record.to_json_line()
        self._audit_logger.info(line)
        path = self.audit_file(record.app_id)
        if path is not None:
            await asyncio.to_thread(self._append_line, path, line)

    def _write_sync(self, record: AuditEvent) -> None:
        line = record.to_json_line()
        try:
            self._audit_logger.info(line)
            path = self.audit_file(record.app_id)
            if path is not None:
                self._append_line(path, line)
        except Exception as e:
            logger.warning(f"Audit write failed for {record.app_id}/{record.event}: {e}")

    @staticmethod
    def _append_line(path: Path, line: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
