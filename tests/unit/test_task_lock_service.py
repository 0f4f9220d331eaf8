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

"""Unit tests for TaskLockService.

Tests acquire/refresh/release semantics, lazy expiry with a fake clock and
concurrent acquisition against a real per-app SQLite database.
"""

import asyncio

import pytest

from citadel.archs.session import TaskLockService
from citadel.core.errors import LockHeldError

APP = "scrum-board"


class TestTaskLockServiceBasic:
    def test_acquire_and_release(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, lock_ttl=60.0, clock=fake_clock)
            try:
                lock = await service.acquire(APP, task_id="t1", session_id="s1")
                assert lock.scope == "agent"
                assert lock.session_id == "s1"
                assert lock.expires_at_ns == fake_clock.now_ns + 60 * 1_000_000_000
                assert await service.is_locked(APP)

                assert await service.release(APP, task_id="t1", session_id="s1") is True
                assert not await service.is_locked(APP)
                assert await service.get_active_lock(APP) is None
            finally:
                await stores.close()

        asyncio.run(run())

    def test_other_session_gets_lock_held(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, clock=fake_clock)
            try:
                await service.acquire(APP, task_id="t1", session_id="s1")
                with pytest.raises(LockHeldError) as exc_info:
                    await service.acquire(APP, task_id="t2", session_id="s2")
                holder = exc_info.value.lock
                assert holder.session_id == "s1"
                assert holder.task_id == "t1"
                assert exc_info.value.app_id == APP
            finally:
                await stores.close()

        asyncio.run(run())

    def test_same_session_refreshes(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, lock_ttl=60.0, clock=fake_clock)
            try:
                first = await service.acquire(APP, task_id="t1", session_id="s1")
                fake_clock.advance(30)
                second = await service.acquire(APP, task_id="t2", session_id="s1")
                assert second.expires_at_ns > first.expires_at_ns
                assert second.task_id == "t2"
                active = await service.get_active_lock(APP)
                assert active.expires_at_ns == second.expires_at_ns
            finally:
                await stores.close()

        asyncio.run(run())

    def test_scopes_and_apps_are_independent(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, clock=fake_clock)
            try:
                await service.acquire(APP, task_id="t1", session_id="s1")
                await service.acquire(APP, task_id="t1", session_id="s2", scope="task:t1")
                await service.acquire("other-app", task_id="t1", session_id="s3")
                assert (await service.get_active_lock(APP, scope="task:t1")).session_id == "s2"
                assert (await service.get_active_lock("other-app")).session_id == "s3"
            finally:
                await stores.close()

        asyncio.run(run())

    def test_invalid_ttl(self, stores):
        with pytest.raises(ValueError):
            TaskLockService(stores=stores, lock_ttl=0)

        async def run():
            service = TaskLockService(stores=stores)
            with pytest.raises(ValueError):
                await service.acquire(APP, task_id="t1", session_id="s1", ttl=-1)

        asyncio.run(run())


class TestTaskLockExpiry:
    def test_lock_is_absent_at_expiry(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, lock_ttl=10.0, clock=fake_clock)
            try:
                lock = await service.acquire(APP, task_id="t1", session_id="s1")
                fake_clock.now_ns = lock.expires_at_ns - 1
                assert await service.is_locked(APP)
                fake_clock.now_ns = lock.expires_at_ns
                assert await service.get_active_lock(APP) is None
            finally:
                await stores.close()

        asyncio.run(run())

    def test_expired_lock_can_be_taken_over(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, lock_ttl=10.0, clock=fake_clock)
            try:
                await service.acquire(APP, task_id="t1", session_id="s1")
                fake_clock.advance(11)
                lock = await service.acquire(APP, task_id="t2", session_id="s2")
                assert lock.session_id == "s2"
                # The previous holder's release is now a no-op
                assert await service.release(APP, task_id="t1", session_id="s1") is False
                assert (await service.get_active_lock(APP)).session_id == "s2"
            finally:
                await stores.close()

        asyncio.run(run())


class TestTaskLockRelease:
    def test_release_is_idempotent(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, clock=fake_clock)
            try:
                await service.acquire(APP, task_id="t1", session_id="s1")
                assert await service.release(APP, task_id="t1", session_id="s1") is True
                assert await service.release(APP, task_id="t1", session_id="s1") is False
                assert await service.release(APP, session_id="never-held") is False
            finally:
                await stores.close()

        asyncio.run(run())

    def test_non_holder_cannot_release(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, clock=fake_clock)
            try:
                await service.acquire(APP, task_id="t1", session_id="s1")
                assert await service.release(APP, task_id="t1", session_id="s2") is False
                assert await service.release(APP, task_id="other-task", session_id="s1") is False
                assert (await service.get_active_lock(APP)).session_id == "s1"
            finally:
                await stores.close()

        asyncio.run(run())

    def test_hold_releases_on_exit(self, stores, fake_clock):
        async def run():
            service = TaskLockService(stores=stores, clock=fake_clock)
            try:
                with pytest.raises(RuntimeError):
                    async with service.hold(APP, task_id="t1", session_id="s1") as lock:
                        assert lock.session_id == "s1"
                        raise RuntimeError("boom")
                assert not await service.is_locked(APP)
            finally:
                await stores.close()

        asyncio.run(run())


class TestTaskLockConcurrency:
    def test_concurrent_acquire_has_one_winner(self, stores):
        async def run():
            service = TaskLockService(stores=stores, lock_ttl=30.0)
            try:
                results = await asyncio.gather(
                    *[service.acquire(APP, task_id=f"t{i}", session_id=f"s{i}") for i in range(5)],
                    return_exceptions=True,
                )
                winners = [r for r in results if not isinstance(r, BaseException)]
                losers = [r for r in results if isinstance(r, BaseException)]

                assert len(winners) == 1
                assert len(losers) == 4
                assert all(isinstance(e, LockHeldError) for e in losers)
                assert all(e.lock.session_id == winners[0].session_id for e in losers)
            finally:
                await stores.close()

        asyncio.run(run())
