"""Tests for held-request waiters."""
import asyncio

import pytest

from relaybox.relay.waiters import WaiterRegistry


class TestWaiter:
    @pytest.mark.asyncio
    async def test_fulfill_completes_wait(self):
        registry = WaiterRegistry()
        waiter = registry.register("k", timeout=1.0)

        asyncio.get_running_loop().call_soon(waiter.fulfill, {"v": 1})

        assert await waiter.wait() == {"v": 1}
        assert "k" not in registry

    @pytest.mark.asyncio
    async def test_timeout_returns_none_and_removes_waiter(self):
        registry = WaiterRegistry()
        waiter = registry.register("k", timeout=0.05)

        assert await waiter.wait() is None
        assert registry.count("k") == 0

    @pytest.mark.asyncio
    async def test_fulfill_after_timeout_is_noop(self):
        registry = WaiterRegistry()
        waiter = registry.register("k", timeout=0.01)
        await waiter.wait()

        assert waiter.resolved
        assert waiter.fulfill({"v": 1}) is False

    @pytest.mark.asyncio
    async def test_second_fulfill_is_noop(self):
        registry = WaiterRegistry()
        waiter = registry.register("k", timeout=1.0)

        assert waiter.fulfill({"v": 1}) is True
        assert waiter.fulfill({"v": 2}) is False
        assert await waiter.wait() == {"v": 1}

    @pytest.mark.asyncio
    async def test_cancelled_caller_removes_waiter(self):
        registry = WaiterRegistry()
        waiter = registry.register("k", timeout=5.0)
        task = asyncio.create_task(waiter.wait())
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert registry.count("k") == 0
        assert waiter.fulfill({"v": 1}) is False

    @pytest.mark.asyncio
    async def test_deadline_is_set_from_timeout(self):
        registry = WaiterRegistry()
        before = asyncio.get_running_loop().time()
        waiter = registry.register("k", timeout=2.0)
        assert before + 2.0 <= waiter.deadline <= asyncio.get_running_loop().time() + 2.0


class TestWaiterRegistry:
    @pytest.mark.asyncio
    async def test_fulfill_all_broadcasts_to_every_waiter(self):
        registry = WaiterRegistry()
        first = registry.register("k", timeout=1.0)
        second = registry.register("k", timeout=1.0)

        assert registry.fulfill_all("k", {"v": 1}) == 2
        assert await first.wait() == {"v": 1}
        assert await second.wait() == {"v": 1}

    @pytest.mark.asyncio
    async def test_fulfill_all_only_touches_its_key(self):
        registry = WaiterRegistry()
        mine = registry.register("a", timeout=1.0)
        other = registry.register("b", timeout=1.0)

        registry.fulfill_all("a", {"v": 1})

        assert mine.resolved
        assert not other.resolved
        assert registry.count("b") == 1

    def test_fulfill_all_without_waiters(self):
        assert WaiterRegistry().fulfill_all("k", {"v": 1}) == 0

    @pytest.mark.asyncio
    async def test_fulfill_all_skips_settled_waiters(self):
        registry = WaiterRegistry()
        settled = registry.register("k", timeout=1.0)
        settled.fulfill({"v": 0})

        assert registry.fulfill_all("k", {"v": 1}) == 0

    @pytest.mark.asyncio
    async def test_waiter_registered_during_fanout_is_kept(self):
        registry = WaiterRegistry()
        first = registry.register("k", timeout=1.0)
        late = []

        original = first.fulfill

        def fulfill_and_reregister(record):
            late.append(registry.register("k", timeout=1.0))
            return original(record)

        first.fulfill = fulfill_and_reregister
        registry.fulfill_all("k", {"v": 1})

        assert registry.count("k") == 1
        assert not late[0].resolved

    @pytest.mark.asyncio
    async def test_count_across_keys(self):
        registry = WaiterRegistry()
        for key in ("a", "a", "b"):
            registry.register(key, 1.0)

        assert registry.count() == 3
        assert registry.count("a") == 2
