"""队列注册表与定时清理测试"""

import asyncio

import pytest

from conftest import FakeClock, wait_until

from hr_ats.services.queue_registry import QueueRegistry


def _registry(clock=None, memory_mb=0.0, **kwargs):
    probe = memory_mb if callable(memory_mb) else (lambda: memory_mb)
    return QueueRegistry(clock=clock or FakeClock(), memory_probe=probe, **kwargs)


class TestCapacity:
    """同时跟踪的项目队列数量上限"""

    def test_create_is_idempotent(self):
        registry = _registry()

        first = registry.create("P1", 2)
        second = registry.create("P1", 5)

        assert first is second
        assert len(registry) == 1

    def test_max_workers_at_least_one(self):
        assert _registry().create("P1", 0).max_workers == 1

    def test_oldest_idle_queue_evicted_at_capacity(self):
        clock = FakeClock()
        registry = _registry(clock, max_queues=2)
        registry.create("old", 1)
        clock.advance(seconds=10)
        registry.create("newer", 1)
        clock.advance(seconds=10)

        registry.create("newest", 1)

        assert "old" not in registry
        assert "newer" in registry and "newest" in registry

    def test_processing_queues_never_evicted_for_capacity(self):
        registry = _registry(max_queues=2)
        registry.create("P1", 1).is_processing = True
        registry.create("P2", 1).is_processing = True

        registry.create("P3", 1)

        assert len(registry) == 3


class TestSweep:
    """定时清理"""

    def test_old_queues_evicted(self):
        clock = FakeClock()
        registry = _registry(clock, max_age_seconds=7200)
        queue = registry.create("P1", 1)
        queue.is_processing = True
        queue.items.append(object())

        clock.advance(hours=2, seconds=1)

        assert registry.sweep() == ["P1"]
        assert "P1" not in registry

    def test_idle_empty_queues_evicted(self):
        registry = _registry()
        registry.create("idle", 1)
        busy = registry.create("busy", 1)
        busy.is_processing = True
        busy.active_workers = 1

        assert registry.sweep() == ["idle"]
        assert "busy" in registry

    def test_idle_queue_with_backlog_kept_until_max_age(self):
        registry = _registry()
        registry.create("P1", 1).items.append(object())

        assert registry.sweep() == []


class TestMemoryPressure:

    def test_critical_memory_evicts_idle_queues_in_batches(self):
        clock = FakeClock()
        registry = _registry(clock, memory_mb=2048, memory_critical_mb=1024, memory_eviction_batch=2)
        for index in range(3):
            registry.create(f"P{index}", 1).items.append(object())
            clock.advance(seconds=1)
        registry.create("busy", 1).active_workers = 1

        evicted = registry.check_memory()

        assert evicted == ["P0", "P1"]
        assert set(q.project_id for q in registry.queues()) == {"P2", "busy"}

    def test_warning_level_only_logs(self):
        registry = _registry(memory_mb=600, memory_warning_mb=512, memory_critical_mb=1024)
        registry.create("P1", 1).items.append(object())

        assert registry.check_memory() == []
        assert "P1" in registry

    def test_probe_failure_is_ignored(self):
        def broken_probe():
            raise RuntimeError("no /proc")

        registry = _registry(memory_mb=broken_probe)

        assert registry.check_memory() == []


class TestDelayedEviction:
    """被遗弃的队列在宽限期后移除"""

    @pytest.mark.asyncio
    async def test_abandoned_queue_evicted_after_grace(self):
        registry = _registry(eviction_grace_seconds=0.01)
        registry.create("P1", 1).items.append(object())

        registry.schedule_eviction("P1")
        assert "P1" in registry

        await wait_until(lambda: "P1" not in registry)

    @pytest.mark.asyncio
    async def test_cancelled_eviction_keeps_queue(self):
        registry = _registry(eviction_grace_seconds=0.01)
        registry.create("P1", 1)

        registry.schedule_eviction("P1")
        registry.cancel_scheduled_eviction("P1")
        await asyncio.sleep(0.03)

        assert "P1" in registry

    @pytest.mark.asyncio
    async def test_resumed_queue_not_evicted(self):
        registry = _registry(eviction_grace_seconds=0.01)
        queue = registry.create("P1", 1)

        registry.schedule_eviction("P1")
        queue.active_workers = 1
        queue.is_processing = True
        await asyncio.sleep(0.03)

        assert registry.get("P1") is queue

    @pytest.mark.asyncio
    async def test_replaced_queue_not_evicted(self):
        registry = _registry(eviction_grace_seconds=0.01)
        registry.create("P1", 1)
        registry.schedule_eviction("P1")

        registry.evict("P1", "test")
        replacement = registry.create("P1", 1)
        await asyncio.sleep(0.03)

        assert registry.get("P1") is replacement


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_janitor_runs_sweep(self):
        registry = _registry(sweep_interval_seconds=0.01)
        registry.create("idle", 1)

        registry.start()
        await wait_until(lambda: "idle" not in registry)
        await registry.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_workers_and_clears(self):
        registry = _registry()
        queue = registry.create("P1", 1)
        worker = asyncio.get_running_loop().create_task(asyncio.sleep(60))
        queue.workers.add(worker)
        registry.track_worker(worker)
        registry.start()

        await registry.stop()

        assert worker.cancelled()
        assert len(registry) == 0
        assert registry.running_workers == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_workers_of_evicted_queues(self):
        registry = _registry()
        registry.create("P1", 1)
        worker = asyncio.get_running_loop().create_task(asyncio.sleep(60))
        registry.track_worker(worker)
        registry.evict("P1", "已取消")

        await registry.stop()

        assert worker.cancelled()
