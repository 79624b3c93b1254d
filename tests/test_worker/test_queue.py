"""Тесты очереди задач: порядок, задержка, потолок, пауза, отмена."""
import asyncio

import pytest

from src.worker.queue import JobQueue


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestOrdering:
    """Порядок выдачи: priority, затем FIFO."""

    async def test_priority_before_fifo(self) -> None:
        """B(5) поставлена раньше A(1) — первой выдаётся A."""
        queue = JobQueue(concurrency=1)
        await queue.enqueue("B", priority=5)
        await queue.enqueue("A", priority=1)

        assert queue.get_nowait().job_id == "A"

    async def test_fifo_within_same_priority(self) -> None:
        queue = JobQueue(concurrency=10)
        for job_id in ("j1", "j2", "j3"):
            await queue.enqueue(job_id, priority=5)

        assert [queue.get_nowait().job_id for _ in range(3)] == ["j1", "j2", "j3"]

    async def test_duplicate_enqueue_rejected(self) -> None:
        queue = JobQueue()
        await queue.enqueue("j1")
        with pytest.raises(ValueError):
            await queue.enqueue("j1")

    async def test_enqueue_returns_job_id(self) -> None:
        queue = JobQueue()
        assert await queue.enqueue("job-42") == "job-42"


class TestDelay:
    """Отложенные записи не выдаются до ready_at."""

    async def test_delayed_entry_not_ready(self) -> None:
        clock = FakeClock()
        queue = JobQueue(clock=clock)
        await queue.enqueue("late", delay=5.0)

        assert queue.get_nowait() is None
        assert queue.stats().delayed_count == 1

        clock.now += 5.0
        assert queue.get_nowait().job_id == "late"

    async def test_ready_entry_overtakes_delayed(self) -> None:
        clock = FakeClock()
        queue = JobQueue(clock=clock)
        await queue.enqueue("late", priority=1, delay=10.0)
        await queue.enqueue("now", priority=9)

        assert queue.get_nowait().job_id == "now"

    async def test_get_waits_for_delay(self) -> None:
        """get() просыпается сам, когда наступает ready_at."""
        queue = JobQueue()
        await queue.enqueue("soon", delay=0.05)

        entry = await asyncio.wait_for(queue.get(), timeout=2)
        assert entry.job_id == "soon"


class TestConcurrencyCeiling:
    """Не больше concurrency выданных записей одновременно."""

    async def test_ceiling_blocks_dispatch(self) -> None:
        queue = JobQueue(concurrency=2)
        for i in range(5):
            await queue.enqueue(f"j{i}")

        assert queue.get_nowait() is not None
        assert queue.get_nowait() is not None
        assert queue.get_nowait() is None
        assert queue.stats().running_count == 2

    async def test_task_done_frees_slot(self) -> None:
        queue = JobQueue(concurrency=1)
        await queue.enqueue("j1")
        await queue.enqueue("j2")

        first = queue.get_nowait()
        assert queue.get_nowait() is None

        await queue.task_done(first.job_id, "completed")
        assert queue.get_nowait().job_id == "j2"

    async def test_blocked_get_wakes_on_task_done(self) -> None:
        queue = JobQueue(concurrency=1)
        await queue.enqueue("j1")
        await queue.enqueue("j2")
        first = await queue.get()

        waiter = asyncio.create_task(queue.get())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        await queue.task_done(first.job_id, "completed")
        second = await asyncio.wait_for(waiter, timeout=1)
        assert second.job_id == "j2"


class TestPause:
    async def test_paused_queue_does_not_dispatch(self) -> None:
        queue = JobQueue()
        await queue.enqueue("j1")
        await queue.pause()

        assert queue.get_nowait() is None
        assert queue.stats().paused is True

        await queue.resume()
        assert queue.get_nowait().job_id == "j1"

    async def test_resume_wakes_waiter(self) -> None:
        queue = JobQueue()
        await queue.pause()
        await queue.enqueue("j1")

        waiter = asyncio.create_task(queue.get())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        await queue.resume()
        entry = await asyncio.wait_for(waiter, timeout=1)
        assert entry.job_id == "j1"

    async def test_running_entries_survive_pause(self) -> None:
        queue = JobQueue()
        await queue.enqueue("j1")
        entry = queue.get_nowait()
        await queue.pause()

        assert queue.running_ids() == {"j1"}
        await queue.task_done(entry.job_id, "completed")
        assert queue.stats().completed_count == 1


class TestCancel:
    async def test_cancel_pending_removes_entry(self) -> None:
        queue = JobQueue()
        await queue.enqueue("j1")

        assert await queue.cancel("j1") is True
        assert queue.get_nowait() is None
        assert queue.is_queued("j1") is False

    async def test_cancel_running_sets_flag(self) -> None:
        queue = JobQueue()
        await queue.enqueue("j1")
        queue.get_nowait()

        assert await queue.cancel("j1") is True
        assert queue.is_cancel_requested("j1") is True
        assert queue.is_queued("j1") is True

    async def test_cancel_unknown_returns_false(self) -> None:
        queue = JobQueue()
        assert await queue.cancel("nope") is False

    async def test_cancelled_delayed_entry_never_dispatched(self) -> None:
        clock = FakeClock()
        queue = JobQueue(clock=clock)
        await queue.enqueue("j1", delay=1.0)
        await queue.cancel("j1")

        clock.now += 2.0
        assert queue.get_nowait() is None


class TestRetry:
    async def test_retry_requeues_with_delay_and_frees_slot(self) -> None:
        clock = FakeClock()
        queue = JobQueue(concurrency=1, clock=clock)
        await queue.enqueue("j1")
        await queue.enqueue("j2")
        queue.get_nowait()

        await queue.retry("j1", 2.0)

        assert queue.get_nowait().job_id == "j2"
        await queue.task_done("j2", "completed")
        assert queue.get_nowait() is None
        clock.now += 2.0
        assert queue.get_nowait().job_id == "j1"

    async def test_retry_keeps_cancel_flag(self) -> None:
        queue = JobQueue()
        await queue.enqueue("j1")
        queue.get_nowait()
        await queue.cancel("j1")

        await queue.retry("j1", 0.0)
        entry = queue.get_nowait()
        assert entry.cancel_requested is True


class TestStatsAndClean:
    async def test_stats_counts_outcomes(self) -> None:
        queue = JobQueue(concurrency=5)
        for job_id in ("a", "b", "c", "d"):
            await queue.enqueue(job_id)
        for _ in range(3):
            queue.get_nowait()
        await queue.task_done("a", "completed")
        await queue.task_done("b", "failed")

        stats = queue.stats()
        assert stats.pending_count == 1
        assert stats.running_count == 1
        assert stats.completed_count == 1
        assert stats.failed_count == 1

    async def test_clean_drops_old_history(self) -> None:
        clock = FakeClock()
        queue = JobQueue(clock=clock)
        await queue.enqueue("old")
        queue.get_nowait()
        await queue.task_done("old", "completed")

        clock.now += 100
        await queue.enqueue("new")
        queue.get_nowait()
        await queue.task_done("new", "completed")

        assert queue.clean(max_age_seconds=50) == 1
        assert queue.stats().completed_count == 1

    def test_invalid_concurrency(self) -> None:
        with pytest.raises(ValueError):
            JobQueue(concurrency=0)
