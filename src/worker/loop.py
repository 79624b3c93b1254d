"""Основной цикл воркера — выдача задач из очереди + восстановление после рестарта."""
import asyncio
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from src.config import Settings
from src.database import JobStore
from src.worker.processor import JobProcessor
from src.worker.queue import JobQueue, QueueEntry

SHUTDOWN_GRACE_SECONDS = 30


async def _process_entry(processor: JobProcessor, entry: QueueEntry) -> None:
    try:
        await processor.process(entry)
    except Exception as e:
        logger.exception(f"Unhandled error in job {entry.job_id}: {e}")


async def run_worker(
    queue: JobQueue,
    processor: JobProcessor,
    settings: Settings,
    shutdown_event: asyncio.Event,
) -> None:
    """
    Цикл выдачи: ждёт готовую запись очереди и запускает её обработку
    отдельной asyncio-задачей. Потолок параллельности держит сама очередь.
    Останавливается по shutdown_event, дожидаясь завершения активных задач.
    """
    active_tasks: set[asyncio.Task[None]] = set()
    stop_waiter = asyncio.create_task(shutdown_event.wait())

    logger.info(f"Worker started (concurrency={settings.concurrency})")

    try:
        while not shutdown_event.is_set():
            getter = asyncio.create_task(queue.get())
            await asyncio.wait({getter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)

            if not getter.done():
                getter.cancel()
                await asyncio.gather(getter, return_exceptions=True)
            if getter.cancelled():
                break
            if getter.exception() is not None:
                logger.error(f"Error in worker loop: {getter.exception()}")
                continue

            entry = getter.result()
            if shutdown_event.is_set():
                # Запись успели выдать одновременно с остановкой, вернуть в очередь
                await queue.retry(entry.job_id, 0.0)
                break

            t = asyncio.create_task(_process_entry(processor, entry))
            active_tasks.add(t)
            t.add_done_callback(active_tasks.discard)
    finally:
        stop_waiter.cancel()

    # Graceful shutdown: дождаться завершения активных задач
    if active_tasks:
        logger.info(f"Waiting for {len(active_tasks)} active jobs to finish...")
        done, pending = await asyncio.wait(active_tasks, timeout=SHUTDOWN_GRACE_SECONDS)
        if pending:
            logger.warning(
                f"Cancelling {len(pending)} jobs that didn't finish in {SHUTDOWN_GRACE_SECONDS}s"
            )
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    logger.info("Worker shutting down")


async def recover_jobs(
    store: JobStore,
    queue: JobQueue,
    stuck_before: datetime | None = None,
) -> dict[str, Any]:
    """
    Сверка хранилища с очередью в памяти.

    running-задачи, которых нет среди выполняемых в очереди, возвращаются
    в pending (или failed, если попытки исчерпаны); pending-задачи, которых
    нет в очереди, ставятся в неё заново. stuck_before ограничивает сверку
    задачами, стартовавшими/созданными раньше этого момента (None — все, при старте).
    """
    running_filters: dict[str, Any] = {"status": "running"}
    pending_filters: dict[str, Any] = {"status": "pending"}
    if stuck_before is not None:
        running_filters["started_at__lt"] = stuck_before
        pending_filters["created_at__lt"] = stuck_before

    requeued = 0
    failed = 0
    active = queue.running_ids()
    for job in await store.query(running_filters):
        if job.id in active:
            continue
        if job.attempts >= job.max_attempts:
            await store.update(job.id, {
                "status": "failed",
                "error_message": "Worker lost while running, max attempts reached",
                "completed_at": datetime.now(UTC),
            })
            failed += 1
        else:
            await store.update(job.id, {"status": "pending", "progress": 0})
            requeued += 1

    enqueued = 0
    for job in await store.query(pending_filters, order_by="created_at"):
        if queue.is_queued(job.id):
            continue
        await queue.enqueue(job.id, job.priority, 0.0, job.max_attempts)
        enqueued += 1

    if requeued or failed or enqueued:
        logger.warning(
            f"[recover] Requeued {requeued} stuck running jobs, failed {failed}, "
            f"enqueued {enqueued} pending jobs"
        )
    return {"requeued": requeued, "failed": failed, "enqueued": enqueued}
