"""Точка входа оркестратора — инициализация и запуск API + воркера + планировщика."""
import asyncio
import signal
import sys

import uvicorn
from loguru import logger
from supabase import create_client

from src.api.app import create_app
from src.browser.session import SessionManager
from src.config import load_settings
from src.database import JobStore, SupabaseJobStore, SupabaseWorkCatalog, WorkCatalog
from src.log_sink import create_supabase_sink
from src.memory_store import MemoryJobStore, StaticWorkCatalog
from src.notifier import LogNotifier, Notifier, SupabaseNotifier
from src.strategies.base import build_strategies
from src.worker.loop import recover_jobs, run_worker
from src.worker.processor import JobProcessor
from src.worker.queue import JobQueue
from src.worker.scheduler import create_scheduler
from src.worker.service import ScrapingService


async def main() -> None:
    """Инициализация и запуск API + воркера."""
    settings = load_settings()

    # Логирование
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_level == "DEBUG":
        logger.add("logs/scraper.log", rotation="100 MB", retention="7 days")

    logger.info(f"Starting scraping orchestrator (backend={settings.job_store_backend})")

    # Хранилище задач
    store: JobStore
    catalog: WorkCatalog
    notifier: Notifier
    if settings.job_store_backend == "supabase":
        db = create_client(settings.supabase_url, settings.supabase_service_key.get_secret_value())

        # Персистить WARNING+ логи в Supabase
        logger.add(
            create_supabase_sink(db),
            level="WARNING",
            enqueue=True,
            serialize=False,
        )

        store = SupabaseJobStore(db)
        catalog = SupabaseWorkCatalog(db)
        notifier = SupabaseNotifier(db)
    else:
        store = MemoryJobStore()
        catalog = StaticWorkCatalog()
        notifier = LogNotifier()

    # Очередь, стратегии, воркер
    queue = JobQueue(concurrency=settings.concurrency)
    sessions = SessionManager(settings)
    processor = JobProcessor(
        store, queue, build_strategies(settings), sessions, settings, notifier,
    )
    service = ScrapingService(store, queue, settings, catalog, notifier)

    # Задачи, оставшиеся от прошлого запуска
    await recover_jobs(store, queue)

    # APScheduler: крон-задачи (скрапинг конкурентов, тренды, очистка)
    scheduler = create_scheduler(service, settings)
    scheduler.start()

    # FastAPI
    app = create_app(service, scheduler, settings)
    config = uvicorn.Config(app, host="0.0.0.0", port=settings.scraper_port, log_level="warning")
    server = uvicorn.Server(config)

    # Graceful shutdown
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    logger.info(f"API server starting on port {settings.scraper_port}")

    try:
        await asyncio.gather(
            server.serve(),
            run_worker(queue, processor, settings, shutdown_event),
        )
    finally:
        await scheduler.shutdown()
        logger.info(f"Orchestrator stopped gracefully (open sessions: {sessions.active})")


if __name__ == "__main__":
    asyncio.run(main())
