"""FastAPI-приложение: admin-поверхность оркестратора скрапинга."""
import hmac
import time
import uuid
from collections import defaultdict

from fastapi import Depends, FastAPI, HTTPException, Path, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from src.api.schemas import (
    HealthResponse,
    JobRequest,
    JobResponse,
    RunPassRequest,
    RunPassResponse,
    SchedulerActionResponse,
)
from src.config import Settings
from src.models.job import ScrapeJob
from src.worker.queue import QueueStats
from src.worker.scheduler import TaskInfo, TaskScheduler
from src.worker.service import CleanupReport, SchedulerStats, ScrapingService

security = HTTPBearer(auto_error=False)

# Rate limiting: sliding window per IP
RATE_LIMIT_MAX_REQUESTS = 60
RATE_LIMIT_WINDOW_SECONDS = 60
_rate_limit_store: dict[str, list[float]] = defaultdict(list)


def _validate_uuid(value: str) -> None:
    """Проверить что строка — валидный UUID. Бросает 422 при ошибке."""
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Invalid UUID: {value}")


def create_app(
    service: ScrapingService,
    scheduler: TaskScheduler | None,
    settings: Settings,
) -> FastAPI:
    """Создать FastAPI-приложение с зависимостями."""
    app = FastAPI(title="Scraping Orchestrator API", version="0.1.0")

    # Сохраняем зависимости в app.state
    app.state.service = service
    app.state.scheduler = scheduler
    app.state.settings = settings

    async def check_rate_limit(request: Request) -> None:
        """Простой in-memory rate limiter: sliding window per IP."""
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - RATE_LIMIT_WINDOW_SECONDS

        # Очистить устаревшие записи
        timestamps = _rate_limit_store[client_ip]
        _rate_limit_store[client_ip] = [t for t in timestamps if t > window_start]

        if len(_rate_limit_store[client_ip]) >= RATE_LIMIT_MAX_REQUESTS:
            raise HTTPException(status_code=429, detail="Rate limit exceeded")

        _rate_limit_store[client_ip].append(now)

        # Периодическая очистка стухших IP (при росте store > 100 записей)
        if len(_rate_limit_store) > 100:
            stale_ips = [
                ip for ip, ts in _rate_limit_store.items()
                if not ts or ts[-1] <= window_start
            ]
            for ip in stale_ips:
                del _rate_limit_store[ip]

    async def verify_api_key(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> None:
        """Проверка API-ключа."""
        expected = settings.scraper_api_key.get_secret_value()
        if credentials is None or not hmac.compare_digest(
            credentials.credentials, expected
        ):
            raise HTTPException(status_code=401, detail="Invalid API key")

    def require_scheduler() -> TaskScheduler:
        if scheduler is None:
            raise HTTPException(status_code=503, detail="Scheduler is not running")
        return scheduler

    protected = [Depends(check_rate_limit), Depends(verify_api_key)]

    @app.get("/api/health", response_model=HealthResponse)
    async def health(response: Response) -> HealthResponse:
        """Healthcheck — без авторизации."""
        queue_stats = service.queue.stats()
        try:
            jobs_running = await service.store.count({"status": "running"})
            jobs_pending = await service.store.count({"status": "pending"})
        except Exception as e:
            logger.warning(f"Health check: job store unavailable: {e}")
            response.status_code = 503
            jobs_running = -1
            jobs_pending = -1
            status = "degraded"
        else:
            status = "ok"

        return HealthResponse(
            status=status,
            queue_running=queue_stats.running_count,
            queue_pending=queue_stats.pending_count,
            queue_paused=queue_stats.paused,
            jobs_running=jobs_running,
            jobs_pending=jobs_pending,
        )

    @app.get("/api/scheduler/stats", response_model=SchedulerStats, dependencies=protected)
    async def scheduler_stats() -> SchedulerStats:
        return await service.get_stats(scheduler)

    @app.get("/api/scheduler/tasks", response_model=list[TaskInfo], dependencies=protected)
    async def list_tasks() -> list[TaskInfo]:
        return require_scheduler().list_tasks()

    @app.post("/api/scheduler/start", response_model=SchedulerActionResponse, dependencies=protected)
    async def start_tasks() -> SchedulerActionResponse:
        require_scheduler().start_all()
        return SchedulerActionResponse(status="started")

    @app.post("/api/scheduler/stop", response_model=SchedulerActionResponse, dependencies=protected)
    async def stop_tasks() -> SchedulerActionResponse:
        require_scheduler().stop_all()
        return SchedulerActionResponse(status="stopped")

    @app.post("/api/scheduler/run", response_model=RunPassResponse, dependencies=protected)
    async def run_pass(body: RunPassRequest | None = None) -> RunPassResponse:
        """Ручной прогон порождения работы."""
        frequency = body.frequency if body else None
        return RunPassResponse(scheduled=await service.run_scheduling_pass(frequency))

    @app.post("/api/maintenance/cleanup", response_model=CleanupReport, dependencies=protected)
    async def cleanup() -> CleanupReport:
        return await service.perform_cleanup()

    @app.post("/api/queue/pause", response_model=QueueStats, dependencies=protected)
    async def pause_queue() -> QueueStats:
        await service.queue.pause()
        return service.queue.stats()

    @app.post("/api/queue/resume", response_model=QueueStats, dependencies=protected)
    async def resume_queue() -> QueueStats:
        await service.queue.resume()
        return service.queue.stats()

    @app.post("/api/jobs", response_model=JobResponse, status_code=201, dependencies=protected)
    async def create_job(body: JobRequest) -> JobResponse:
        """Поставить разовую задачу в очередь."""
        job = await service.schedule_job(
            body.type,
            body.target_url,
            owner_id=body.owner_id,
            related_entity_id=body.related_entity_id,
            priority=body.priority,
            delay=body.delay_ms / 1000,
            max_attempts=body.max_attempts,
            options=body.options,
        )
        return JobResponse(job_id=job.id, status=job.status)

    @app.get("/api/jobs/{job_id}", response_model=ScrapeJob, dependencies=protected)
    async def get_job(job_id: str = Path(description="UUID задачи")) -> ScrapeJob:
        _validate_uuid(job_id)
        job = await service.store.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    @app.post("/api/jobs/{job_id}/cancel", response_model=ScrapeJob, dependencies=protected)
    async def cancel_job(job_id: str = Path(description="UUID задачи")) -> ScrapeJob:
        _validate_uuid(job_id)
        job = await service.cancel_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    return app
