"""Тесты FastAPI-приложения: auth, health, задачи, планировщик, очередь."""
import uuid
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from src.worker.scheduler import TaskScheduler
from tests.test_api.conftest import AUTH_HEADERS, make_app, make_service


class TestHealth:
    """GET /api/health — без авторизации."""

    def test_health_no_auth_required(self) -> None:
        client = TestClient(make_app())
        resp = client.get("/api/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["queue_paused"] is False
        assert data["jobs_running"] == 0

    def test_health_store_error_returns_minus_one(self) -> None:
        """При ошибке хранилища — статус degraded и HTTP 503."""
        service = make_service()
        service.store = MagicMock()
        service.store.count = AsyncMock(side_effect=Exception("DB down"))
        client = TestClient(make_app(service))

        resp = client.get("/api/health")

        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "degraded"
        assert data["jobs_running"] == -1
        assert data["jobs_pending"] == -1


class TestAuth:
    """Авторизация по API key."""

    def test_missing_auth_returns_401(self) -> None:
        resp = TestClient(make_app()).get("/api/scheduler/stats")
        assert resp.status_code == 401

    def test_wrong_key_returns_401(self) -> None:
        resp = TestClient(make_app()).get(
            "/api/scheduler/stats", headers={"Authorization": "Bearer wrong"},
        )
        assert resp.status_code == 401

    def test_valid_key_passes(self) -> None:
        resp = TestClient(make_app()).get("/api/scheduler/stats", headers=AUTH_HEADERS)
        assert resp.status_code == 200

    def test_rate_limit(self) -> None:
        client = TestClient(make_app())
        statuses = [
            client.get("/api/scheduler/stats", headers=AUTH_HEADERS).status_code
            for _ in range(61)
        ]
        assert statuses[-1] == 429
        assert set(statuses[:-1]) == {200}


class TestJobs:
    """POST /api/jobs, GET /api/jobs/{id}, POST /api/jobs/{id}/cancel."""

    def test_create_and_get_job(self) -> None:
        with TestClient(make_app()) as client:
            resp = client.post(
                "/api/jobs",
                json={"type": "website", "target_url": "https://acme.test", "priority": 2},
                headers=AUTH_HEADERS,
            )
            assert resp.status_code == 201
            body = resp.json()
            assert body["status"] == "pending"

            job = client.get(f"/api/jobs/{body['job_id']}", headers=AUTH_HEADERS).json()

        assert job["type"] == "website"
        assert job["priority"] == 2
        assert job["target_url"] == "https://acme.test"

    def test_trend_job_requires_keyword(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/jobs", json={"type": "trend_monitoring"}, headers=AUTH_HEADERS,
        )
        assert resp.status_code == 422

    def test_trend_job_without_target(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/jobs",
            json={"type": "trend_monitoring", "options": {"keyword": "seo"}},
            headers=AUTH_HEADERS,
        )
        assert resp.status_code == 201

    def test_page_job_requires_target(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/jobs", json={"type": "asset_discovery"}, headers=AUTH_HEADERS,
        )
        assert resp.status_code == 422

    def test_non_http_target_rejected(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/jobs",
            json={"type": "website", "target_url": "ftp://acme.test"},
            headers=AUTH_HEADERS,
        )
        assert resp.status_code == 422

    def test_unknown_type_rejected(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/jobs",
            json={"type": "screenshot", "target_url": "https://acme.test"},
            headers=AUTH_HEADERS,
        )
        assert resp.status_code == 422

    def test_priority_bounds(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/jobs",
            json={"type": "website", "target_url": "https://acme.test", "priority": 0},
            headers=AUTH_HEADERS,
        )
        assert resp.status_code == 422

    def test_get_invalid_uuid(self) -> None:
        resp = TestClient(make_app()).get("/api/jobs/not-a-uuid", headers=AUTH_HEADERS)
        assert resp.status_code == 422

    def test_get_missing_job(self) -> None:
        resp = TestClient(make_app()).get(f"/api/jobs/{uuid.uuid4()}", headers=AUTH_HEADERS)
        assert resp.status_code == 404

    def test_cancel_pending_job(self) -> None:
        service = make_service()
        with TestClient(make_app(service)) as client:
            job_id = client.post(
                "/api/jobs",
                json={"type": "website", "target_url": "https://acme.test"},
                headers=AUTH_HEADERS,
            ).json()["job_id"]

            resp = client.post(f"/api/jobs/{job_id}/cancel", headers=AUTH_HEADERS)

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert service.queue.is_queued(job_id) is False

    def test_cancel_missing_job(self) -> None:
        resp = TestClient(make_app()).post(
            f"/api/jobs/{uuid.uuid4()}/cancel", headers=AUTH_HEADERS,
        )
        assert resp.status_code == 404


class TestScheduler:
    """Управление cron-задачами."""

    def test_tasks_without_scheduler(self) -> None:
        resp = TestClient(make_app()).get("/api/scheduler/tasks", headers=AUTH_HEADERS)
        assert resp.status_code == 503

    def test_list_tasks(self) -> None:
        scheduler = TaskScheduler()
        scheduler.register_task("daily_cleanup", "0 1 * * *", AsyncMock())

        resp = TestClient(make_app(scheduler=scheduler)).get(
            "/api/scheduler/tasks", headers=AUTH_HEADERS,
        )

        assert resp.status_code == 200
        assert resp.json() == [{
            "name": "daily_cleanup",
            "schedule": "0 1 * * *",
            "running": False,
            "next_run_time": None,
        }]

    def test_stop_and_start(self) -> None:
        scheduler = MagicMock(spec=TaskScheduler)
        client = TestClient(make_app(scheduler=scheduler))

        assert client.post("/api/scheduler/stop", headers=AUTH_HEADERS).json() == {"status": "stopped"}
        assert client.post("/api/scheduler/start", headers=AUTH_HEADERS).json() == {"status": "started"}
        scheduler.stop_all.assert_called_once()
        scheduler.start_all.assert_called_once()

    def test_run_pass_single_frequency(self) -> None:
        resp = TestClient(make_app()).post(
            "/api/scheduler/run", json={"frequency": "daily"}, headers=AUTH_HEADERS,
        )
        assert resp.json() == {"scheduled": {"daily": 0}}

    def test_run_pass_all(self) -> None:
        resp = TestClient(make_app()).post("/api/scheduler/run", headers=AUTH_HEADERS)
        assert resp.json() == {"scheduled": {"daily": 0, "weekly": 0, "trend_monitoring": 0}}

    def test_stats(self) -> None:
        with TestClient(make_app()) as client:
            client.post(
                "/api/jobs",
                json={"type": "website", "target_url": "https://acme.test"},
                headers=AUTH_HEADERS,
            )
            data = client.get("/api/scheduler/stats", headers=AUTH_HEADERS).json()

        assert data["queue"]["pending_count"] == 1
        assert data["store"]["pending_count"] == 1
        assert data["tasks"] == []


class TestMaintenance:
    def test_cleanup_report(self) -> None:
        resp = TestClient(make_app()).post("/api/maintenance/cleanup", headers=AUTH_HEADERS)

        assert resp.status_code == 200
        data = resp.json()
        assert data["deleted"] == {"completed": 0, "failed": 0, "cancelled": 0}
        assert data["queue_cleaned"] == 0

    def test_pause_and_resume_queue(self) -> None:
        client = TestClient(make_app())

        assert client.post("/api/queue/pause", headers=AUTH_HEADERS).json()["paused"] is True
        assert client.post("/api/queue/resume", headers=AUTH_HEADERS).json()["paused"] is False
