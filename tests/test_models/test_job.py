"""Тесты модели ScrapeJob."""
import pytest
from pydantic import ValidationError

from src.models.job import ScrapeJob


class TestScrapeJob:
    """Тесты модели задачи скрапинга."""

    def test_minimal_job(self) -> None:
        job = ScrapeJob(id="job-1", type="website", target_url="https://example.com")
        assert job.status == "pending"
        assert job.priority == 5
        assert job.attempts == 0
        assert job.max_attempts == 3
        assert job.progress == 0
        assert job.options == {}
        assert job.result is None
        assert job.is_terminal is False

    def test_unknown_type_is_loaded(self) -> None:
        """Тип не валидируется моделью: старые строки таблицы должны читаться."""
        assert ScrapeJob(id="job-2", type="competitor_website").type == "competitor_website"

    def test_status_validation(self) -> None:
        with pytest.raises(ValidationError):
            ScrapeJob(id="job-3", type="website", status="paused")

    def test_progress_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ScrapeJob(id="job-4", type="website", progress=101)

    def test_terminal_statuses(self) -> None:
        for status in ("completed", "failed", "cancelled"):
            assert ScrapeJob(id="j", type="website", status=status).is_terminal

    def test_trend_job_without_target(self) -> None:
        job = ScrapeJob(id="job-5", type="trend_monitoring", options={"keyword": "seo"})
        assert job.target_url is None
        assert job.options["keyword"] == "seo"

    def test_options_not_shared(self) -> None:
        a = ScrapeJob(id="a", type="website")
        b = ScrapeJob(id="b", type="website")
        a.options["x"] = 1
        assert b.options == {}
