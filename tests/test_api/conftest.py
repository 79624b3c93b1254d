"""Общие фикстуры и хелперы для тестов API."""
import pytest

from src.api import app as app_module
from src.memory_store import MemoryJobStore
from src.worker.queue import JobQueue
from src.worker.service import ScrapingService
from tests.fakes import make_settings


@pytest.fixture(autouse=True)
def reset_rate_limit():
    """Rate limiter хранит окна на уровне модуля — чистим между тестами."""
    app_module._rate_limit_store.clear()
    yield
    app_module._rate_limit_store.clear()


def make_service(settings=None, catalog=None) -> ScrapingService:
    """ScrapingService поверх memory-хранилища."""
    settings = settings or make_settings()
    return ScrapingService(MemoryJobStore(), JobQueue(settings.concurrency), settings, catalog)


def make_app(service=None, scheduler=None, settings=None):
    """Создать FastAPI app с memory-зависимостями."""
    settings = settings or make_settings()
    return app_module.create_app(
        service=service or make_service(settings),
        scheduler=scheduler,
        settings=settings,
    )


# Общий заголовок авторизации
AUTH_HEADERS = {"Authorization": "Bearer sk-test-key"}
