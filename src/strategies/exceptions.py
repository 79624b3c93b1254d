"""Кастомные исключения скрапера."""


class ScraperError(Exception):
    """Общая ошибка скрапинга."""

    retryable: bool = True


class ExtractionError(ScraperError):
    """Не удалось извлечь данные со страницы."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class FetchError(ExtractionError):
    """Сетевая ошибка, таймаут рендера или не-2xx ответ."""

    def __init__(self, url: str, detail: str, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to load {url}: {detail}")


class SessionError(ScraperError):
    """Не удалось поднять браузер/страницу — ретрай как у сетевой ошибки."""


class UnknownJobTypeError(ScraperError):
    """Нет стратегии для типа задачи — ретрай бесполезен."""

    retryable = False

    def __init__(self, job_type: str) -> None:
        self.job_type = job_type
        super().__init__(f"Unknown scraping type: {job_type}")


class JobCancelledError(ScraperError):
    """Задачу отменили во время выполнения."""

    retryable = False
