"""Live-уведомления о ходе задач (Supabase Realtime через таблицу scraping_updates)."""
from datetime import UTC, datetime
from typing import Protocol

from loguru import logger
from supabase import Client

from src.database import run_in_thread

UPDATES_TABLE = "scraping_updates"


class Notifier(Protocol):
    """Канал push-уведомлений подключённым клиентам."""

    async def broadcast(
        self,
        job_id: str,
        owner_id: str | None,
        status: str,
        progress: int,
        message: str,
    ) -> None:
        ...


def channel_for(owner_id: str | None) -> str:
    """Комната получателя: user_<id> или system для системных задач."""
    return f"user_{owner_id}" if owner_id else "system"


class SupabaseNotifier:
    """Пишет событие в scraping_updates — Realtime рассылает его подписчикам канала."""

    def __init__(self, db: Client) -> None:
        self.db = db

    async def broadcast(
        self,
        job_id: str,
        owner_id: str | None,
        status: str,
        progress: int,
        message: str,
    ) -> None:
        await run_in_thread(
            self.db.table(UPDATES_TABLE).insert({
                "channel": channel_for(owner_id),
                "event": "scraping_update",
                "job_id": job_id,
                "user_id": owner_id,
                "status": status,
                "progress": progress,
                "message": message,
                "created_at": datetime.now(UTC).isoformat(),
            }).execute
        )


class LogNotifier:
    """Уведомления в лог — для memory-бэкенда без Realtime."""

    async def broadcast(
        self,
        job_id: str,
        owner_id: str | None,
        status: str,
        progress: int,
        message: str,
    ) -> None:
        logger.debug(f"[notify:{channel_for(owner_id)}] job={job_id} {status} {progress}% {message}")


async def safe_broadcast(
    notifier: Notifier | None,
    job_id: str,
    owner_id: str | None,
    status: str,
    progress: int,
    message: str,
) -> None:
    """Fire-and-forget: отсутствие или ошибка нотификатора не влияет на задачу."""
    if notifier is None:
        return
    try:
        await notifier.broadcast(job_id, owner_id, status, progress, message)
    except Exception as e:
        logger.warning(f"Failed to notify about job {job_id}: {e}")
