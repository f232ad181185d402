"""Celery application setup for the editorial task queue."""

from __future__ import annotations

import os
from typing import Optional

from celery import Celery


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _sqla_broker_from_db(db_url: Optional[str]) -> Optional[str]:
    if not db_url:
        return None
    return db_url if db_url.startswith("sqla+") else f"sqla+{db_url}"


def _db_backend_from_db(db_url: Optional[str]) -> Optional[str]:
    if not db_url:
        return None
    return db_url if db_url.startswith("db+") else f"db+{db_url}"


def create_celery_app() -> Celery:
    """Instantiate the Celery app with environment driven configuration."""

    db_url = os.getenv("NEWSDESK_DATABASE_URL")
    broker_url = os.getenv("NEWSDESK_CELERY_BROKER_URL") or _sqla_broker_from_db(db_url) or "memory://"
    backend_url = os.getenv("NEWSDESK_CELERY_RESULT_BACKEND") or _db_backend_from_db(db_url) or "cache+memory://"

    app = Celery("newsdesk", broker=broker_url, backend=backend_url, include=["newsdesk.tasks"])
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_always_eager=_env_bool("NEWSDESK_CELERY_TASK_ALWAYS_EAGER", True),
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        task_routes={"newsdesk.import_submission": {"queue": os.getenv("NEWSDESK_CELERY_IMPORT_QUEUE", "imports")}},
        broker_connection_retry_on_startup=True,
    )
    return app


celery_app = create_celery_app()


__all__ = ["celery_app", "create_celery_app"]
