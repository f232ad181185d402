"""Celery tasks for asynchronous submission imports."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from celery import Task
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .celery_app import celery_app
from .config import DocumentConfig, NewsdeskConfig, TimeoutConfig
from .media import MediaRegistry
from .parsers import ParsingError
from .parsers.google_docs import GoogleDocsParser
from .persistence import ArticlePersistence, ArticlePersistenceError, InvalidArticleBodyError
from .submissions import SubmissionError, import_submission, record_import_failure, request_from_payload
from .uploads import HttpSignedUrlProvider, MediaUploader, UploadError, env_token_provider

LOGGER = logging.getLogger(__name__)

_ENGINE_OPTIONS = {
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


def _build_config(config_payload: Mapping[str, Any]) -> NewsdeskConfig:
    config = NewsdeskConfig()
    default_timeout = TimeoutConfig()
    config.timeout = TimeoutConfig(
        request_timeout=float(config_payload.get("request_timeout", default_timeout.request_timeout)),
        upload_timeout=float(config_payload.get("upload_timeout", default_timeout.upload_timeout)),
    )
    config.upload.signing_url = config_payload.get("signing_url") or None
    config.upload.cdn_base_url = str(config_payload.get("cdn_base_url") or config.upload.cdn_base_url)
    config.user_agent = str(config_payload.get("user_agent") or config.user_agent)

    default_document = DocumentConfig()
    try:
        config.document.default_image_width = float(
            config_payload.get("default_image_width", default_document.default_image_width)
        )
        config.document.default_image_height = float(
            config_payload.get("default_image_height", default_document.default_image_height)
        )
    except (TypeError, ValueError):
        LOGGER.warning("Invalid default image dimensions in task payload; using %sx%s",
                       default_document.default_image_width, default_document.default_image_height)
        config.document = DocumentConfig()

    log_dir = config_payload.get("log_dir")
    if log_dir:
        config.log_dir = Path(log_dir)
    return config


@lru_cache(maxsize=8)
def _session_factory(db_url: str):
    engine = create_engine(db_url, **_ENGINE_OPTIONS)
    return sessionmaker(bind=engine)


@celery_app.task(name="newsdesk.import_submission", bind=True, max_retries=3, default_retry_delay=30)
def import_submission_task(self: Task, job: Mapping[str, Any]) -> dict[str, Any]:
    request = request_from_payload(job["request"])
    config = _build_config(job.get("config") or {})
    try:
        persistence = ArticlePersistence(_session_factory(str(job["db_url"])))
        signer = HttpSignedUrlProvider(
            config.upload.signing_url,
            env_token_provider(),
            timeout=config.timeout.request_timeout,
        )
        parser = GoogleDocsParser(
            default_image_width=config.document.default_image_width,
            default_image_height=config.document.default_image_height,
        )
        try:
            with MediaUploader(config, signer) as uploader:
                registry = MediaRegistry(uploader, persistence)
                submission_id = import_submission(request, registry, persistence, parser)
        finally:
            signer.close()

        LOGGER.info("Imported submission %s (%s)", submission_id, request.headline)
        return {"status": "ok", "submission_id": submission_id}
    except (SubmissionError, InvalidArticleBodyError, ParsingError, ValueError) as exc:
        LOGGER.warning("Rejected submission %r: %s", request.headline, exc)
        record_import_failure(config.log_dir, request, exc, status="rejected")
        return {"status": "rejected", "reason": str(exc)}
    except (UploadError, ArticlePersistenceError) as exc:
        LOGGER.exception("Import task failed for submission %r", request.headline)
        record_import_failure(config.log_dir, request, exc, status="retrying")
        raise self.retry(exc=exc)


__all__ = ["import_submission_task"]
