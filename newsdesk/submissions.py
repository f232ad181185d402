"""Import an exported document as an article submission."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .media import ImageUpload, MediaRegistry, image_upload_from_payload, image_upload_to_payload
from .parsers import DocumentParser
from .parsers.google_docs import GoogleDocsParser
from .persistence import ArticlePersistence
from .sections import get_section

LOGGER = logging.getLogger(__name__)

IMPORT_FAILURE_LOG = "import_failures.ndjson"


class SubmissionError(RuntimeError):
    """Raised when a submission request is incomplete."""


@dataclass(slots=True)
class SubmissionRequest:
    headline: str
    focus: str
    section: str
    writer_ids: list[str]
    html: str
    images: list[ImageUpload] = field(default_factory=list)
    thumbnail: ImageUpload | None = None
    base_url: str | None = None


def _check_image(image: ImageUpload, label: str) -> None:
    if not image.alt or not image.alt.strip():
        raise SubmissionError(f"{label} {image.name} is missing alt text")
    if not image.contributor_id and not image.credit:
        raise SubmissionError(f"{label} {image.name} is missing a contributor or credit")


def check_request(request: SubmissionRequest) -> None:
    """Reject incomplete requests before anything gets uploaded."""

    if not request.headline or not request.headline.strip():
        raise SubmissionError("Headline is required")
    if not request.focus or not request.focus.strip():
        raise SubmissionError("Focus sentence is required")
    if not request.writer_ids:
        raise SubmissionError("At least one writer is required")
    if not request.html or not request.html.strip():
        raise SubmissionError("Article document is required")
    try:
        section = get_section(request.section)
    except KeyError as exc:
        raise SubmissionError(str(exc)) from exc
    if section.hidden:
        raise SubmissionError(f"Section '{section.id}' is not accepting submissions")

    for image in request.images:
        _check_image(image, "Image")
    if request.thumbnail is not None:
        _check_image(request.thumbnail, "Thumbnail")


def import_submission(
    request: SubmissionRequest,
    registry: MediaRegistry,
    persistence: ArticlePersistence,
    parser: DocumentParser | None = None,
) -> str:
    """Register the images, convert the document and store the submission.

    Media registered before a later failure stays behind unreferenced.
    """

    check_request(request)
    parser = parser or GoogleDocsParser()

    media_by_file_name = registry.register_all(request.images)
    body = parser.parse(request.html, media_by_file_name, base_url=request.base_url)

    thumbnail_id = None
    if request.thumbnail is not None:
        thumbnail_id = registry.register(request.thumbnail).id

    submission_id = persistence.create_submission(
        request.headline,
        request.focus,
        request.section,
        body,
        request.writer_ids,
        thumbnail_id=thumbnail_id,
    )
    LOGGER.info(
        "Imported submission %s with %d paragraphs and %d images",
        submission_id,
        len(body.paragraphs),
        len(media_by_file_name),
    )
    return submission_id


def record_import_failure(log_dir: Path, request: SubmissionRequest, exc: BaseException, *, status: str) -> None:
    """Append one JSON line describing a rejected or failed import."""

    payload = {
        "headline": request.headline,
        "section": request.section,
        "writer_ids": list(request.writer_ids),
        "images": [image.name for image in request.images],
        "status": status,
        "error": str(exc),
        "error_type": type(exc).__name__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    log_path = Path(log_dir) / IMPORT_FAILURE_LOG
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
    except OSError as file_error:  # pragma: no cover - filesystem failure path
        LOGGER.warning("Failed to record import failure for %r: %s", request.headline, file_error)


def request_to_payload(request: SubmissionRequest) -> dict[str, Any]:
    return {
        "headline": request.headline,
        "focus": request.focus,
        "section": request.section,
        "writer_ids": list(request.writer_ids),
        "html": request.html,
        "images": [image_upload_to_payload(image) for image in request.images],
        "thumbnail": image_upload_to_payload(request.thumbnail) if request.thumbnail else None,
        "base_url": request.base_url,
    }


def request_from_payload(payload: Mapping[str, Any]) -> SubmissionRequest:
    thumbnail_payload = payload.get("thumbnail")
    return SubmissionRequest(
        headline=str(payload.get("headline") or ""),
        focus=str(payload.get("focus") or ""),
        section=str(payload.get("section") or ""),
        writer_ids=[str(writer_id) for writer_id in payload.get("writer_ids") or []],
        html=str(payload.get("html") or ""),
        images=[image_upload_from_payload(item) for item in payload.get("images") or []],
        thumbnail=image_upload_from_payload(thumbnail_payload) if thumbnail_payload else None,
        base_url=payload.get("base_url") or None,
    )
