"""Media registration: upload an asset, then record it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .persistence import ArticlePersistence, MediaRecord
from .uploads import MediaUploader

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ImageUpload:
    """An image file plus the attribution it is registered with.

    ``file_name`` is the name the source document refers to the image by and
    defaults to the file's own name.
    """

    path: Path
    alt: str
    contributor_id: str | None = None
    credit: str | None = None
    file_name: str | None = None

    @property
    def name(self) -> str:
        return self.file_name or self.path.name


class MediaRegistry:
    """Registers each image once and hands back the stored media records."""

    def __init__(self, uploader: MediaUploader, persistence: ArticlePersistence) -> None:
        self._uploader = uploader
        self._persistence = persistence

    def register(self, image: ImageUpload) -> MediaRecord:
        content_url = self._uploader.upload(image.path, file_name=image.name)
        record = self._persistence.create_media(
            content_url,
            image.alt,
            contributor_id=image.contributor_id,
            credit=image.credit,
        )
        LOGGER.info("Registered media %s for %s", record.id, image.name)
        return record

    def register_all(self, images: Iterable[ImageUpload]) -> dict[str, MediaRecord]:
        """Register every distinct file name, keyed by that name in input order."""

        registered: dict[str, MediaRecord] = {}
        for image in images:
            if image.name in registered:
                LOGGER.debug("Image %s already registered; skipping duplicate", image.name)
                continue
            registered[image.name] = self.register(image)
        return registered


def image_upload_to_payload(image: ImageUpload) -> dict[str, str | None]:
    """Serialize an image upload into a queue-friendly payload."""

    return {
        "path": str(image.path),
        "alt": image.alt,
        "contributor_id": image.contributor_id,
        "credit": image.credit,
        "file_name": image.file_name,
    }


def image_upload_from_payload(payload: Mapping[str, object]) -> ImageUpload:
    """Reconstruct an ImageUpload from a serialized payload."""

    return ImageUpload(
        path=Path(str(payload["path"])),
        alt=str(payload.get("alt") or ""),
        contributor_id=payload.get("contributor_id") or None,
        credit=payload.get("credit") or None,
        file_name=payload.get("file_name") or None,
    )
