"""Signed-URL uploads of media files to object storage."""

from __future__ import annotations

import logging
import mimetypes
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Protocol

import httpx

from .config import NewsdeskConfig

LOGGER = logging.getLogger(__name__)


class UploadError(RuntimeError):
    """Raised when a media file cannot be uploaded."""


@dataclass(slots=True)
class SignedUpload:
    signed_url: str
    object_key: str


class SignedUrlProvider(Protocol):
    def create_signed_url(self, image_path: str, extension: str) -> SignedUpload:  # pragma: no cover - protocol
        ...


def build_object_prefix(prefix: str, when: datetime) -> str:
    """``images/2024/3/7`` style prefix; month and day are not zero padded."""

    return f"{prefix.strip('/')}/{when.year}/{when.month}/{when.day}"


def extension_for(file_name: str, default: str) -> str:
    suffix = Path(file_name).suffix.lstrip(".")
    return suffix.lower() if suffix else default


def env_token_provider(variable: str = "NEWSDESK_UPLOAD_TOKEN") -> Callable[[], str]:
    """Token provider reading the access token from the environment at call time."""

    def provide() -> str:
        token = os.getenv(variable, "").strip()
        if not token:
            raise UploadError(f"{variable} is not set")
        return token

    return provide


class HttpSignedUrlProvider:
    """Ask a signing endpoint for a short-lived PUT URL.

    The access token comes from ``token_provider`` on every call so that
    refreshed tokens are picked up without rebuilding the provider.
    """

    def __init__(
        self,
        signing_url: str,
        token_provider: Callable[[], str],
        *,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not signing_url:
            raise ValueError("signing_url is required")
        self._signing_url = signing_url
        self._token_provider = token_provider
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def create_signed_url(self, image_path: str, extension: str) -> SignedUpload:
        headers = {"Authorization": f"Bearer {self._token_provider()}"}
        try:
            response = self._client.post(
                self._signing_url,
                json={"imagePath": image_path, "extension": extension},
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UploadError(f"Signing request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UploadError("Signing endpoint returned non-JSON payload") from exc

        if not isinstance(payload, dict) or not payload.get("signedUrl") or not payload.get("imagePath"):
            raise UploadError(f"Signing endpoint returned unexpected payload: {payload!r}")
        return SignedUpload(signed_url=str(payload["signedUrl"]), object_key=str(payload["imagePath"]))


class MediaUploader:
    """PUT media bytes to signed URLs and report the public content URL."""

    def __init__(
        self,
        config: NewsdeskConfig,
        signer: SignedUrlProvider,
        *,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._signer = signer
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if client is None:
            self._client = httpx.Client(
                timeout=config.timeout.upload_timeout,
                headers={"User-Agent": config.user_agent},
            )
            self._owns_client = True
        else:
            self._client = client
            self._owns_client = False

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "MediaUploader":  # pragma: no cover - convenience wrapper
        return self

    def __exit__(self, *_exc_info) -> None:  # pragma: no cover - convenience wrapper
        self.close()

    def upload(self, path: Path, *, file_name: str | None = None) -> str:
        """Upload one file and return its content URL."""

        file_name = file_name or path.name
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise UploadError(f"Cannot read {path}: {exc}") from exc
        if not data:
            raise UploadError(f"Refusing to upload empty file {path}")

        upload_config = self._config.upload
        extension = extension_for(file_name, upload_config.default_extension)
        image_path = build_object_prefix(upload_config.image_prefix, self._clock())
        signed = self._signer.create_signed_url(image_path, extension)
        content_type = mimetypes.guess_type(file_name)[0] or "application/octet-stream"

        try:
            response = self._client.put(
                signed.signed_url,
                content=data,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UploadError(f"Upload of {file_name} failed: {exc}") from exc

        content_url = upload_config.content_url(signed.object_key)
        LOGGER.debug("Uploaded %s (%d bytes) to %s", file_name, len(data), content_url)
        return content_url
