"""Configuration utilities shared by the editorial pipelines."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_LOG_DIR = Path("storage") / "logs"
DEFAULT_CDN_BASE_URL = "https://cdn.thebullhorn.net"
DEFAULT_USER_AGENT = "newsdesk/1.0"

DEFAULT_IMAGE_WIDTH = 300.0
DEFAULT_IMAGE_HEIGHT = 200.0

_ENV_PREFIX = "NEWSDESK_"


@dataclass(slots=True)
class TimeoutConfig:
    request_timeout: float = 10.0
    upload_timeout: float = 60.0


@dataclass(slots=True)
class UploadConfig:
    """Where signed upload URLs come from and where uploaded objects are served."""

    signing_url: Optional[str] = None
    cdn_base_url: str = DEFAULT_CDN_BASE_URL
    image_prefix: str = "images"
    default_extension: str = "jpg"

    def content_url(self, object_key: str) -> str:
        return f"{self.cdn_base_url.rstrip('/')}/{object_key.lstrip('/')}"


@dataclass(slots=True)
class DocumentConfig:
    """Fallbacks applied while converting exported documents."""

    default_image_width: float = DEFAULT_IMAGE_WIDTH
    default_image_height: float = DEFAULT_IMAGE_HEIGHT
    base_url: Optional[str] = None


@dataclass(slots=True)
class NewsdeskConfig:
    db_url: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    log_dir: Path = DEFAULT_LOG_DIR
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    document: DocumentConfig = field(default_factory=DocumentConfig)


def _clean(environ: Mapping[str, str], name: str) -> str | None:
    raw_value = environ.get(_ENV_PREFIX + name)
    if raw_value is None:
        return None
    cleaned = raw_value.strip()
    return cleaned or None


def _positive_float(environ: Mapping[str, str], name: str, default: float) -> float:
    cleaned = _clean(environ, name)
    if cleaned is None:
        return default
    try:
        value = float(cleaned)
    except ValueError as exc:
        raise ValueError(f"Invalid value {cleaned!r} for {_ENV_PREFIX}{name}") from exc
    if value <= 0:
        raise ValueError(f"{_ENV_PREFIX}{name} must be positive (got {cleaned!r})")
    return value


def load_config(environ: Mapping[str, str] | None = None) -> NewsdeskConfig:
    """Build a config from ``NEWSDESK_*`` environment variables over the defaults."""

    if environ is None:
        environ = os.environ

    config = NewsdeskConfig()
    config.db_url = _clean(environ, "DATABASE_URL")
    config.user_agent = _clean(environ, "USER_AGENT") or config.user_agent

    log_dir = _clean(environ, "LOG_DIR")
    if log_dir:
        config.log_dir = Path(log_dir).expanduser()

    config.timeout.request_timeout = _positive_float(
        environ, "REQUEST_TIMEOUT", config.timeout.request_timeout
    )
    config.timeout.upload_timeout = _positive_float(
        environ, "UPLOAD_TIMEOUT", config.timeout.upload_timeout
    )

    config.upload.signing_url = _clean(environ, "SIGNING_URL")
    config.upload.cdn_base_url = _clean(environ, "CDN_BASE_URL") or config.upload.cdn_base_url

    config.document.default_image_width = _positive_float(
        environ, "DEFAULT_IMAGE_WIDTH", config.document.default_image_width
    )
    config.document.default_image_height = _positive_float(
        environ, "DEFAULT_IMAGE_HEIGHT", config.document.default_image_height
    )
    config.document.base_url = _clean(environ, "DOCUMENT_BASE_URL")
    return config
