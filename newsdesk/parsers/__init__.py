"""Parser interfaces and shared helpers for document conversion."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from ..body import ArticleBody


class RegisteredMedia(Protocol):
    """Anything carrying the identifier of an already registered media row."""

    id: Any


class ParsingError(RuntimeError):
    """Raised when a source document cannot be converted into an article body."""


class DocumentParser:
    """Base interface for source-format specific body parsers."""

    def parse(
        self,
        html: str,
        media_by_file_name: Mapping[str, RegisteredMedia],
        *,
        base_url: str | None = None,
    ) -> ArticleBody:  # pragma: no cover - interface only
        raise NotImplementedError


def parse_inline_style(raw_style: str | None) -> dict[str, str]:
    """Split an inline ``style`` attribute into lower-cased property names and raw values.

    Later declarations win, as in a browser. Declarations without a colon are ignored.
    """

    declarations: dict[str, str] = {}
    if not raw_style:
        return declarations
    for declaration in raw_style.split(";"):
        name, separator, value = declaration.partition(":")
        if not separator:
            continue
        name = name.strip().lower()
        value = value.strip()
        if value.lower().endswith("!important"):
            value = value[: -len("!important")].rstrip()
        if name:
            declarations[name] = value
    return declarations


def style_value(declarations: Mapping[str, str], name: str, default: str) -> str:
    value = declarations.get(name)
    if not value:
        return default
    return value
