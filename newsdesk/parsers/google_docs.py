"""HTML parser for Google Docs "Web page" exports."""

from __future__ import annotations

import logging
import math
from typing import Mapping
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from ..body import (
    DEFAULT_COLOR,
    DEFAULT_FONT_STYLE,
    DEFAULT_FONT_WEIGHT,
    DEFAULT_MARGIN,
    DEFAULT_TEXT_ALIGNMENT,
    DEFAULT_TEXT_DECORATION,
    DEFAULT_TEXT_INDENT,
    AnchorContent,
    ArticleBody,
    ContentItem,
    ImageContent,
    Paragraph,
    Span,
    TextContent,
)
from ..config import DEFAULT_IMAGE_HEIGHT, DEFAULT_IMAGE_WIDTH
from . import DocumentParser, ParsingError, RegisteredMedia, parse_inline_style, style_value

LOGGER = logging.getLogger(__name__)


class GoogleDocsParser(DocumentParser):
    """Convert an exported document into an :class:`ArticleBody`.

    The export always opens with a title paragraph which is not part of the
    article and is skipped. Every following ``<p>`` becomes a paragraph and
    each of its ``<span>`` runs a span.
    """

    def __init__(
        self,
        *,
        default_image_width: float = DEFAULT_IMAGE_WIDTH,
        default_image_height: float = DEFAULT_IMAGE_HEIGHT,
    ) -> None:
        self._default_width = default_image_width
        self._default_height = default_image_height

    def parse(
        self,
        html: str,
        media_by_file_name: Mapping[str, RegisteredMedia],
        *,
        base_url: str | None = None,
    ) -> ArticleBody:
        if not isinstance(html, (str, bytes)):
            raise ParsingError(f"Expected HTML text, got {type(html).__name__}")

        soup = BeautifulSoup(html, "html.parser")
        source_paragraphs = soup.find_all("p")
        if not source_paragraphs:
            LOGGER.debug("Document has no paragraphs; producing an empty body")

        paragraphs = [
            self._parse_paragraph(element, media_by_file_name, base_url)
            for element in source_paragraphs[1:]
        ]
        return ArticleBody(paragraphs=paragraphs)

    def _parse_paragraph(
        self,
        element: Tag,
        media_by_file_name: Mapping[str, RegisteredMedia],
        base_url: str | None,
    ) -> Paragraph:
        style = parse_inline_style(element.get("style"))
        spans = [
            self._parse_span(span, media_by_file_name, base_url)
            for span in self._outer_spans(element)
        ]
        return Paragraph(
            margin_left=style_value(style, "margin-left", DEFAULT_MARGIN),
            margin_right=style_value(style, "margin-right", DEFAULT_MARGIN),
            text_alignment=style_value(style, "text-align", DEFAULT_TEXT_ALIGNMENT),
            text_indent=style_value(style, "text-indent", DEFAULT_TEXT_INDENT),
            spans=spans,
        )

    @staticmethod
    def _outer_spans(paragraph: Tag) -> list[Tag]:
        spans: list[Tag] = []
        for span in paragraph.find_all("span"):
            parent = span.parent
            nested = False
            while parent is not None and parent is not paragraph:
                if parent.name == "span":
                    nested = True
                    break
                parent = parent.parent
            if not nested:
                spans.append(span)
        return spans

    def _parse_span(
        self,
        element: Tag,
        media_by_file_name: Mapping[str, RegisteredMedia],
        base_url: str | None,
    ) -> Span:
        style = parse_inline_style(element.get("style"))
        content: list[ContentItem] = []
        for child in element.children:
            item = self._parse_child(child, media_by_file_name, base_url)
            if item is not None:
                content.append(item)
        return Span(
            font_style=style_value(style, "font-style", DEFAULT_FONT_STYLE),
            text_decoration=style_value(style, "text-decoration", DEFAULT_TEXT_DECORATION),
            color=style_value(style, "color", DEFAULT_COLOR),
            font_weight=style_value(style, "font-weight", DEFAULT_FONT_WEIGHT),
            content=content,
        )

    def _parse_child(
        self,
        node: Tag | NavigableString,
        media_by_file_name: Mapping[str, RegisteredMedia],
        base_url: str | None,
    ) -> ContentItem | None:
        if isinstance(node, Tag) and node.name == "a":
            return AnchorContent(
                href=self._resolve_url(node.get("href"), base_url),
                content=node.get_text(),
            )
        if isinstance(node, Tag) and node.name == "img":
            return self._parse_image(node, media_by_file_name, base_url)
        if isinstance(node, Tag):
            return TextContent(content=node.get_text())
        if isinstance(node, Comment):
            return None
        return TextContent(content=str(node))

    def _parse_image(
        self,
        node: Tag,
        media_by_file_name: Mapping[str, RegisteredMedia],
        base_url: str | None,
    ) -> ImageContent | None:
        style = parse_inline_style(node.get("style"))
        width = self._parse_dimension(style.get("width") or node.get("width"))
        height = self._parse_dimension(style.get("height") or node.get("height"))
        if width is None or height is None:
            LOGGER.warning(
                "Image %r has unreadable dimensions (style=%r); using %sx%s",
                node.get("src"),
                node.get("style"),
                self._default_width,
                self._default_height,
            )
            width, height = self._default_width, self._default_height

        src = self._resolve_url(node.get("src"), base_url)
        media = self._match_media(src, media_by_file_name)
        if media is None:
            LOGGER.debug("Dropping image %r with no registered media", src)
            return None

        return ImageContent(media_id=str(media.id), width=width, height=height)

    @staticmethod
    def _match_media(
        src: str,
        media_by_file_name: Mapping[str, RegisteredMedia],
    ) -> RegisteredMedia | None:
        # The export rewrites image paths, so the registered name is looked up
        # anywhere in src and the first hit wins.
        for file_name, media in media_by_file_name.items():
            if file_name and file_name in src:
                return media
        return None

    @staticmethod
    def _parse_dimension(raw_value: str | None) -> float | None:
        if raw_value is None:
            return None
        cleaned = str(raw_value).strip().lower()
        if cleaned.endswith("px"):
            cleaned = cleaned[:-2].strip()
        try:
            value = float(cleaned)
        except ValueError:
            return None
        if not math.isfinite(value) or value < 0:
            return None
        return value

    @staticmethod
    def _resolve_url(raw_url: str | None, base_url: str | None) -> str:
        url = (raw_url or "").strip()
        if base_url:
            return urljoin(base_url, url)
        return url
