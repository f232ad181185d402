"""Render stored article bodies back to HTML."""

from __future__ import annotations

import logging
from typing import Mapping

from bs4 import BeautifulSoup, Tag

from .body import AnchorContent, ArticleBody, ContentItem, ImageContent, Paragraph, Span, TextContent
from .persistence import MediaRecord

LOGGER = logging.getLogger(__name__)

_CREDIT_SEPARATOR = "\u2002"


def _style_attribute(declarations: list[tuple[str, str]]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in declarations)


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)


class ArticleBodyRenderer:
    """Walk an article body and emit HTML.

    Text and link content is inserted as text, so markup characters are escaped
    on output. Images are looked up by media id; unknown media is skipped.
    """

    def __init__(self, *, body_class: str = "article-body", contributor_href: str = "/contributor/{slug}") -> None:
        self._body_class = body_class
        self._contributor_href = contributor_href

    def render(self, body: ArticleBody, media_by_id: Mapping[str, MediaRecord]) -> str:
        soup = BeautifulSoup("", "html.parser")
        container = soup.new_tag("div", attrs={"class": self._body_class})
        soup.append(container)
        for paragraph in body.paragraphs:
            container.append(self._render_paragraph(soup, paragraph, media_by_id))
        return str(soup)

    def _render_paragraph(
        self,
        soup: BeautifulSoup,
        paragraph: Paragraph,
        media_by_id: Mapping[str, MediaRecord],
    ) -> Tag:
        style = _style_attribute(
            [
                ("margin-left", paragraph.margin_left),
                ("margin-right", paragraph.margin_right),
                ("text-align", paragraph.text_alignment),
                ("text-indent", paragraph.text_indent),
            ]
        )
        block = soup.new_tag("div", attrs={"style": style})
        for span in paragraph.spans:
            block.append(self._render_span(soup, span, media_by_id))
        return block

    def _render_span(
        self,
        soup: BeautifulSoup,
        span: Span,
        media_by_id: Mapping[str, MediaRecord],
    ) -> Tag:
        style = _style_attribute(
            [
                ("font-style", span.font_style),
                ("text-decoration", span.text_decoration),
                ("color", span.color),
                ("font-weight", span.font_weight),
            ]
        )
        run = soup.new_tag("span", attrs={"style": style})
        for item in span.content:
            rendered = self._render_item(soup, item, media_by_id)
            if rendered is not None:
                run.append(rendered)
        return run

    def _render_item(
        self,
        soup: BeautifulSoup,
        item: ContentItem,
        media_by_id: Mapping[str, MediaRecord],
    ) -> Tag | str | None:
        if isinstance(item, TextContent):
            return item.content
        if isinstance(item, AnchorContent):
            link = soup.new_tag(
                "a",
                attrs={"href": item.href, "rel": "noreferrer", "target": "_blank"},
            )
            link.string = item.content
            return link
        if isinstance(item, ImageContent):
            return self._render_image(soup, item, media_by_id)
        raise TypeError(f"Unsupported content item {type(item).__name__}")

    def _render_image(
        self,
        soup: BeautifulSoup,
        item: ImageContent,
        media_by_id: Mapping[str, MediaRecord],
    ) -> Tag | None:
        media = media_by_id.get(item.media_id)
        if media is None:
            LOGGER.warning("Skipping image for unknown media %s", item.media_id)
            return None

        figure = soup.new_tag(
            "figure",
            attrs={"class": "inline-block", "style": f"width: {_format_number(item.width)}px"},
        )
        figure.append(
            soup.new_tag(
                "img",
                attrs={
                    "src": media.content_url,
                    "alt": media.alt,
                    "width": _format_number(item.width),
                    "height": _format_number(item.height),
                },
            )
        )

        caption = soup.new_tag("figcaption")
        if media.alt:
            caption.append(media.alt)
        if media.attribution:
            if media.contributor_slug:
                credit = soup.new_tag(
                    "a",
                    attrs={"href": self._contributor_href.format(slug=media.contributor_slug)},
                )
            else:
                credit = soup.new_tag("span")
            credit.string = f"{_CREDIT_SEPARATOR}{media.attribution}" if media.alt else media.attribution
            caption.append(credit)
        if caption.contents:
            figure.append(caption)
        return figure


def render_article_body(body: ArticleBody, media_by_id: Mapping[str, MediaRecord]) -> str:
    return ArticleBodyRenderer().render(body, media_by_id)
