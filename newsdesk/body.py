"""Article body document model.

An article body is an ordered list of paragraphs, each an ordered list of
uniformly styled spans, each holding inline content items. The stored JSON
shape uses camelCase keys::

    {"paragraphs": [{"marginLeft": "0", "marginRight": "0",
                     "textAlignment": "left", "textIndent": "0",
                     "spans": [{"fontStyle": "normal", "textDecoration": "none",
                                "color": "#000000", "fontWeight": "400",
                                "content": [{"content": "Hello"},
                                            {"href": "https://x.com", "content": "there"},
                                            {"mediaId": "m1", "width": 100, "height": 50}]}]}]}

Unknown keys are rejected everywhere, which is what keeps the three content
item shapes apart.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictStr, ValidationError
from pydantic.alias_generators import to_camel

LOGGER = logging.getLogger(__name__)

DEFAULT_TEXT_ALIGNMENT = "left"
DEFAULT_TEXT_INDENT = "0"
DEFAULT_MARGIN = "0"

DEFAULT_FONT_STYLE = "normal"
DEFAULT_TEXT_DECORATION = "none"
DEFAULT_COLOR = "#000000"
DEFAULT_FONT_WEIGHT = "400"


class _BodyModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        allow_inf_nan=False,
    )


class TextContent(_BodyModel):
    """Plain text run."""

    content: StrictStr


class AnchorContent(_BodyModel):
    """Hyperlink; ``content`` is the link text."""

    href: StrictStr
    content: StrictStr


class ImageContent(_BodyModel):
    """Reference to registered media with the size it was authored at."""

    media_id: StrictStr
    width: StrictFloat = Field(ge=0)
    height: StrictFloat = Field(ge=0)


ContentItem = Union[TextContent, AnchorContent, ImageContent]


class Span(_BodyModel):
    font_style: StrictStr
    text_decoration: StrictStr
    color: StrictStr
    font_weight: StrictStr
    content: list[ContentItem]


class Paragraph(_BodyModel):
    margin_left: StrictStr
    margin_right: StrictStr
    text_alignment: StrictStr
    text_indent: StrictStr
    spans: list[Span]


class ArticleBody(_BodyModel):
    paragraphs: list[Paragraph]

    def to_json_dict(self) -> dict[str, Any]:
        """Return the storable JSON shape."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def iter_content_items(body: ArticleBody) -> Iterator[ContentItem]:
    for paragraph in body.paragraphs:
        for span in paragraph.spans:
            yield from span.content


def collect_media_ids(body: ArticleBody) -> list[str]:
    """Distinct media ids referenced by the body, in reading order."""

    media_ids: list[str] = []
    seen: set[str] = set()
    for item in iter_content_items(body):
        if isinstance(item, ImageContent):
            if item.media_id not in seen:
                seen.add(item.media_id)
                media_ids.append(item.media_id)
        elif isinstance(item, (TextContent, AnchorContent)):
            continue
        else:  # pragma: no cover - closed union
            raise TypeError(f"Unsupported content item {type(item).__name__}")
    return media_ids


def validate_article_body(
    candidate: Any,
    *,
    known_media_ids: Iterable[str] | None = None,
) -> ArticleBody | None:
    """Validate an arbitrary JSON value (or JSON text) as an article body.

    Returns ``None`` on any mismatch; nothing partial is ever returned. When
    ``known_media_ids`` is given, a body referencing any other media id is
    rejected as well.
    """

    if isinstance(candidate, ArticleBody):
        body = candidate
    else:
        try:
            if isinstance(candidate, (str, bytes, bytearray)):
                body = ArticleBody.model_validate_json(candidate)
            else:
                body = ArticleBody.model_validate(candidate)
        except ValidationError as exc:
            LOGGER.debug("Rejected article body with %d error(s): %s", exc.error_count(), exc)
            return None

    if known_media_ids is not None:
        allowed = set(known_media_ids)
        missing = [media_id for media_id in collect_media_ids(body) if media_id not in allowed]
        if missing:
            LOGGER.debug("Rejected article body referencing unknown media %s", missing)
            return None

    return body
