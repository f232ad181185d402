"""Section registry.

Section ids are stored on every article, so an id must never change or be
removed while articles still reference it. Hide a section instead: hidden
sections disappear from the masthead and editors can no longer submit to them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True, slots=True)
class SectionDefinition:
    """A newspaper section as shown in the masthead."""

    id: str
    display: str
    hidden: bool = False

    @property
    def href(self) -> str:
        return f"/section/{self.id}"


_SECTION_REGISTRY: Dict[str, SectionDefinition] = {
    section.id: section
    for section in (
        SectionDefinition("news", "News"),
        SectionDefinition("opinions", "Opinions"),
        SectionDefinition("features", "Features"),
        SectionDefinition("science", "Science"),
        SectionDefinition("sports", "Sports"),
        SectionDefinition("arts", "Arts & Entertainment"),
        SectionDefinition("humor", "Humor"),
        SectionDefinition("podcasts", "Podcasts", hidden=True),
    )
}


def get_section(section_id: str) -> SectionDefinition:
    """Return the section registered under ``section_id``."""

    try:
        return _SECTION_REGISTRY[section_id]
    except KeyError as exc:
        raise KeyError(f"Unknown section '{section_id}'") from exc


def list_sections(*, include_hidden: bool = False) -> list[SectionDefinition]:
    return [
        section
        for section in _SECTION_REGISTRY.values()
        if include_hidden or not section.hidden
    ]
