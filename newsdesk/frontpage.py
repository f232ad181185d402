"""Front-page ordering.

Articles picked for the home page carry a ``front_page_index`` forming the
dense range ``0..k-1``. The featured article is shown before all of them and
never takes part in the ordinal arithmetic.

Every operation here is a pure computation over a snapshot and returns a
:class:`ReorderPlan`; applying the plan atomically is the caller's job (see
:mod:`newsdesk.persistence`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

LOGGER = logging.getLogger(__name__)


class FrontPageError(RuntimeError):
    """Raised when a front-page operation is requested for an article it cannot apply to."""


@dataclass(frozen=True, slots=True)
class FrontPageEntry:
    article_id: str
    front_page_index: int | None
    featured: bool = False


@dataclass(slots=True)
class ReorderPlan:
    article_id: str
    previous_index: int | None
    target_index: int | None
    shifts: dict[str, int] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return self.previous_index == self.target_index and not self.shifts

    def changes(self) -> dict[str, int | None]:
        """Every article whose index changes, mapped to its new index."""
        if self.is_noop:
            return {}
        updates: dict[str, int | None] = dict(self.shifts)
        updates[self.article_id] = self.target_index
        return updates

    def apply(self, entries: Iterable[FrontPageEntry]) -> list[FrontPageEntry]:
        updates = self.changes()
        return [
            replace(entry, front_page_index=updates[entry.article_id])
            if entry.article_id in updates
            else entry
            for entry in entries
        ]


def _noop(entry: FrontPageEntry) -> ReorderPlan:
    return ReorderPlan(entry.article_id, entry.front_page_index, entry.front_page_index)


def _ordinal_entries(entries: Iterable[FrontPageEntry]) -> list[FrontPageEntry]:
    return [entry for entry in entries if not entry.featured and entry.front_page_index is not None]


def _find_entry(entries: Sequence[FrontPageEntry], article_id: str) -> FrontPageEntry:
    for entry in entries:
        if entry.article_id == article_id:
            if entry.featured:
                raise FrontPageError(f"Article {article_id} is featured and has no front-page position")
            return entry
    raise FrontPageError(f"Article {article_id} not found")


def _occupant(entries: Sequence[FrontPageEntry], index: int, mover: FrontPageEntry) -> FrontPageEntry | None:
    occupants = [
        entry
        for entry in _ordinal_entries(entries)
        if entry.front_page_index == index and entry.article_id != mover.article_id
    ]
    if len(occupants) != 1:
        LOGGER.error(
            "Front-page density violated: %d articles at index %d while moving %s",
            len(occupants),
            index,
            mover.article_id,
        )
        return None
    return occupants[0]


def plan_move_up(entries: Sequence[FrontPageEntry], article_id: str) -> ReorderPlan:
    """Swap the article with the one directly above it."""

    entry = _find_entry(entries, article_id)
    index = entry.front_page_index
    if index is None:
        LOGGER.debug("Article %s is not on the front page; nothing to move", article_id)
        return _noop(entry)
    if index == 0:
        return _noop(entry)

    above = _occupant(entries, index - 1, entry)
    if above is None:
        return _noop(entry)
    return ReorderPlan(article_id, index, index - 1, {above.article_id: index})


def plan_move_down(entries: Sequence[FrontPageEntry], article_id: str) -> ReorderPlan:
    """Swap the article with the one directly below it."""

    entry = _find_entry(entries, article_id)
    index = entry.front_page_index
    if index is None:
        LOGGER.debug("Article %s is not on the front page; nothing to move", article_id)
        return _noop(entry)

    last_index = max(item.front_page_index for item in _ordinal_entries(entries))
    if index >= last_index:
        LOGGER.debug("Article %s is already last on the front page", article_id)
        return _noop(entry)

    below = _occupant(entries, index + 1, entry)
    if below is None:
        return _noop(entry)
    return ReorderPlan(article_id, index, index + 1, {below.article_id: index})


def plan_remove(entries: Sequence[FrontPageEntry], article_id: str) -> ReorderPlan:
    """Take the article off the front page and close the gap it leaves."""

    entry = _find_entry(entries, article_id)
    index = entry.front_page_index
    if index is None:
        return _noop(entry)

    shifts = {
        other.article_id: other.front_page_index - 1
        for other in _ordinal_entries(entries)
        if other.article_id != article_id and other.front_page_index > index
    }
    return ReorderPlan(article_id, index, None, shifts)


def plan_insert_at_front(entries: Sequence[FrontPageEntry], article_id: str) -> ReorderPlan:
    """Put the article at index 0, pushing the ones it passes down by one."""

    entry = _find_entry(entries, article_id)
    index = entry.front_page_index
    if index == 0:
        return _noop(entry)

    shifts = {
        other.article_id: other.front_page_index + 1
        for other in _ordinal_entries(entries)
        if other.article_id != article_id and (index is None or other.front_page_index < index)
    }
    return ReorderPlan(article_id, index, 0, shifts)


def plan_set_position(
    entries: Sequence[FrontPageEntry],
    article_id: str,
    index: int | None,
) -> ReorderPlan:
    """Move the article to ``index`` (or off the front page for ``None``).

    Targets past the end are clamped to the end of the sequence.
    """

    if index is None:
        return plan_remove(entries, article_id)
    if index < 0:
        raise FrontPageError(f"Front-page index must not be negative (got {index})")

    entry = _find_entry(entries, article_id)
    others = [other for other in _ordinal_entries(entries) if other.article_id != article_id]
    target = min(index, len(others))
    current = entry.front_page_index
    if current == target:
        return _noop(entry)

    if current is None or target < current:
        shifts = {
            other.article_id: other.front_page_index + 1
            for other in others
            if other.front_page_index >= target and (current is None or other.front_page_index < current)
        }
    else:
        shifts = {
            other.article_id: other.front_page_index - 1
            for other in others
            if current < other.front_page_index <= target
        }
    return ReorderPlan(article_id, current, target, shifts)


def check_density(entries: Iterable[FrontPageEntry]) -> bool:
    """True when the non-featured indexed articles hold exactly ``0..k-1``."""

    indices = sorted(entry.front_page_index for entry in _ordinal_entries(entries))
    return indices == list(range(len(indices)))


def compact(entries: Iterable[FrontPageEntry]) -> dict[str, int]:
    """Index reassignments that restore density while keeping relative order."""

    ordered = sorted(
        _ordinal_entries(entries),
        key=lambda entry: (entry.front_page_index, entry.article_id),
    )
    return {
        entry.article_id: position
        for position, entry in enumerate(ordered)
        if entry.front_page_index != position
    }


def front_page_order(entries: Iterable[FrontPageEntry]) -> list[FrontPageEntry]:
    """Display order: the featured article first, then by front-page index."""

    entries = list(entries)
    featured = [entry for entry in entries if entry.featured][:1]
    ordered = sorted(_ordinal_entries(entries), key=lambda entry: entry.front_page_index)
    return featured + ordered
