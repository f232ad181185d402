"""Database persistence helpers for the editorial workflow."""

from __future__ import annotations

import logging
import re
import threading
import unicodedata
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Sequence
from uuid import UUID

from sqlalchemy import false, or_, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Article, ArticleSubmission, Contributor, Media, generate_uuid7

from .body import ArticleBody, collect_media_ids, validate_article_body
from .frontpage import (
    FrontPageEntry,
    ReorderPlan,
    compact,
    front_page_order,
    plan_insert_at_front,
    plan_move_down,
    plan_move_up,
    plan_remove,
    plan_set_position,
)
from .sections import get_section

LOGGER = logging.getLogger(__name__)

Planner = Callable[[Sequence[FrontPageEntry], str], ReorderPlan]

# Transaction-scoped advisory lock key for front-page changes on PostgreSQL
_FRONT_PAGE_LOCK_KEY = 0x6E657773


class ArticlePersistenceError(RuntimeError):
    """Raised when reading or writing editorial records fails."""


class RecordNotFoundError(ArticlePersistenceError):
    """Raised when a referenced record does not exist."""


class FeaturedConflictError(ArticlePersistenceError):
    """Raised when featuring an article while another one is featured."""


class InvalidArticleBodyError(ArticlePersistenceError):
    """Raised when an article body fails validation or references unknown media."""


@dataclass(slots=True)
class MediaRecord:
    id: str
    content_url: str
    alt: str
    attribution: str | None = None
    contributor_slug: str | None = None

    @classmethod
    def from_model(cls, media: Media) -> "MediaRecord":
        contributor = media.contributor
        return cls(
            id=str(media.id),
            content_url=media.content_url,
            alt=media.alt or "",
            attribution=media.attribution,
            contributor_slug=contributor.slug if contributor is not None else None,
        )


@dataclass(slots=True)
class SubmissionSummary:
    id: str
    headline: str
    focus: str
    section: str
    writer_ids: list[str]
    created_at: datetime | None


@dataclass(slots=True)
class ContributorSummary:
    id: str
    first_name: str
    last_name: str
    slug: str
    title: str | None
    bio: str | None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(slots=True)
class ArticleSummary:
    id: str
    headline: str
    slug: str
    section: str
    publication_date: datetime | None
    writer_ids: list[str]
    featured: bool
    front_page_index: int | None


@dataclass(slots=True)
class FrontPageArticle:
    id: str
    headline: str
    slug: str
    section: str
    featured: bool
    front_page_index: int | None


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value or "")
    stripped = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    lowered = stripped.strip().lower()
    cleaned = re.sub(r"[^a-z0-9]+", "-", lowered)
    return cleaned.strip("-")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_uuid(identifier: Any, kind: str) -> UUID:
    if isinstance(identifier, UUID):
        return identifier
    try:
        return UUID(str(identifier))
    except ValueError as exc:
        raise RecordNotFoundError(f"{kind} {identifier!r} not found") from exc


class ArticlePersistence:
    """Editorial reads and writes, one transaction per call.

    Front-page and featured-flag changes are serialized through a lock held
    for the whole read-plan-write cycle. Across processes, each such
    transaction first takes a database-wide serialization point (an advisory
    lock on PostgreSQL, the write lock on SQLite) before reading anything.
    """

    def __init__(self, session_factory, *, clock: Callable[[], datetime] | None = None) -> None:
        self._session_factory = session_factory
        self._clock = clock or _utcnow
        self._reorder_lock = threading.Lock()

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
                session.commit()
        except SQLAlchemyError as exc:
            raise ArticlePersistenceError(str(exc)) from exc

    @staticmethod
    def _get(session: Session, model, identifier: Any, kind: str):
        record = session.get(model, _as_uuid(identifier, kind))
        if record is None:
            raise RecordNotFoundError(f"{kind} {identifier!r} not found")
        return record

    @staticmethod
    def _unique_slug(session: Session, model, base: str, *, exclude: UUID | None = None) -> str:
        base = base or "untitled"
        candidate = base
        suffix = 2
        while True:
            query = session.query(model.id).filter(model.slug == candidate)
            if exclude is not None:
                query = query.filter(model.id != exclude)
            if query.first() is None:
                return candidate
            candidate = f"{base}-{suffix}"
            suffix += 1

    @staticmethod
    def _lock_front_page(session: Session) -> None:
        """Block until no other transaction can change the front page."""

        if session.get_bind().dialect.name == "postgresql":
            session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": _FRONT_PAGE_LOCK_KEY})
            return
        # Matches no rows but still takes the database write lock on SQLite
        articles = Article.__table__
        session.execute(
            update(articles).where(false()).values(front_page_index=articles.c.front_page_index)
        )

    # Contributors and media

    def create_contributor(
        self,
        first_name: str,
        last_name: str,
        *,
        title: str | None = None,
        bio: str | None = None,
    ) -> str:
        with self._transaction() as session:
            contributor = Contributor(
                id=generate_uuid7(),
                first_name=first_name,
                last_name=last_name,
                slug=self._unique_slug(session, Contributor, slugify(f"{first_name} {last_name}")),
                title=title,
                bio=bio,
            )
            session.add(contributor)
            return str(contributor.id)

    @staticmethod
    def _contributor_summary(contributor: Contributor) -> ContributorSummary:
        return ContributorSummary(
            id=str(contributor.id),
            first_name=contributor.first_name,
            last_name=contributor.last_name,
            slug=contributor.slug,
            title=contributor.title,
            bio=contributor.bio,
        )

    def list_contributors(self) -> list[ContributorSummary]:
        with self._transaction() as session:
            rows = session.query(Contributor).order_by(Contributor.last_name, Contributor.first_name).all()
            return [self._contributor_summary(row) for row in rows]

    def edit_contributor(
        self,
        contributor_id: str,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        title: str | None = None,
        bio: str | None = None,
    ) -> ContributorSummary:
        """Update the given fields; a name change regenerates the slug."""

        with self._transaction() as session:
            contributor = self._get(session, Contributor, contributor_id, "Contributor")
            if first_name is not None:
                contributor.first_name = first_name
            if last_name is not None:
                contributor.last_name = last_name
            if title is not None:
                contributor.title = title
            if bio is not None:
                contributor.bio = bio
            if first_name is not None or last_name is not None:
                contributor.slug = self._unique_slug(
                    session,
                    Contributor,
                    slugify(contributor.full_name),
                    exclude=contributor.id,
                )
            session.flush()
            return self._contributor_summary(contributor)

    def create_media(
        self,
        content_url: str,
        alt: str,
        *,
        contributor_id: str | None = None,
        credit: str | None = None,
    ) -> MediaRecord:
        with self._transaction() as session:
            contributor = None
            if contributor_id is not None:
                contributor = self._get(session, Contributor, contributor_id, "Contributor")
            media = Media(
                id=generate_uuid7(),
                content_url=content_url,
                alt=alt,
                contributor=contributor,
                credit=credit,
            )
            session.add(media)
            session.flush()
            return MediaRecord.from_model(media)

    def edit_media_attribution(
        self,
        media_id: str,
        *,
        alt: str | None = None,
        contributor_id: str | None = None,
        credit: str | None = None,
    ) -> MediaRecord:
        with self._transaction() as session:
            media = self._get(session, Media, media_id, "Media")
            if alt is not None:
                media.alt = alt
            if contributor_id is not None:
                media.contributor = self._get(session, Contributor, contributor_id, "Contributor")
            if credit is not None:
                media.credit = credit
            session.flush()
            return MediaRecord.from_model(media)

    def get_media(self, media_ids: Iterable[str]) -> dict[str, MediaRecord]:
        uuids = [_as_uuid(media_id, "Media") for media_id in media_ids]
        if not uuids:
            return {}
        with self._transaction() as session:
            rows = session.query(Media).filter(Media.id.in_(uuids)).all()
            return {str(media.id): MediaRecord.from_model(media) for media in rows}

    # Submissions and articles

    def _validated_body(self, session: Session, body: Any) -> tuple[ArticleBody, list[Media]]:
        parsed = validate_article_body(body)
        if parsed is None:
            raise InvalidArticleBodyError("Article body failed validation")

        media_ids = collect_media_ids(parsed)
        if not media_ids:
            return parsed, []
        try:
            uuids = [UUID(media_id) for media_id in media_ids]
        except ValueError as exc:
            raise InvalidArticleBodyError(f"Article body references malformed media id: {exc}") from exc

        media = session.query(Media).filter(Media.id.in_(uuids)).all()
        found = {str(item.id) for item in media}
        missing = [media_id for media_id in media_ids if media_id not in found]
        if missing:
            raise InvalidArticleBodyError(f"Article body references unknown media {missing}")
        return parsed, media

    def create_submission(
        self,
        headline: str,
        focus: str,
        section: str,
        body: Any,
        writer_ids: Sequence[str],
        *,
        thumbnail_id: str | None = None,
    ) -> str:
        if not headline or not headline.strip():
            raise ValueError("headline is required")
        if not focus or not focus.strip():
            raise ValueError("focus sentence is required")
        if not writer_ids:
            raise ValueError("at least one writer is required")
        try:
            section_definition = get_section(section)
        except KeyError as exc:
            raise ValueError(str(exc)) from exc
        if section_definition.hidden:
            raise ValueError(f"Section '{section}' is not accepting submissions")

        with self._transaction() as session:
            parsed, media = self._validated_body(session, body)
            writers = [self._get(session, Contributor, writer_id, "Contributor") for writer_id in writer_ids]
            thumbnail = None
            if thumbnail_id is not None:
                thumbnail = self._get(session, Media, thumbnail_id, "Media")

            submission = ArticleSubmission(
                id=generate_uuid7(),
                headline=headline.strip(),
                focus=focus.strip(),
                section=section_definition.id,
                body=parsed.to_json_dict(),
                writers=writers,
                media=media,
                thumbnail=thumbnail,
            )
            session.add(submission)
            LOGGER.info("Stored submission %s (%s)", submission.id, submission.headline)
            return str(submission.id)

    def list_submissions(self) -> list[SubmissionSummary]:
        with self._transaction() as session:
            rows = session.query(ArticleSubmission).order_by(ArticleSubmission.created_at).all()
            return [
                SubmissionSummary(
                    id=str(row.id),
                    headline=row.headline,
                    focus=row.focus,
                    section=row.section,
                    writer_ids=[str(writer.id) for writer in row.writers],
                    created_at=row.created_at,
                )
                for row in rows
            ]

    def delete_submission(self, submission_id: str) -> None:
        with self._transaction() as session:
            session.delete(self._get(session, ArticleSubmission, submission_id, "Submission"))

    def publish_submission(self, submission_id: str, *, featured: bool = False) -> str:
        """Turn a reviewed submission into a published article."""

        with self._reorder_lock, self._transaction() as session:
            if featured:
                self._lock_front_page(session)
            submission = self._get(session, ArticleSubmission, submission_id, "Submission")
            parsed, media = self._validated_body(session, submission.body)
            if featured:
                self._ensure_no_featured(session, exclude=None)

            article = Article(
                id=generate_uuid7(),
                headline=submission.headline,
                focus=submission.focus,
                slug=self._unique_slug(session, Article, slugify(submission.headline)),
                section=submission.section,
                body=parsed.to_json_dict(),
                publication_date=self._clock(),
                featured=featured,
                front_page_index=None,
                writers=list(submission.writers),
                media=media,
                thumbnail=submission.thumbnail,
            )
            session.add(article)
            session.delete(submission)
            LOGGER.info("Published submission %s as article %s (%s)", submission_id, article.id, article.slug)
            return str(article.id)

    def list_articles(self, *, section: str | None = None) -> list[ArticleSummary]:
        """Published articles, newest first."""

        with self._transaction() as session:
            query = session.query(Article)
            if section is not None:
                query = query.filter(Article.section == section)
            rows = query.order_by(Article.publication_date.desc(), Article.id.desc()).all()
            return [
                ArticleSummary(
                    id=str(row.id),
                    headline=row.headline,
                    slug=row.slug,
                    section=row.section,
                    publication_date=row.publication_date,
                    writer_ids=[str(writer.id) for writer in row.writers],
                    featured=bool(row.featured),
                    front_page_index=None if row.featured else row.front_page_index,
                )
                for row in rows
            ]

    def edit_article(
        self,
        article_id: str,
        *,
        headline: str | None = None,
        focus: str | None = None,
        section: str | None = None,
        writer_ids: Sequence[str] | None = None,
        thumbnail_id: str | None = None,
    ) -> None:
        """Update article metadata; fields left as ``None`` are unchanged.

        The slug is kept on headline edits so published links stay valid.
        """

        if headline is not None and not headline.strip():
            raise ValueError("headline must not be empty")
        if focus is not None and not focus.strip():
            raise ValueError("focus sentence must not be empty")
        if writer_ids is not None and not writer_ids:
            raise ValueError("at least one writer is required")
        if section is not None:
            try:
                section = get_section(section).id
            except KeyError as exc:
                raise ValueError(str(exc)) from exc

        with self._transaction() as session:
            article = self._get(session, Article, article_id, "Article")
            if headline is not None:
                article.headline = headline.strip()
            if focus is not None:
                article.focus = focus.strip()
            if section is not None:
                article.section = section
            if writer_ids is not None:
                article.writers = [
                    self._get(session, Contributor, writer_id, "Contributor") for writer_id in writer_ids
                ]
            if thumbnail_id is not None:
                article.thumbnail = self._get(session, Media, thumbnail_id, "Media")
            LOGGER.info("Edited article %s", article.id)

    def replace_body(self, article_id: str, body: Any) -> None:
        """Replace an article body wholesale."""

        with self._transaction() as session:
            article = self._get(session, Article, article_id, "Article")
            parsed, media = self._validated_body(session, body)
            article.body = parsed.to_json_dict()
            article.media = media

    def load_body(self, article_id: str) -> ArticleBody | None:
        """Return the stored body, or ``None`` when it no longer validates."""

        with self._transaction() as session:
            article = self._get(session, Article, article_id, "Article")
            body = validate_article_body(article.body)
            if body is None:
                LOGGER.warning("Stored body of article %s failed validation", article_id)
            return body

    def media_for_article(self, article_id: str) -> dict[str, MediaRecord]:
        with self._transaction() as session:
            article = self._get(session, Article, article_id, "Article")
            records = {str(media.id): MediaRecord.from_model(media) for media in article.media}
            if article.thumbnail is not None:
                records.setdefault(str(article.thumbnail.id), MediaRecord.from_model(article.thumbnail))
            return records

    def delete_article(self, article_id: str) -> None:
        with self._reorder_lock, self._transaction() as session:
            self._lock_front_page(session)
            article = self._get(session, Article, article_id, "Article")
            if not article.featured and article.front_page_index is not None:
                entries, by_id = self._snapshot(session, article)
                self._apply(by_id, plan_remove(entries, str(article.id)))
            session.delete(article)

    # Featured article and front page

    @staticmethod
    def _ensure_no_featured(session: Session, *, exclude: UUID | None) -> None:
        query = session.query(Article.id).filter(Article.featured.is_(True))
        if exclude is not None:
            query = query.filter(Article.id != exclude)
        current = query.first()
        if current is not None:
            raise FeaturedConflictError(f"Article {current.id} is already featured")

    def set_featured(self, article_id: str, featured: bool) -> None:
        """Feature or unfeature an article; at most one may be featured.

        A newly featured article leaves the ordinal sequence, which is compacted.
        """

        with self._reorder_lock, self._transaction() as session:
            self._lock_front_page(session)
            article = self._get(session, Article, article_id, "Article")
            if featured == bool(article.featured):
                return
            if not featured:
                article.featured = False
                return

            self._ensure_no_featured(session, exclude=article.id)
            if article.front_page_index is not None:
                entries, by_id = self._snapshot(session, article)
                self._apply(by_id, plan_remove(entries, str(article.id)))
            article.featured = True
            LOGGER.info("Article %s is now featured", article.id)

    @staticmethod
    def _snapshot(session: Session, mover: Article | None = None) -> tuple[list[FrontPageEntry], dict[str, Article]]:
        rows = (
            session.query(Article)
            .filter(or_(Article.front_page_index.isnot(None), Article.featured.is_(True)))
            .with_for_update()
            .populate_existing()
            .all()
        )
        by_id = {str(row.id): row for row in rows}
        if mover is not None:
            by_id.setdefault(str(mover.id), mover)
        entries = [
            FrontPageEntry(article_id, row.front_page_index, bool(row.featured))
            for article_id, row in by_id.items()
        ]
        return entries, by_id

    @staticmethod
    def _apply(by_id: dict[str, Article], plan: ReorderPlan) -> None:
        for article_id, index in plan.changes().items():
            by_id[article_id].front_page_index = index

    def _reorder(self, article_id: str, planner: Planner) -> ReorderPlan:
        with self._reorder_lock, self._transaction() as session:
            self._lock_front_page(session)
            article = self._get(session, Article, article_id, "Article")
            entries, by_id = self._snapshot(session, article)
            plan = planner(entries, str(article.id))
            self._apply(by_id, plan)
            if not plan.is_noop:
                LOGGER.info(
                    "Front page: article %s %s -> %s (%d shifted)",
                    plan.article_id,
                    plan.previous_index,
                    plan.target_index,
                    len(plan.shifts),
                )
            return plan

    def move_up(self, article_id: str) -> ReorderPlan:
        return self._reorder(article_id, plan_move_up)

    def move_down(self, article_id: str) -> ReorderPlan:
        return self._reorder(article_id, plan_move_down)

    def remove_from_front_page(self, article_id: str) -> ReorderPlan:
        return self._reorder(article_id, plan_remove)

    def insert_at_front(self, article_id: str) -> ReorderPlan:
        return self._reorder(article_id, plan_insert_at_front)

    def set_front_page_position(self, article_id: str, index: int | None) -> ReorderPlan:
        return self._reorder(
            article_id,
            lambda entries, target_id: plan_set_position(entries, target_id, index),
        )

    def repair_front_page(self) -> dict[str, int]:
        """Close any gaps in the front-page sequence, keeping relative order."""

        with self._reorder_lock, self._transaction() as session:
            self._lock_front_page(session)
            entries, by_id = self._snapshot(session)
            updates = compact(entries)
            for article_id, index in updates.items():
                by_id[article_id].front_page_index = index
            if updates:
                LOGGER.warning("Repaired %d front-page indices", len(updates))
            return updates

    def front_page_snapshot(self) -> list[FrontPageEntry]:
        with self._transaction() as session:
            entries, _ = self._snapshot(session)
            return entries

    def front_page_articles(self) -> list[FrontPageArticle]:
        """Featured article first, then the front page in ordinal order."""

        with self._transaction() as session:
            entries, by_id = self._snapshot(session)
            articles = []
            for entry in front_page_order(entries):
                row = by_id[entry.article_id]
                articles.append(
                    FrontPageArticle(
                        id=entry.article_id,
                        headline=row.headline,
                        slug=row.slug,
                        section=row.section,
                        featured=bool(row.featured),
                        front_page_index=None if row.featured else row.front_page_index,
                    )
                )
            return articles
