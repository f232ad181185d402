from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.sql import func
import uuid_utils
import uuid


def generate_uuid7():
    """Generate UUIDv7 and convert to standard Python UUID"""
    uuid7_obj = uuid_utils.uuid7()
    return uuid.UUID(str(uuid7_obj))

Base = declarative_base()

# Article bodies are JSONB on PostgreSQL and plain JSON elsewhere (SQLite in tests)
BodyType = JSON().with_variant(JSONB(), "postgresql")


article_writers = Table(
    'article_writers',
    Base.metadata,
    Column('article_id', Uuid, ForeignKey('articles.id', ondelete='CASCADE'), primary_key=True),
    Column('contributor_id', Uuid, ForeignKey('contributors.id', ondelete='CASCADE'), primary_key=True),
)

article_media = Table(
    'article_media',
    Base.metadata,
    Column('article_id', Uuid, ForeignKey('articles.id', ondelete='CASCADE'), primary_key=True),
    Column('media_id', Uuid, ForeignKey('media.id', ondelete='CASCADE'), primary_key=True),
)

submission_writers = Table(
    'submission_writers',
    Base.metadata,
    Column('submission_id', Uuid, ForeignKey('article_submissions.id', ondelete='CASCADE'), primary_key=True),
    Column('contributor_id', Uuid, ForeignKey('contributors.id', ondelete='CASCADE'), primary_key=True),
)

submission_media = Table(
    'submission_media',
    Base.metadata,
    Column('submission_id', Uuid, ForeignKey('article_submissions.id', ondelete='CASCADE'), primary_key=True),
    Column('media_id', Uuid, ForeignKey('media.id', ondelete='CASCADE'), primary_key=True),
)


class Contributor(Base):
    __tablename__ = 'contributors'

    id = Column(Uuid, primary_key=True, default=generate_uuid7)
    first_name = Column(String(200), nullable=False)
    last_name = Column(String(200), nullable=False)
    slug = Column(String(400), unique=True, nullable=False)
    title = Column(String(200))
    bio = Column(Text)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    media = relationship("Media", back_populates="contributor")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self):
        return f"<Contributor(id={self.id}, name='{self.full_name}')>"


class Media(Base):
    __tablename__ = 'media'

    id = Column(Uuid, primary_key=True, default=generate_uuid7)
    content_url = Column(String(2000), nullable=False)
    alt = Column(Text, nullable=False, default="")
    contributor_id = Column(Uuid, ForeignKey('contributors.id', ondelete='SET NULL'))
    # Free-text attribution for assets whose creator is not a contributor
    credit = Column(String(500))
    created_at = Column(DateTime, default=func.now(), nullable=False)

    contributor = relationship("Contributor", back_populates="media")

    @property
    def attribution(self) -> str | None:
        if self.contributor is not None:
            return self.contributor.full_name
        return self.credit

    def __repr__(self):
        return f"<Media(id={self.id}, url='{self.content_url}')>"


class ArticleSubmission(Base):
    __tablename__ = 'article_submissions'

    id = Column(Uuid, primary_key=True, default=generate_uuid7)
    headline = Column(String(500), nullable=False)
    focus = Column(Text, nullable=False)
    section = Column(String(50), nullable=False, index=True)
    body = Column(BodyType, nullable=False)
    thumbnail_id = Column(Uuid, ForeignKey('media.id', ondelete='SET NULL'))
    created_at = Column(DateTime, default=func.now(), nullable=False)

    writers = relationship("Contributor", secondary=submission_writers)
    media = relationship("Media", secondary=submission_media)
    thumbnail = relationship("Media", foreign_keys=[thumbnail_id])

    def __repr__(self):
        return f"<ArticleSubmission(id={self.id}, headline='{self.headline[:30]}...')>"


class Article(Base):
    __tablename__ = 'articles'

    id = Column(Uuid, primary_key=True, default=generate_uuid7)
    headline = Column(String(500), nullable=False)
    focus = Column(Text, nullable=False)
    slug = Column(String(600), unique=True, nullable=False)
    section = Column(String(50), nullable=False, index=True)
    body = Column(BodyType, nullable=False)
    publication_date = Column(DateTime, default=func.now(), nullable=False, index=True)
    featured = Column(Boolean, default=False, nullable=False)
    # Dense 0..k-1 over front-page articles; the featured article carries none
    front_page_index = Column(Integer)
    thumbnail_id = Column(Uuid, ForeignKey('media.id', ondelete='SET NULL'))
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    writers = relationship("Contributor", secondary=article_writers)
    media = relationship("Media", secondary=article_media)
    thumbnail = relationship("Media", foreign_keys=[thumbnail_id])

    __table_args__ = (
        Index('ix_articles_featured_front_page', 'featured', 'front_page_index'),
        # At most one featured article
        Index(
            'uq_articles_single_featured',
            'featured',
            unique=True,
            postgresql_where=featured.is_(True),
            sqlite_where=featured.is_(True),
        ),
    )

    def __repr__(self):
        return (
            f"<Article(id={self.id}, section='{self.section}', headline='{self.headline[:30]}...', "
            f"front_page_index={self.front_page_index})>"
        )
