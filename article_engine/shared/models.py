"""
Database models for the article engine content store.

Every table is scoped to a tenant through media_id:
- categories, writers, image_prompt_patterns: per-tenant generation config
- tags: tenant tag set with per-locale names
- media_library: registered image assets
- articles: generated (always unpublished) articles
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Index, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base


def utc_now():
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


# JSONB on postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

Base = declarative_base()


class Category(Base):
    """Article category. Generated articles are filed under exactly one."""
    __tablename__ = "categories"

    id = Column(String(64), primary_key=True, default=new_id)
    media_id = Column(String(64), nullable=False, index=True)
    name = Column(Text, nullable=False)
    slug = Column(String(255))
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Writer(Base):
    """Byline assigned to generated articles."""
    __tablename__ = "writers"

    id = Column(String(64), primary_key=True, default=new_id)
    media_id = Column(String(64), nullable=False, index=True)
    name = Column(Text, nullable=False)
    bio = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class ImagePromptPattern(Base):
    """
    Tenant image style.

    prompt is prepended to every featured and inline image prompt; size is
    passed straight to the image provider.
    """
    __tablename__ = "image_prompt_patterns"

    id = Column(String(64), primary_key=True, default=new_id)
    media_id = Column(String(64), nullable=False, index=True)
    name = Column(Text, nullable=False)
    prompt = Column(Text, nullable=False, default="")
    size = Column(String(20), default="1792x1024")
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Tag(Base):
    """Tenant tag. At most one row per case-insensitive name within a run."""
    __tablename__ = "tags"

    id = Column(String(64), primary_key=True, default=new_id)
    media_id = Column(String(64), nullable=False, index=True)
    name = Column(Text, nullable=False)
    name_ja = Column(Text)
    name_en = Column(Text)
    name_zh = Column(Text)
    name_ko = Column(Text)
    slug = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_tags_media_slug", media_id, slug),
    )


class MediaAsset(Base):
    """Stored, publicly readable image registered in the media library."""
    __tablename__ = "media_library"

    id = Column(String(64), primary_key=True, default=new_id)
    media_id = Column(String(64), nullable=False, index=True)
    name = Column(Text, nullable=False)           # storage path
    original_name = Column(Text)
    url = Column(Text, nullable=False)
    type = Column(String(20), default="image")
    mime_type = Column(String(100))
    size = Column(Integer)
    usage_context = Column(String(50))           # 'featured-image', 'inline-image'
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Article(Base):
    """
    Generated article.

    Research brief fields are kept for admin display. The *_ja columns mirror
    the primary fields because tenants author in Japanese.
    """
    __tablename__ = "articles"

    id = Column(String(64), primary_key=True, default=new_id)
    media_id = Column(String(64), nullable=False, index=True)

    # Content
    title = Column(Text, nullable=False)
    title_ja = Column(Text)
    content = Column(Text, nullable=False)
    content_ja = Column(Text)
    excerpt = Column(Text)
    excerpt_ja = Column(Text)
    slug = Column(String(255), nullable=False)

    # SEO
    meta_title = Column(Text)
    meta_title_ja = Column(Text)
    meta_description = Column(Text)
    meta_description_ja = Column(Text)
    ai_summary = Column(Text)
    ai_summary_ja = Column(Text)
    faqs_ja = Column(JSONType, default=list)

    # Relations (document-style id arrays)
    category_ids = Column(JSONType, default=list)
    tag_ids = Column(JSONType, default=list)
    writer_id = Column(String(64))

    # Images
    featured_image = Column(Text)
    featured_image_alt = Column(Text)

    # Flags and counters
    is_published = Column(Boolean, nullable=False, default=False)
    is_featured = Column(Boolean, nullable=False, default=False)
    view_count = Column(Integer, default=0)
    like_count = Column(Integer, default=0)

    # Research brief
    selected_keyword = Column(Text)
    related_keywords = Column(JSONType, default=list)
    target_audience = Column(Text)
    explicit_needs = Column(Text)
    latent_needs = Column(Text)
    article_goal = Column(Text)
    content_requirements = Column(Text)

    # Timestamps
    published_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_articles_media_slug", media_id, slug),
        Index("idx_articles_media_created", media_id, created_at.desc()),
    )
