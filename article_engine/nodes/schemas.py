"""
Pydantic schemas and constants for the article generation pipeline.

These are the contracts passed between pipeline stages.
"""
import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# PIPELINE CONSTANTS
# =============================================================================

RECENT_KEYWORD_WINDOW = 5
KEYWORD_MAX_ATTEMPTS = 3
SLUG_MAX_ATTEMPTS = 100
SLUG_MAX_LENGTH = 60
MAX_RELATED_KEYWORDS = 4
MAX_TAG_CANDIDATES = 1 + MAX_RELATED_KEYWORDS
MAX_INLINE_IMAGES = 4
META_TITLE_MAX = 60
META_DESCRIPTION_MAX = 160
FAQ_SOURCE_CHARS = 3000
SUMMARY_SOURCE_CHARS = 1000
IMAGE_MAX_WIDTH = 1200
WEBP_QUALITY = 85
DEFAULT_IMAGE_SIZE = "1792x1024"
SUPPORTED_IMAGE_SIZES = ("1024x1024", "1792x1024", "1024x1792")

SOURCE_LOCALE = "ja"
SUPPORTED_LOCALES = ("ja", "en", "zh", "ko")

LOCALE_NAMES: Dict[str, str] = {
    "ja": "Japanese",
    "en": "English",
    "zh": "Simplified Chinese",
    "ko": "Korean",
}


class TextProvider(enum.Enum):
    """Which LLM backend a stage talks to."""
    REASONING = "reasoning"   # search-grounded, recency-biased (xAI Grok)
    GENERAL = "general"       # instruction following (OpenAI)


class UsageContext(str, enum.Enum):
    FEATURED = "featured-image"
    INLINE = "inline-image"


# =============================================================================
# REQUEST / RESULT
# =============================================================================

class GenerationRequest(BaseModel):
    """Input to one pipeline run."""
    model_config = ConfigDict(frozen=True)

    media_id: str = Field(min_length=1, description="Tenant identifier")
    category_id: str = Field(min_length=1, description="Category the article is filed under")
    writer_id: str = Field(min_length=1, description="Writer assigned as byline")
    image_pattern_id: str = Field(min_length=1, description="Image style pattern for all generated images")

    @field_validator("media_id", "category_id", "writer_id", "image_pattern_id")
    @classmethod
    def strip_ids(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be blank")
        return v


class PipelineResult(BaseModel):
    article_id: str
    title: str


# =============================================================================
# STAGE CONTRACTS
# =============================================================================

class GenerationConfig(BaseModel):
    """Documents loaded in the FetchConfig stage."""
    category: Dict[str, Any]
    writer: Dict[str, Any]
    image_pattern: Dict[str, Any]

    @property
    def image_style_prompt(self) -> str:
        return (self.image_pattern.get("prompt") or "").strip()

    @property
    def image_size(self) -> str:
        size = self.image_pattern.get("size") or DEFAULT_IMAGE_SIZE
        return size if size in SUPPORTED_IMAGE_SIZES else DEFAULT_IMAGE_SIZE


class KeywordCandidate(BaseModel):
    keyword: str = ""
    recent_keywords: List[str] = Field(default_factory=list, description="Up to 5 most recent keywords for the tenant+category")

    @property
    def is_unique(self) -> bool:
        return bool(self.keyword) and self.keyword not in self.recent_keywords


class ResearchBrief(BaseModel):
    target_audience: str = ""
    explicit_needs: str = ""
    latent_needs: str = ""
    article_goal: str = ""
    content_requirements: str = ""
    related_keywords: List[str] = Field(default_factory=list, max_length=MAX_RELATED_KEYWORDS)


class ArticleDraft(BaseModel):
    """Accumulated over the Title..Body stages; body is mutated by InlineImages."""
    title: str = ""
    outline: str = ""
    introduction: str = ""
    body: str = ""


class TagResolution(BaseModel):
    name: str
    tag_id: str
    slug: str
    created: bool = False


class ImageAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset_id: str
    url: str
    storage_path: str
    size: int
    mime_type: str = "image/webp"
    usage_context: UsageContext


class FAQEntry(BaseModel):
    question: str
    answer: str


class ArticleMetadata(BaseModel):
    slug: str
    meta_title: str
    meta_description: str
    plain_text: str
    ai_summary: str = ""


# =============================================================================
# PARSE RESULTS
# =============================================================================

class Parsed(BaseModel):
    """Every requested label matched."""
    fields: Dict[str, str]

    @property
    def missing(self) -> List[str]:
        return []


class PartiallyParsed(BaseModel):
    """Some labels did not match; their fields are empty strings."""
    fields: Dict[str, str]
    missing: List[str]


ParseResult = Union[Parsed, PartiallyParsed]


class PersistedArticle(BaseModel):
    """Record written by the Persist stage."""
    media_id: str
    title: str
    content: str
    excerpt: str
    slug: str
    meta_title: str
    meta_description: str
    ai_summary: str = ""
    faqs: List[FAQEntry] = Field(default_factory=list)
    category_ids: List[str]
    tag_ids: List[str]
    writer_id: str
    featured_image: str
    featured_image_alt: str
    selected_keyword: str
    related_keywords: List[str] = Field(default_factory=list)
    target_audience: str = ""
    explicit_needs: str = ""
    latent_needs: str = ""
    article_goal: str = ""
    content_requirements: str = ""
    published_at: datetime
    is_published: bool = False

    def to_record(self) -> Dict[str, Any]:
        """Flatten into content store fields, mirroring *_ja and forcing draft state."""
        data = self.model_dump(exclude={"faqs"})
        faqs = [faq.model_dump() for faq in self.faqs]
        data.update(
            title_ja=self.title,
            content_ja=self.content,
            excerpt_ja=self.excerpt,
            meta_title_ja=self.meta_title,
            meta_description_ja=self.meta_description,
            ai_summary_ja=self.ai_summary,
            faqs_ja=faqs,
            is_featured=False,
            view_count=0,
            like_count=0,
        )
        data["is_published"] = False
        return data
