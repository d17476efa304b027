"""
Advanced article generation pipeline.

One fixed, forward-only sequence of stages. Each stage's output feeds the next
stage's prompt, so stages run strictly in order:

    FetchConfig -> SelectKeyword -> Research -> Title -> Outline
    -> Introduction -> Body -> TagResolution -> FeaturedImage -> AssignWriter
    -> Metadata -> FAQ -> InlineImages -> Persist

The only durable writes before Persist are new tags and media library rows.
They are not rolled back when a later stage fails.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError

from ..shared.errors import (
    ConfigErrorReason, ConfigurationError, LLMError, PersistenceError,
    RequiredAssetError,
)
from ..shared.storage import LocalObjectStorage, ObjectStorage
from .db_ops import (
    ContentStore, fetch_recent_keywords, load_generation_config,
    unique_article_slug,
)
from .images import ImageGenerationClient, ImageMaterializer
from .llm import TextGenerationClient, current_date_label
from .parsers import (
    clean_body_html, html_to_plain_text, parse_faq, parse_keyword,
    parse_research, parse_title, strip_code_fences,
)
from .prompts import (
    BODY_PROMPT, FAQ_PROMPT, FEATURED_IMAGE_SUFFIX, INLINE_IMAGE_SUFFIX,
    INTRODUCTION_PROMPT, KEYWORD_PROMPT, OUTLINE_PROMPT, RESEARCH_PROMPT,
    TITLE_PROMPT,
)
from .retry import retry_until
from .schemas import (
    ArticleDraft, ArticleMetadata, FAQEntry, FAQ_SOURCE_CHARS,
    GenerationConfig, GenerationRequest, ImageAsset, KEYWORD_MAX_ATTEMPTS,
    KeywordCandidate, MAX_INLINE_IMAGES, META_DESCRIPTION_MAX, META_TITLE_MAX,
    PersistedArticle, PipelineResult, RECENT_KEYWORD_WINDOW, ResearchBrief,
    SOURCE_LOCALE, SUMMARY_SOURCE_CHARS, TagResolution, TextProvider,
    UsageContext,
)
from .stitch import build_figure, find_h2_slots, insert_fragments
from .tags import resolve_tags, unique_tag_ids

logger = structlog.get_logger()

STAGES = (
    "fetch_config",
    "select_keyword",
    "research",
    "title",
    "outline",
    "introduction",
    "body",
    "tag_resolution",
    "featured_image",
    "assign_writer",
    "metadata",
    "faq",
    "inline_images",
    "persist",
)


def truncate_meta_title(title: str, limit: int = META_TITLE_MAX) -> str:
    if len(title) <= limit:
        return title
    return title[: limit - 3] + "..."


def _bullet_list(values: List[str]) -> str:
    return "\n".join(f"- {v}" for v in values) if values else "(none)"


class ArticlePipeline:
    """
    Runs one generation request end to end.

    Collaborators are injected so tests can stub providers; generate_article()
    wires the production defaults from the node context.
    """

    def __init__(
        self,
        ctx,
        store: ContentStore,
        text_client: TextGenerationClient,
        image_client: ImageGenerationClient,
        materializer: ImageMaterializer,
        inline_image_concurrency: int = 1,
    ):
        self.ctx = ctx
        self.store = store
        self.text = text_client
        self.images = image_client
        self.materializer = materializer
        self.inline_image_concurrency = max(1, inline_image_concurrency)

    def _progress(self, stage: str) -> None:
        index = STAGES.index(stage)
        self.ctx.report_progress(int(index * 100 / len(STAGES)), f"Stage {index}: {stage}")

    async def _general(self, user_prompt: str, *, max_tokens: int, label: str, temperature: float = 0.7) -> str:
        return await self.text.complete(
            TextProvider.GENERAL,
            self.text.system_prompt(TextProvider.GENERAL),
            user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            label=label,
        )

    async def _reasoning(self, user_prompt: str, *, max_tokens: int, label: str, temperature: float) -> str:
        return await self.text.complete(
            TextProvider.REASONING,
            self.text.system_prompt(TextProvider.REASONING),
            user_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            label=label,
        )

    # =========================================================================
    # STAGES
    # =========================================================================

    async def fetch_config(self, request: GenerationRequest) -> GenerationConfig:
        """Stage 0: referenced documents and credentials, before any provider call."""
        self._progress("fetch_config")
        missing = []
        if not (self.ctx.get_secret("XAI_API_KEY") or self.ctx.get_secret("GROK_API_KEY")):
            missing.append("XAI_API_KEY")
        if not self.ctx.get_secret("OPENAI_API_KEY"):
            missing.append("OPENAI_API_KEY")
        if missing:
            raise ConfigurationError(ConfigErrorReason.MISSING_CREDENTIALS, ", ".join(missing))

        config = await load_generation_config(self.store, request)
        if not config.image_style_prompt:
            self.ctx.warning("Image pattern has no prompt - images will have no style guidance")
        return config

    async def select_keyword(self, request: GenerationRequest, config: GenerationConfig) -> KeywordCandidate:
        """Stage 1: a keyword not used by the tenant's recent articles in this category."""
        self._progress("select_keyword")
        recent = await fetch_recent_keywords(
            self.store, request.media_id, request.category_id, limit=RECENT_KEYWORD_WINDOW,
        )

        async def produce(attempt: int) -> KeywordCandidate:
            prompt = KEYWORD_PROMPT.format(
                category_name=config.category.get("name", ""),
                category_description=config.category.get("description") or "",
                current_date=current_date_label(),
                avoid_keywords=_bullet_list(recent),
            )
            raw = await self._reasoning(prompt, max_tokens=200, temperature=0.8, label="keyword")
            return KeywordCandidate(keyword=parse_keyword(raw).fields["keyword"], recent_keywords=recent)

        candidate = await retry_until(
            produce,
            lambda c: c.is_unique,
            max_attempts=KEYWORD_MAX_ATTEMPTS,
            label="keyword",
        )
        logger.info("keyword_selected", keyword=candidate.keyword, recent_count=len(recent))
        return candidate

    async def research(self, keyword: str) -> ResearchBrief:
        """Stage 2: persona, needs, goal, requirements, related keywords."""
        self._progress("research")
        raw = await self._reasoning(
            RESEARCH_PROMPT.format(keyword=keyword, current_date=current_date_label()),
            max_tokens=2000,
            temperature=0.7,
            label="research",
        )
        brief, result = parse_research(raw)
        if result.missing:
            logger.warning("research_partially_parsed", missing=result.missing)
            self.ctx.warning(f"Research brief missing fields: {', '.join(result.missing)}")
        logger.info("research_completed", related_keywords=brief.related_keywords)
        return brief

    async def write_title(self, keyword: str, brief: ResearchBrief) -> str:
        """Stage 3: falls back to the keyword when no title line is found."""
        self._progress("title")
        raw = await self._general(
            TITLE_PROMPT.format(
                keyword=keyword,
                target_audience=brief.target_audience,
                explicit_needs=brief.explicit_needs,
            ),
            max_tokens=200,
            label="title",
        )
        title = parse_title(raw).fields["title"]
        if not title:
            logger.warning("title_fallback_to_keyword", keyword=keyword)
            title = keyword
        logger.info("title_created", title=title)
        return title

    async def write_outline(self, keyword: str, title: str, brief: ResearchBrief) -> str:
        """Stage 4."""
        self._progress("outline")
        raw = await self._general(
            OUTLINE_PROMPT.format(
                title=title,
                keyword=keyword,
                target_audience=brief.target_audience,
                explicit_needs=brief.explicit_needs,
                latent_needs=brief.latent_needs,
                article_goal=brief.article_goal,
                content_requirements=brief.content_requirements,
                related_keywords=", ".join(brief.related_keywords),
            ),
            max_tokens=1000,
            label="outline",
        )
        return strip_code_fences(raw)

    async def write_introduction(self, keyword: str, draft: ArticleDraft, brief: ResearchBrief) -> str:
        """Stage 5."""
        self._progress("introduction")
        raw = await self._general(
            INTRODUCTION_PROMPT.format(
                title=draft.title,
                keyword=keyword,
                target_audience=brief.target_audience,
                outline=draft.outline,
            ),
            max_tokens=500,
            label="introduction",
        )
        return strip_code_fences(raw)

    async def write_body(self, keyword: str, draft: ArticleDraft, brief: ResearchBrief) -> str:
        """Stage 6: body is the introduction followed by the cleaned main text."""
        self._progress("body")
        raw = await self._general(
            BODY_PROMPT.format(
                title=draft.title,
                keyword=keyword,
                target_audience=brief.target_audience,
                explicit_needs=brief.explicit_needs,
                latent_needs=brief.latent_needs,
                content_requirements=brief.content_requirements,
                related_keywords=", ".join(brief.related_keywords),
                outline=draft.outline,
            ),
            max_tokens=10000,
            label="body",
        )
        main = clean_body_html(raw)
        body = f"{draft.introduction}\n{main}"
        logger.info("body_created", chars=len(body), h2_count=len(find_h2_slots(body)))
        return body

    async def resolve_tags(self, request: GenerationRequest, keyword: str, brief: ResearchBrief) -> List[TagResolution]:
        """Stage 7."""
        self._progress("tag_resolution")
        resolutions = await resolve_tags(
            self.store, self.text, request.media_id, keyword, brief.related_keywords,
        )
        logger.info(
            "tags_resolved",
            count=len(resolutions),
            created=sum(1 for r in resolutions if r.created),
        )
        return resolutions

    async def _image_for(
        self,
        request: GenerationRequest,
        config: GenerationConfig,
        prompt_suffix: str,
        usage_context: UsageContext,
        original_name: str,
    ) -> ImageAsset:
        prompt = "\n\n".join(p for p in (config.image_style_prompt, prompt_suffix) if p)
        improved = await self.text.improve_image_prompt(prompt)
        temporary_url = await self.images.generate_image(improved, config.image_size)
        return await self.materializer.materialize(
            temporary_url, request.media_id, usage_context, original_name=original_name,
        )

    async def featured_image(self, request: GenerationRequest, config: GenerationConfig, title: str) -> ImageAsset:
        """Stage 8: required; any failure aborts the run."""
        self._progress("featured_image")
        try:
            asset = await self._image_for(
                request,
                config,
                FEATURED_IMAGE_SUFFIX.format(title=title),
                UsageContext.FEATURED,
                original_name=f"featured-{title}.webp",
            )
        except Exception as e:
            logger.error("featured_image_failed", error=str(e), error_type=type(e).__name__)
            raise RequiredAssetError(f"Featured image could not be produced: {e}") from e
        logger.info("featured_image_created", url=asset.url)
        return asset

    def assign_writer(self, config: GenerationConfig) -> str:
        """Stage 9."""
        self._progress("assign_writer")
        writer_id = config.writer["id"]
        logger.info("writer_assigned", writer_id=writer_id, writer_name=config.writer.get("name"))
        return writer_id

    async def build_metadata(self, request: GenerationRequest, draft: ArticleDraft) -> ArticleMetadata:
        """Stage 10: slug, meta title/description and a best-effort summary."""
        self._progress("metadata")
        plain_text = html_to_plain_text(draft.body)
        slug = await unique_article_slug(self.store, request.media_id, draft.title)

        try:
            ai_summary = await self.text.generate_summary(plain_text[:SUMMARY_SOURCE_CHARS], SOURCE_LOCALE)
        except LLMError as e:
            logger.warning("summary_generation_failed", error=str(e))
            ai_summary = ""

        metadata = ArticleMetadata(
            slug=slug,
            meta_title=truncate_meta_title(draft.title),
            meta_description=plain_text[:META_DESCRIPTION_MAX],
            plain_text=plain_text,
            ai_summary=ai_summary,
        )
        logger.info("metadata_created", slug=slug, meta_title=metadata.meta_title)
        return metadata

    async def write_faq(self, title: str, plain_text: str) -> List[FAQEntry]:
        """Stage 11: unparseable output gives an empty FAQ, never an error."""
        self._progress("faq")
        raw = await self._general(
            FAQ_PROMPT.format(title=title, article_text=plain_text[:FAQ_SOURCE_CHARS]),
            max_tokens=1500,
            label="faq",
        )
        faqs = parse_faq(raw)
        if not faqs:
            logger.warning("faq_not_parsed", response_chars=len(raw))
        logger.info("faq_created", count=len(faqs))
        return faqs

    async def inline_images(self, request: GenerationRequest, config: GenerationConfig, draft: ArticleDraft) -> str:
        """
        Stage 12: figures after the first MAX_INLINE_IMAGES <h2> headings.

        Images may be generated concurrently. Each failure is logged and
        skipped. Insertion happens once, highest offset first.
        """
        self._progress("inline_images")
        slots = find_h2_slots(draft.body)[:MAX_INLINE_IMAGES]
        if not slots:
            logger.info("inline_images_skipped", reason="no_h2_headings")
            return draft.body

        semaphore = asyncio.Semaphore(self.inline_image_concurrency)

        async def generate(slot):
            async with semaphore:
                try:
                    asset = await self._image_for(
                        request,
                        config,
                        INLINE_IMAGE_SUFFIX.format(heading=slot.text, title=draft.title),
                        UsageContext.INLINE,
                        original_name=f"inline-{draft.title}-{slot.index + 1}.webp",
                    )
                except Exception as e:
                    logger.warning(
                        "inline_image_failed",
                        heading=slot.text,
                        index=slot.index,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return None
                return slot.end, build_figure(asset.url, f"{draft.title} - {slot.text}")

        results = await asyncio.gather(*(generate(slot) for slot in slots))
        fragments = [r for r in results if r is not None]
        body = insert_fragments(draft.body, fragments)
        logger.info("inline_images_inserted", requested=len(slots), inserted=len(fragments))
        return body

    async def persist(self, article: PersistedArticle) -> str:
        """Stage 13: one atomic create, always unpublished."""
        self._progress("persist")
        try:
            article_id = await self.store.create("articles", article.to_record())
        except Exception as e:
            logger.error("article_persist_failed", error=str(e), error_type=type(e).__name__)
            raise PersistenceError(f"Article could not be saved: {e}") from e
        logger.info("article_persisted", article_id=article_id, slug=article.slug)
        return article_id

    # =========================================================================
    # RUN
    # =========================================================================

    async def generate(self, request: GenerationRequest) -> PipelineResult:
        self.ctx.report_input(request.model_dump())
        log = logger.bind(media_id=request.media_id, category_id=request.category_id)
        log.info("article_generation_started")

        config = await self.fetch_config(request)
        candidate = await self.select_keyword(request, config)
        keyword = candidate.keyword
        brief = await self.research(keyword)

        draft = ArticleDraft()
        draft.title = await self.write_title(keyword, brief)
        draft.outline = await self.write_outline(keyword, draft.title, brief)
        draft.introduction = await self.write_introduction(keyword, draft, brief)
        draft.body = await self.write_body(keyword, draft, brief)

        tags = await self.resolve_tags(request, keyword, brief)
        featured = await self.featured_image(request, config, draft.title)
        writer_id = self.assign_writer(config)
        metadata = await self.build_metadata(request, draft)
        faqs = await self.write_faq(draft.title, metadata.plain_text)
        draft.body = await self.inline_images(request, config, draft)

        now = datetime.now(timezone.utc)
        article = PersistedArticle(
            media_id=request.media_id,
            title=draft.title,
            content=draft.body,
            excerpt=metadata.meta_description,
            slug=metadata.slug,
            meta_title=metadata.meta_title,
            meta_description=metadata.meta_description,
            ai_summary=metadata.ai_summary,
            faqs=faqs,
            category_ids=[request.category_id],
            tag_ids=unique_tag_ids(tags),
            writer_id=writer_id,
            featured_image=featured.url,
            featured_image_alt=draft.title,
            selected_keyword=keyword,
            related_keywords=brief.related_keywords,
            target_audience=brief.target_audience,
            explicit_needs=brief.explicit_needs,
            latent_needs=brief.latent_needs,
            article_goal=brief.article_goal,
            content_requirements=brief.content_requirements,
            published_at=now,
        )
        article_id = await self.persist(article)

        result = PipelineResult(article_id=article_id, title=draft.title)
        self.ctx.report_progress(100, "Article saved as draft")
        self.ctx.report_output({
            "article_id": article_id,
            "title": draft.title,
            "slug": metadata.slug,
            "keyword": keyword,
            "tag_count": len(article.tag_ids),
            "faq_count": len(faqs),
            "status": "success",
        })
        log.info("article_generation_completed", article_id=article_id, title=draft.title)
        return result


async def generate_article(
    ctx,
    request: Union[GenerationRequest, Dict[str, Any]],
    *,
    store: Optional[ContentStore] = None,
    text_client: Optional[TextGenerationClient] = None,
    image_client: Optional[ImageGenerationClient] = None,
    storage: Optional[ObjectStorage] = None,
    materializer: Optional[ImageMaterializer] = None,
) -> PipelineResult:
    """
    Generate one unpublished article for the request.

    Manual and scheduled callers both use this entry point. Raises a
    PipelineError subclass (or the provider error that stopped a required
    stage) on failure; there is no partial result. A raw request dict that
    fails validation raises ConfigurationError(INVALID_REQUEST).
    """
    if not isinstance(request, GenerationRequest):
        try:
            request = GenerationRequest.model_validate(request)
        except ValidationError as e:
            logger.error("invalid_generation_request", errors=e.error_count())
            ctx.report_output({"status": "error", "error": str(e), "error_type": "ConfigurationError"})
            raise ConfigurationError(ConfigErrorReason.INVALID_REQUEST, str(e)) from e

    store = store or ContentStore()
    if materializer is None:
        storage = storage or LocalObjectStorage(
            ctx.get_secret("STORAGE_DIR") or "./storage",
            ctx.get_secret("STORAGE_PUBLIC_URL") or "http://localhost:8000/storage",
        )
        materializer = ImageMaterializer(store, storage)

    pipeline = ArticlePipeline(
        ctx,
        store=store,
        text_client=text_client or TextGenerationClient.from_context(ctx),
        image_client=image_client or ImageGenerationClient.from_context(ctx),
        materializer=materializer,
        inline_image_concurrency=int(ctx.get_secret("INLINE_IMAGE_CONCURRENCY") or 1),
    )
    try:
        return await pipeline.generate(request)
    except Exception as e:
        logger.error(
            "article_generation_failed",
            media_id=request.media_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        ctx.report_output({"status": "error", "error": str(e), "error_type": type(e).__name__})
        raise
