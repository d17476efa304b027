"""
Tag resolution for generated articles.

Candidates are the selected keyword plus the related keywords from research.
Each is matched case-insensitively against the tenant's tags; misses create
a new tag with a Latin slug and per-locale names. Failures while naming a
new tag degrade (fallback slug, copied name) and never abort creation.
"""
import asyncio
from typing import Dict, List, Sequence

import structlog

from ..shared.errors import LLMError
from .db_ops import ContentStore, load_tenant_tags
from .llm import TextGenerationClient
from .schemas import MAX_TAG_CANDIDATES, SOURCE_LOCALE, SUPPORTED_LOCALES, TagResolution
from .slugs import has_non_latin, naive_latin_slug, sanitize_slug, tag_slug

logger = structlog.get_logger()


def tag_candidates(keyword: str, related_keywords: Sequence[str]) -> List[str]:
    names = []
    for name in [keyword, *related_keywords]:
        name = (name or "").strip()
        if name:
            names.append(name)
    return names[:MAX_TAG_CANDIDATES]


async def make_tag_slug(text_client: TextGenerationClient, name: str) -> str:
    """
    Slug for a new tag.

    Latin names are slugged directly. Names in Japanese, Chinese or Korean ask
    the model for a short English slug and fall back to ASCII folding.
    """
    if not has_non_latin(name):
        return sanitize_slug(tag_slug(name)) or naive_latin_slug(name)

    try:
        suggestion = sanitize_slug(await text_client.suggest_latin_slug(name))
    except LLMError as e:
        logger.warning("tag_slug_suggestion_failed", name=name, error=str(e))
        suggestion = ""
    if suggestion:
        return "-".join(suggestion.split("-")[:3])
    return naive_latin_slug(name)


async def translate_tag_name(text_client: TextGenerationClient, name: str) -> Dict[str, str]:
    """name_<locale> for every supported locale; failed locales copy the name."""
    targets = [locale for locale in SUPPORTED_LOCALES if locale != SOURCE_LOCALE]
    results = await asyncio.gather(
        *(text_client.translate_text(name, locale, context="tag name") for locale in targets),
        return_exceptions=True,
    )

    names = {f"name_{SOURCE_LOCALE}": name}
    for locale, result in zip(targets, results):
        if isinstance(result, LLMError):
            logger.warning("tag_translation_failed", name=name, locale=locale, error=str(result))
            result = name
        elif isinstance(result, BaseException):
            raise result
        names[f"name_{locale}"] = (result or "").strip() or name
    return names


async def resolve_tags(
    store: ContentStore,
    text_client: TextGenerationClient,
    media_id: str,
    keyword: str,
    related_keywords: Sequence[str],
) -> List[TagResolution]:
    """
    Resolve up to 5 candidate names to tag ids, creating missing tags.

    Tenant tags are loaded once. New tags join the in-memory index so a name
    repeated within the pass resolves to the same id.
    """
    existing = await load_tenant_tags(store, media_id)
    by_name: Dict[str, TagResolution] = {}
    for tag in existing:
        key = (tag.get("name") or "").strip().casefold()
        if key and key not in by_name:
            by_name[key] = TagResolution(name=tag["name"], tag_id=tag["id"], slug=tag.get("slug") or "")

    resolutions: List[TagResolution] = []
    for name in tag_candidates(keyword, related_keywords):
        key = name.casefold()
        if key in by_name:
            resolution = by_name[key]
            logger.info("tag_reused", name=name, tag_id=resolution.tag_id)
        else:
            slug = await make_tag_slug(text_client, name)
            locale_names = await translate_tag_name(text_client, name)
            tag_id = await store.create("tags", {
                "media_id": media_id,
                "name": name,
                "slug": slug,
                **locale_names,
            })
            resolution = TagResolution(name=name, tag_id=tag_id, slug=slug, created=True)
            by_name[key] = resolution
            logger.info("tag_created", name=name, tag_id=tag_id, slug=slug)
        resolutions.append(resolution)

    return resolutions


def unique_tag_ids(resolutions: Sequence[TagResolution]) -> List[str]:
    seen = []
    for resolution in resolutions:
        if resolution.tag_id not in seen:
            seen.append(resolution.tag_id)
    return seen
