"""
URL slug helpers for articles and tags.
"""
import re
import time
import unicodedata
import uuid

from .retry import retry_until
from .schemas import SLUG_MAX_ATTEMPTS, SLUG_MAX_LENGTH


def base_slug(title: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Lowercase, drop non-word characters, hyphenate whitespace, truncate.

    Word characters are ASCII only, so an all-Japanese title yields an empty
    base and falls back to a random article-<hex> slug.
    """
    slug = (title or "").lower()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-{2,}", "-", slug)
    slug = slug[:max_length].strip("-")
    return slug or f"article-{uuid.uuid4().hex[:8]}"


async def unique_slug(slug_exists, base: str, max_attempts: int = SLUG_MAX_ATTEMPTS) -> str:
    """
    Probe base, base-1, base-2, ... until slug_exists(candidate) is false.

    slug_exists is an async predicate bound to the tenant's article slugs.
    """

    async def produce(attempt: int) -> str:
        return base if attempt == 0 else f"{base}-{attempt}"

    async def accept(candidate: str) -> bool:
        return not await slug_exists(candidate)

    return await retry_until(produce, accept, max_attempts=max_attempts, label="slug")


def tag_slug(name: str) -> str:
    return re.sub(r"[\s/]+", "-", name.strip().lower())


def has_non_latin(text: str) -> bool:
    """True when any letter is outside the Latin script (kana, CJK, Hangul, Cyrillic, Thai, ...)."""
    return any(ch.isalpha() and "LATIN" not in unicodedata.name(ch, "") for ch in text or "")


def sanitize_slug(text: str) -> str:
    """Keep [a-z0-9-], collapse hyphen runs, trim hyphens."""
    slug = re.sub(r"[^a-z0-9-]", "-", (text or "").strip().lower())
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def naive_latin_slug(name: str) -> str:
    """ASCII-fold name into a slug; tag-<unix ms> when nothing survives."""
    folded = unicodedata.normalize("NFKD", name or "").encode("ascii", "ignore").decode("ascii")
    return sanitize_slug(folded) or f"tag-{int(time.time() * 1000)}"
