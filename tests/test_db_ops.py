"""Test the content store adapter -- article engine."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import create_async_engine

from article_engine.nodes import db_ops
from article_engine.nodes.db_ops import (
    Filter,
    array_contains,
    fetch_recent_keywords,
    load_generation_config,
    slug_exists,
    unique_article_slug,
)
from article_engine.nodes.schemas import GenerationRequest
from article_engine.shared.database import check_db_connection, normalize_database_url
from article_engine.shared.errors import (
    ConfigErrorReason,
    ConfigurationError,
    EntityNotFoundError,
)
from article_engine.shared.models import Article

from conftest import MEDIA_ID


async def add_article(store, keyword, *, category="travel", media_id=MEDIA_ID, slug=None, minutes_ago=0):
    created = datetime(2025, 11, 1, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    return await store.create("articles", {
        "media_id": media_id,
        "title": keyword,
        "content": "<p>x</p>",
        "slug": slug or f"slug-{keyword}",
        "category_ids": [category],
        "selected_keyword": keyword,
        "created_at": created,
    })


# ===========================================================================
# DATABASE URL
# ===========================================================================


class TestNormalizeDatabaseUrl:

    def test_postgres_schemes(self):
        assert normalize_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert normalize_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_other_schemes_untouched(self):
        assert normalize_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


class TestCheckDbConnection:

    @pytest.mark.asyncio
    async def test_reachable(self):
        engine = create_async_engine("sqlite+aiosqlite://")
        try:
            assert await check_db_connection(engine) is True
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_unreachable_returns_false(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
        try:
            assert await check_db_connection(engine) is False
        finally:
            await engine.dispose()


# ===========================================================================
# GENERIC OPERATIONS
# ===========================================================================


class TestContentStore:

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        tag_id = await store.create("tags", {"media_id": MEDIA_ID, "name": "京都", "slug": "kyoto"})
        tag = await store.get("tags", tag_id)
        assert tag["name"] == "京都"
        assert tag["slug"] == "kyoto"
        assert tag["created_at"] is not None

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("tags", "nope") is None

    @pytest.mark.asyncio
    async def test_explicit_id(self, store):
        assert await store.create("writers", {"id": "w9", "media_id": MEDIA_ID, "name": "A"}) == "w9"

    @pytest.mark.asyncio
    async def test_unknown_collection(self, store):
        with pytest.raises(ValueError):
            await store.get("users", "x")

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, store):
        with pytest.raises(ValueError):
            await store.create("tags", {"media_id": MEDIA_ID, "name": "a", "slug": "a", "colour": "red"})

    @pytest.mark.asyncio
    async def test_update(self, store):
        tag_id = await store.create("tags", {"media_id": MEDIA_ID, "name": "a", "slug": "a"})
        await store.update("tags", tag_id, {"name_en": "A"})
        assert (await store.get("tags", tag_id))["name_en"] == "A"

    @pytest.mark.asyncio
    async def test_update_missing(self, store):
        with pytest.raises(EntityNotFoundError):
            await store.update("tags", "nope", {"name": "x"})

    @pytest.mark.asyncio
    async def test_query_equality_and_order(self, store):
        await add_article(store, "old", minutes_ago=10)
        await add_article(store, "new", minutes_ago=1)
        await add_article(store, "other-tenant", media_id="m2")

        rows = await store.query("articles", [Filter("media_id", "==", MEDIA_ID)], order_by="created_at")
        assert [r["selected_keyword"] for r in rows] == ["new", "old"]

        rows = await store.query(
            "articles", [Filter("media_id", "==", MEDIA_ID)], order_by="created_at", descending=False,
        )
        assert [r["selected_keyword"] for r in rows] == ["old", "new"]

    @pytest.mark.asyncio
    async def test_query_array_contains_applies_limit_after_filter(self, store):
        await add_article(store, "food-1", category="food", minutes_ago=1)
        await add_article(store, "travel-1", minutes_ago=2)
        await add_article(store, "food-2", category="food", minutes_ago=3)
        await add_article(store, "travel-2", minutes_ago=4)

        rows = await store.query(
            "articles",
            [Filter("category_ids", "array_contains", "travel")],
            order_by="created_at",
            limit=2,
        )
        assert [r["selected_keyword"] for r in rows] == ["travel-1", "travel-2"]

    @pytest.mark.asyncio
    async def test_array_contains_pages_past_sparse_batches(self, store, monkeypatch):
        monkeypatch.setattr(db_ops, "QUERY_BATCH_SIZE", 2)
        for i in range(5):
            await add_article(store, f"food-{i}", category="food", minutes_ago=i)
        await add_article(store, "travel-old", minutes_ago=10)
        await add_article(store, "travel-oldest", minutes_ago=11)

        rows = await store.query(
            "articles",
            [Filter("category_ids", "array_contains", "travel")],
            order_by="created_at",
            limit=1,
        )
        assert [r["selected_keyword"] for r in rows] == ["travel-old"]

    @pytest.mark.asyncio
    async def test_fields_limit_returned_keys(self, store):
        await add_article(store, "k1")

        rows = await store.query(
            "articles",
            [Filter("category_ids", "array_contains", "travel")],
            fields=["selected_keyword", "slug"],
        )
        assert rows == [{"selected_keyword": "k1", "slug": "slug-k1"}]

        rows = await store.query("articles", [Filter("media_id", "==", MEDIA_ID)], fields=["slug"])
        assert rows == [{"slug": "slug-k1"}]

    def test_array_contains_compiles_to_jsonb_containment(self):
        clause = array_contains(Article.category_ids, "travel")
        assert "@>" in str(clause.compile(dialect=postgresql.dialect()))

    @pytest.mark.asyncio
    async def test_query_bad_operator(self, store):
        with pytest.raises(ValueError):
            await store.query("articles", [Filter("slug", ">", "a")])


# ===========================================================================
# PIPELINE QUERIES
# ===========================================================================


class TestRecentKeywords:

    @pytest.mark.asyncio
    async def test_five_most_recent_in_tenant_category(self, store):
        for i in range(7):
            await add_article(store, f"kw{i}", minutes_ago=i)
        await add_article(store, "food", category="food", minutes_ago=0)
        await add_article(store, "elsewhere", media_id="m2", minutes_ago=0)

        recent = await fetch_recent_keywords(store, MEDIA_ID, "travel")
        assert recent == ["kw0", "kw1", "kw2", "kw3", "kw4"]

    @pytest.mark.asyncio
    async def test_no_articles(self, store):
        assert await fetch_recent_keywords(store, MEDIA_ID, "travel") == []


class TestArticleSlugs:

    @pytest.mark.asyncio
    async def test_slug_exists_is_tenant_scoped(self, store):
        await add_article(store, "a", slug="kyoto-guide", media_id="m2")
        assert await slug_exists(store, "m2", "kyoto-guide")
        assert not await slug_exists(store, MEDIA_ID, "kyoto-guide")

    @pytest.mark.asyncio
    async def test_unique_article_slug_appends_counter(self, store):
        await add_article(store, "a", slug="kyoto-guide")
        await add_article(store, "b", slug="kyoto-guide-1")
        assert await unique_article_slug(store, MEDIA_ID, "Kyoto Guide") == "kyoto-guide-2"


class TestLoadGenerationConfig:

    @pytest.mark.asyncio
    async def test_loads_all_documents(self, seeded_store, request_travel):
        config = await load_generation_config(seeded_store, request_travel)
        assert config.category["id"] == "travel"
        assert config.writer["id"] == "w1"
        assert config.image_pattern["id"] == "p1"
        assert config.image_size == "1792x1024"
        assert config.image_style_prompt == "Editorial photograph, natural light."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field, reason", [
        ("category_id", ConfigErrorReason.CATEGORY_NOT_FOUND),
        ("writer_id", ConfigErrorReason.WRITER_NOT_FOUND),
        ("image_pattern_id", ConfigErrorReason.IMAGE_PATTERN_NOT_FOUND),
    ])
    async def test_missing_document(self, seeded_store, request_travel, field, reason):
        request = request_travel.model_copy(update={field: "missing"})
        with pytest.raises(ConfigurationError) as exc_info:
            await load_generation_config(seeded_store, request)
        assert exc_info.value.reason is reason

    @pytest.mark.asyncio
    async def test_other_tenant_document_counts_as_missing(self, seeded_store):
        request = GenerationRequest(media_id="m2", category_id="travel", writer_id="w1", image_pattern_id="p1")
        with pytest.raises(ConfigurationError) as exc_info:
            await load_generation_config(seeded_store, request)
        assert exc_info.value.reason is ConfigErrorReason.CATEGORY_NOT_FOUND

    @pytest.mark.asyncio
    async def test_unsupported_size_falls_back(self, seeded_store, request_travel):
        await seeded_store.update("image_prompt_patterns", "p1", {"size": "640x480"})
        config = await load_generation_config(seeded_store, request_travel)
        assert config.image_size == "1792x1024"
