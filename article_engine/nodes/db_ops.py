"""
Content store operations for the article pipeline.

ContentStore exposes the tables as document collections (get / query /
create / update) so the pipeline never builds SQL itself. Each call runs in
its own session and commits on its own; there are no cross-stage
transactions.
"""
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

import structlog
from sqlalchemy import select, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..shared.database import get_db_session
from ..shared.errors import ConfigErrorReason, ConfigurationError, EntityNotFoundError
from ..shared.models import (
    Article, Category, ImagePromptPattern, MediaAsset, Tag, Writer, new_id, utc_now,
)
from .schemas import GenerationConfig, GenerationRequest, RECENT_KEYWORD_WINDOW
from .slugs import base_slug, unique_slug

logger = structlog.get_logger()

COLLECTIONS = {
    "articles": Article,
    "categories": Category,
    "writers": Writer,
    "image_prompt_patterns": ImagePromptPattern,
    "tags": Tag,
    "media_library": MediaAsset,
}

QUERY_BATCH_SIZE = 200


class Filter(NamedTuple):
    field: str
    op: str       # "==" or "array_contains"
    value: Any


def array_contains(column, value):
    """JSONB containment (column @> [value]) for PostgreSQL."""
    return type_coerce(column, JSONB).contains([value])


def _to_dict(row) -> Dict[str, Any]:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


class ContentStore:

    def __init__(self, session_maker: Optional[async_sessionmaker] = None):
        self.session_maker = session_maker

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    def _column(self, model, field: str):
        if field not in model.__table__.columns:
            raise ValueError(f"{model.__tablename__} has no field {field}")
        return getattr(model, field)

    async def get(self, collection: str, entity_id: str) -> Optional[Dict[str, Any]]:
        model = self._model(collection)
        async with get_db_session(self.session_maker) as db:
            row = await db.get(model, entity_id)
            return _to_dict(row) if row is not None else None

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run a filtered query and return rows as dicts.

        fields limits both the selected columns and the returned keys.
        Equality filters always run in SQL. On PostgreSQL array_contains
        becomes JSONB containment; elsewhere rows are read in batches of
        QUERY_BATCH_SIZE and matched in Python until limit is reached.
        """
        model = self._model(collection)
        names = list(fields) if fields else list(model.__table__.columns.keys())
        equality, array_filters = [], []
        for f in filters:
            column = self._column(model, f.field)
            if f.op == "==":
                equality.append(column == f.value)
            elif f.op == "array_contains":
                array_filters.append(f)
            else:
                raise ValueError(f"Unsupported filter operator: {f.op}")

        async with get_db_session(self.session_maker) as db:
            pushdown = db.get_bind().dialect.name == "postgresql"
            selected = list(names)
            if not pushdown:
                selected += [f.field for f in array_filters if f.field not in selected]

            stmt = select(*(self._column(model, name) for name in selected)).where(*equality)
            if pushdown:
                stmt = stmt.where(*(array_contains(self._column(model, f.field), f.value) for f in array_filters))
            if order_by:
                column = self._column(model, order_by)
                stmt = stmt.order_by(column.desc() if descending else column.asc())

            if pushdown or not array_filters:
                if limit is not None:
                    stmt = stmt.limit(limit)
                result = await db.execute(stmt)
                return [dict(row._mapping) for row in result.all()]

            # Offset paging needs a total order.
            stmt = stmt.order_by(model.id)
            rows: List[Dict[str, Any]] = []
            offset = 0
            while limit is None or len(rows) < limit:
                result = await db.execute(stmt.limit(QUERY_BATCH_SIZE).offset(offset))
                batch = result.all()
                for row in batch:
                    data = dict(row._mapping)
                    if all(f.value in (data.get(f.field) or []) for f in array_filters):
                        rows.append({name: data[name] for name in names})
                if len(batch) < QUERY_BATCH_SIZE:
                    break
                offset += QUERY_BATCH_SIZE

        return rows[:limit] if limit is not None else rows

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        """Insert one document atomically and return its id."""
        model = self._model(collection)
        payload = dict(data)
        payload.setdefault("id", new_id())
        unknown = set(payload) - set(model.__table__.columns.keys())
        if unknown:
            raise ValueError(f"{collection} has no fields {sorted(unknown)}")

        async with get_db_session(self.session_maker) as db:
            db.add(model(**payload))

        logger.debug("document_created", collection=collection, id=payload["id"])
        return payload["id"]

    async def update(self, collection: str, entity_id: str, data: Dict[str, Any]) -> None:
        model = self._model(collection)
        async with get_db_session(self.session_maker) as db:
            row = await db.get(model, entity_id)
            if row is None:
                raise EntityNotFoundError(collection, entity_id)
            for field, value in data.items():
                self._column(model, field)
                setattr(row, field, value)
            if "updated_at" in model.__table__.columns and "updated_at" not in data:
                row.updated_at = utc_now()


# =============================================================================
# PIPELINE QUERIES
# =============================================================================

async def load_generation_config(store: ContentStore, request: GenerationRequest) -> GenerationConfig:
    """
    Fetch category, writer and image pattern for the request.

    A document owned by another tenant counts as missing.
    """
    lookups = (
        ("categories", request.category_id, ConfigErrorReason.CATEGORY_NOT_FOUND),
        ("writers", request.writer_id, ConfigErrorReason.WRITER_NOT_FOUND),
        ("image_prompt_patterns", request.image_pattern_id, ConfigErrorReason.IMAGE_PATTERN_NOT_FOUND),
    )
    documents = []
    for collection, entity_id, reason in lookups:
        doc = await store.get(collection, entity_id)
        if doc is None or doc.get("media_id") != request.media_id:
            logger.error("generation_config_missing", collection=collection, id=entity_id, media_id=request.media_id)
            raise ConfigurationError(reason, f"{collection}/{entity_id}")
        documents.append(doc)

    category, writer, image_pattern = documents
    return GenerationConfig(category=category, writer=writer, image_pattern=image_pattern)


async def fetch_recent_keywords(
    store: ContentStore,
    media_id: str,
    category_id: str,
    limit: int = RECENT_KEYWORD_WINDOW,
) -> List[str]:
    """Selected keywords of the newest articles in the tenant's category."""
    articles = await store.query(
        "articles",
        [
            Filter("media_id", "==", media_id),
            Filter("category_ids", "array_contains", category_id),
        ],
        order_by="created_at",
        descending=True,
        limit=limit,
        fields=["selected_keyword"],
    )
    return [a["selected_keyword"] for a in articles if a.get("selected_keyword")]


async def slug_exists(store: ContentStore, media_id: str, slug: str) -> bool:
    rows = await store.query(
        "articles",
        [Filter("media_id", "==", media_id), Filter("slug", "==", slug)],
        limit=1,
    )
    return bool(rows)


async def unique_article_slug(store: ContentStore, media_id: str, title: str) -> str:
    """Tenant-unique slug derived from the title."""

    async def exists(candidate: str) -> bool:
        return await slug_exists(store, media_id, candidate)

    return await unique_slug(exists, base_slug(title))


async def load_tenant_tags(store: ContentStore, media_id: str) -> List[Dict[str, Any]]:
    return await store.query("tags", [Filter("media_id", "==", media_id)])
