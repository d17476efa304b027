"""
Node functions for the article generation pipeline.

This package contains the pipeline stages and the clients they drive.
"""

from .pipeline import (
    ArticlePipeline,
    generate_article,
)

from .db_ops import (
    ContentStore,
    Filter,
    fetch_recent_keywords,
    load_generation_config,
    slug_exists,
    unique_article_slug,
)

from .llm import TextGenerationClient

from .images import (
    ImageGenerationClient,
    ImageMaterializer,
    optimize_image,
)

from .tags import resolve_tags

from .stitch import (
    build_figure,
    find_h2_slots,
    insert_fragments,
)

from .schemas import (
    GenerationRequest,
    PipelineResult,
    TextProvider,
    UsageContext,
)
