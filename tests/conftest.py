"""
Shared fixtures for the article engine test suite.

Everything runs without external services: the content store is SQLite in
memory, providers are scripted fakes, and images are generated with Pillow.
"""
import base64
import io

import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from article_engine.nodes.db_ops import ContentStore
from article_engine.nodes.images import ImageMaterializer
from article_engine.nodes.llm import TextGenerationClient
from article_engine.nodes.pipeline import ArticlePipeline
from article_engine.nodes.schemas import GenerationRequest
from article_engine.shared.context import NodeContext
from article_engine.shared.errors import ImageGenerationError, LLMError
from article_engine.shared.models import Base
from article_engine.shared.storage import LocalObjectStorage

MEDIA_ID = "m1"


# ---------------------------------------------------------------------------
# Image helpers
# ---------------------------------------------------------------------------

def make_png(width=64, height=32, mode="RGB", color=(200, 80, 40)) -> bytes:
    if mode == "RGBA":
        color = (*color[:3], 128)
    elif mode == "L":
        color = 120
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def png_data_url(width=64, height=32) -> str:
    return "data:image/png;base64," + base64.b64encode(make_png(width, height)).decode("ascii")


# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------

class ScriptedTextClient(TextGenerationClient):
    """
    Answers complete() from a label -> response table.

    A response may be a string, a list (consumed in order, last one repeats),
    a callable taking the user prompt, or an exception instance to raise.
    Unscripted labels raise LLMError, like an unreachable provider.
    """

    def __init__(self, responses=None):
        super().__init__(config={})
        self.responses = dict(responses or {})
        self.calls = []

    def labels(self):
        return [call["label"] for call in self.calls]

    async def complete(self, provider, system_prompt, user_prompt, *, temperature, max_tokens, label="llm"):
        self.calls.append({
            "provider": provider,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "label": label,
        })
        if label not in self.responses:
            raise LLMError(f"no scripted response for {label}", provider="fake")

        response = self.responses[label]
        if isinstance(response, list):
            index = min(sum(1 for c in self.calls if c["label"] == label) - 1, len(response) - 1)
            response = response[index]
        if callable(response):
            response = response(user_prompt)
        if isinstance(response, BaseException):
            raise response
        return response


class FakeImageClient:
    """Returns a PNG data URL; fail_when(prompt) makes a call raise."""

    def __init__(self, fail_when=None, width=1600, height=900):
        self.fail_when = fail_when
        self.width = width
        self.height = height
        self.prompts = []
        self.sizes = []

    async def generate_image(self, prompt, size="1792x1024"):
        self.prompts.append(prompt)
        self.sizes.append(size)
        if self.fail_when and self.fail_when(prompt):
            raise ImageGenerationError("scripted image failure", provider="fake")
        return png_data_url(self.width, self.height)


BODY_HTML = """```html
<h2>Why Kyoto in autumn</h2>

<p>Kyoto turns red in November.</p>


<h3>Best timing</h3>
<p>Late November is the peak.</p>
<h2>Hidden temples</h2>
<p>Skip the crowds.</p>
<h2>Getting around</h2>
<p>Take the bus early.</p>
<h2>Where to stay</h2>
<p>Book a machiya.</p>
<h2>Summary</h2>
<p>Go early, go quiet.</p>
```"""

STAGE_RESPONSES = {
    "keyword": "キーワード: 京都 紅葉 穴場",
    "research": (
        "検索ユーザーのペルソナ（人物像）: 30代の会社員、混雑が苦手\n"
        "検索意図（顕在ニーズ）: 空いている紅葉スポットを知りたい\n"
        "検索意図（潜在ニーズ）: 静かに秋の京都を楽しみたい\n"
        "記事のゴール: 穴場スポットを3つ以上訪れる計画が立てられる\n"
        "記事に記載すべき内容: 穴場の寺院、アクセス、見頃\n"
        "関連キーワード: 京都 紅葉 2025, 嵐山 紅葉, 京都 ライトアップ, 東福寺"
    ),
    "title": "タイトル: Kyoto Autumn Leaves: 10 Hidden Spots for 2025",
    "outline": "<h2>Why Kyoto in autumn</h2><h3>Best timing</h3><h2>Hidden temples</h2><h2>Summary</h2>",
    "introduction": "<p>Crowded temples ruin autumn. This guide avoids them.</p>",
    "body": BODY_HTML,
    "tag_slug": "kyoto-autumn-leaves",
    "translate": "translated name",
    "image_prompt": "improved image prompt",
    "summary": "A short guide to quiet autumn spots in Kyoto.",
    "faq": (
        "Q: When is the peak season?\n"
        "A: Late November.\n"
        "\n"
        "Q: Is the bus crowded?\n"
        "A: Yes, after 9am.\n"
        "Leave early to avoid it.\n"
    ),
}


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_maker):
    return ContentStore(session_maker)


@pytest.fixture
async def seeded_store(store):
    """Tenant m1 with category travel, writer w1 and image pattern p1."""
    await store.create("categories", {"id": "travel", "media_id": MEDIA_ID, "name": "国内旅行"})
    await store.create("writers", {"id": "w1", "media_id": MEDIA_ID, "name": "編集部"})
    await store.create("image_prompt_patterns", {
        "id": "p1",
        "media_id": MEDIA_ID,
        "name": "Editorial",
        "prompt": "Editorial photograph, natural light.",
        "size": "1792x1024",
    })
    return store


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(tmp_path / "storage", "https://cdn.example.com/media")


# ---------------------------------------------------------------------------
# Context and pipeline fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def ctx():
    return NodeContext(
        secrets={"XAI_API_KEY": "xai-test", "OPENAI_API_KEY": "sk-test"},
        use_environ=False,
    )


@pytest.fixture
def request_travel():
    return GenerationRequest(media_id=MEDIA_ID, category_id="travel", writer_id="w1", image_pattern_id="p1")


@pytest.fixture
def text_client():
    return ScriptedTextClient(STAGE_RESPONSES)


@pytest.fixture
def image_client():
    return FakeImageClient()


@pytest.fixture
def make_pipeline(ctx, seeded_store, storage):
    """Factory: build an ArticlePipeline over the seeded store."""

    def _make(text_client=None, image_client=None, context=None, store=None, concurrency=1):
        target_store = store or seeded_store
        return ArticlePipeline(
            context or ctx,
            store=target_store,
            text_client=text_client or ScriptedTextClient(STAGE_RESPONSES),
            image_client=image_client or FakeImageClient(),
            materializer=ImageMaterializer(target_store, storage),
            inline_image_concurrency=concurrency,
        )

    return _make
