"""
Image generation and materialization.

ImageGenerationClient turns a prompt into a temporary URL (http(s) or a
data: URL). ImageMaterializer downloads it, shrinks it to web size, encodes
WebP, stores it durably and registers it in the tenant's media library.
"""
import asyncio
import base64
import binascii
import hashlib
import io
import time
import uuid
from typing import Optional

import httpx
import structlog
from PIL import Image, UnidentifiedImageError

from ..shared.errors import ImageGenerationError, ImageProcessingError
from ..shared.storage import ObjectStorage
from .schemas import (
    DEFAULT_IMAGE_SIZE, IMAGE_MAX_WIDTH, ImageAsset, UsageContext, WEBP_QUALITY,
)

logger = structlog.get_logger()

STORAGE_FOLDERS = {
    UsageContext.FEATURED: "featured-images",
    UsageContext.INLINE: "inline-images",
}


def _get_image_config(ctx) -> dict:
    """Get image generation configuration from context secrets."""
    return {
        "provider": ctx.get_secret("IMAGE_PROVIDER") or "openai",  # openai, stable-diffusion, placeholder
        "image_model": ctx.get_secret("IMAGE_MODEL") or "dall-e-3",
        "openai_api_key": ctx.get_secret("OPENAI_API_KEY"),
        "openai_base_url": ctx.get_secret("OPENAI_BASE_URL") or "https://api.openai.com/v1",
        "sd_api_url": ctx.get_secret("SD_API_URL") or "http://localhost:7860",  # Automatic1111
    }


def _parse_size(size: str) -> tuple:
    try:
        width, height = (int(part) for part in size.lower().split("x"))
    except ValueError:
        width, height = (int(part) for part in DEFAULT_IMAGE_SIZE.split("x"))
    return width, height


class ImageGenerationClient:

    def __init__(self, config: dict, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client

    @classmethod
    def from_context(cls, ctx, client: Optional[httpx.AsyncClient] = None) -> "ImageGenerationClient":
        return cls(_get_image_config(ctx), client=client)

    async def generate_image(self, prompt: str, size: str = DEFAULT_IMAGE_SIZE) -> str:
        """Return a temporary URL for a freshly generated image."""
        provider = self.config.get("provider", "openai")

        if provider == "placeholder":
            # Development mode
            prompt_hash = hashlib.md5(prompt.encode()).hexdigest()[:6]
            url = f"https://placehold.co/{size}/1a1a2e/eaeaea.png?text=AI+Image+{prompt_hash}"
            logger.info("placeholder_image_generated", prompt=prompt[:50])
            return url
        if provider == "stable-diffusion":
            return await self._generate_stable_diffusion(prompt, size)
        if provider == "openai":
            return await self._generate_openai(prompt, size)
        raise ImageGenerationError(f"Unknown image provider: {provider}", provider=provider)

    async def _post(self, url: str, **kwargs) -> dict:
        if self.client is not None:
            response = await self.client.post(url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=kwargs.pop("timeout", 120)) as client:
                response = await client.post(url, **kwargs)
        response.raise_for_status()
        return response.json()

    async def _generate_openai(self, prompt: str, size: str) -> str:
        api_key = self.config.get("openai_api_key")
        if not api_key:
            raise ImageGenerationError("OPENAI_API_KEY not set", provider="openai")

        try:
            data = await self._post(
                f"{self.config['openai_base_url'].rstrip('/')}/images/generations",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.config.get("image_model") or "dall-e-3",
                    "prompt": prompt,
                    "n": 1,
                    "size": size,
                    "quality": "standard",
                },
                timeout=120,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error("dalle_image_generation_failed", error=str(e))
            raise ImageGenerationError(f"DALL-E request failed: {e}", provider="openai") from e

        try:
            url = data["data"][0]["url"]
        except (KeyError, IndexError, TypeError):
            url = None
        if not url:
            raise ImageGenerationError("DALL-E returned no image URL", provider="openai")

        logger.info("dalle_image_generated", prompt=prompt[:50], size=size)
        return url

    async def _generate_stable_diffusion(self, prompt: str, size: str) -> str:
        width, height = _parse_size(size)
        try:
            data = await self._post(
                f"{self.config['sd_api_url'].rstrip('/')}/sdapi/v1/txt2img",
                json={
                    "prompt": prompt,
                    "negative_prompt": "text, watermark, signature, blurry, low quality",
                    "width": width,
                    "height": height,
                    "steps": 20,
                    "cfg_scale": 7,
                },
                timeout=180,
            )
            image_b64 = data["images"][0]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("sd_image_generation_failed", error=str(e))
            raise ImageGenerationError(f"Stable Diffusion request failed: {e}", provider="stable-diffusion") from e

        logger.info("sd_image_generated", prompt=prompt[:50], size=size)
        return f"data:image/png;base64,{image_b64}"


def optimize_image(data: bytes, max_width: int = IMAGE_MAX_WIDTH, quality: int = WEBP_QUALITY) -> tuple:
    """
    Shrink to max_width (never enlarge) and encode as WebP.

    Returns:
        (webp_bytes, width, height)
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError(f"Cannot decode image: {e}") from e

    if img.mode not in ("RGB", "RGBA"):
        has_alpha = "A" in img.getbands() or "transparency" in img.info
        img = img.convert("RGBA" if has_alpha else "RGB")

    if img.width > max_width:
        height = max(1, round(img.height * max_width / img.width))
        img = img.resize((max_width, height), Image.LANCZOS)

    buffer = io.BytesIO()
    try:
        img.save(buffer, format="WEBP", quality=quality)
    except OSError as e:
        raise ImageProcessingError(f"Cannot encode WebP: {e}") from e
    return buffer.getvalue(), img.width, img.height


def decode_data_url(url: str) -> bytes:
    header, _, payload = url.partition(",")
    if not header.endswith(";base64"):
        raise ImageProcessingError("Only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageProcessingError(f"Invalid data URL: {e}") from e


class ImageMaterializer:
    """
    Turn a temporary image URL into a permanent ImageAsset.

    Every failure propagates. The caller decides whether it is fatal.
    """

    def __init__(self, store, storage: ObjectStorage, client: Optional[httpx.AsyncClient] = None):
        self.store = store
        self.storage = storage
        self.client = client

    async def fetch(self, url: str) -> bytes:
        if url.startswith("data:"):
            return decode_data_url(url)
        if self.client is not None:
            response = await self.client.get(url, timeout=60, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=60, follow_redirects=True) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.content

    async def materialize(
        self,
        temporary_url: str,
        media_id: str,
        usage_context: UsageContext,
        original_name: str = "",
    ) -> ImageAsset:
        raw = await self.fetch(temporary_url)
        webp, width, height = await asyncio.to_thread(optimize_image, raw)

        folder = STORAGE_FOLDERS[usage_context]
        storage_path = f"{folder}/{int(time.time() * 1000)}-{uuid.uuid4()}.webp"

        await self.storage.save(
            storage_path,
            webp,
            "image/webp",
            metadata={"media_id": media_id, "usage_context": usage_context.value},
        )
        url = await self.storage.make_public(storage_path)

        asset_id = await self.store.create("media_library", {
            "media_id": media_id,
            "name": storage_path,
            "original_name": original_name or storage_path.rsplit("/", 1)[-1],
            "url": url,
            "type": "image",
            "mime_type": "image/webp",
            "size": len(webp),
            "usage_context": usage_context.value,
        })

        logger.info(
            "image_materialized",
            asset_id=asset_id,
            usage_context=usage_context.value,
            width=width,
            height=height,
            size=len(webp),
            original_size=len(raw),
        )
        return ImageAsset(
            asset_id=asset_id,
            url=url,
            storage_path=storage_path,
            size=len(webp),
            mime_type="image/webp",
            usage_context=usage_context,
        )
