"""
Text generation client for the article pipeline.

Two providers are used:
- reasoning (xAI Grok): keyword selection and research, always told the
  current date so it leans on recent information
- general (OpenAI): title, outline, introduction, body, FAQ and the helper
  calls below (image prompt improvement, translation, summary, tag slugs)

Both speak the OpenAI chat-completions wire format. Errors propagate as
LLMError; there is no client-side retry.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog

from ..shared.errors import LLMError
from .prompts import (
    GENERAL_SYSTEM_PROMPT,
    IMPROVE_IMAGE_PROMPT,
    REASONING_SYSTEM_PROMPT,
    SUMMARY_PROMPT,
    TAG_SLUG_PROMPT,
    TRANSLATE_PROMPT,
)
from .schemas import LOCALE_NAMES, SOURCE_LOCALE, TextProvider

logger = structlog.get_logger()

JST = timezone(timedelta(hours=9))

DEFAULT_REASONING_MODEL = "grok-4-fast-reasoning"
DEFAULT_GENERAL_MODEL = "gpt-4o"
XAI_BASE_URL = "https://api.x.ai/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"
REQUEST_TIMEOUT = 120


def current_date_label(now: Optional[datetime] = None) -> str:
    """Year and month in JST, e.g. '2025年3月'."""
    now = (now or datetime.now(timezone.utc)).astimezone(JST)
    return f"{now.year}年{now.month}月"


def _get_llm_config(ctx) -> dict:
    """
    Get text provider configuration from context secrets.

    XAI_API_KEY is preferred; GROK_API_KEY is accepted for older deployments.
    """
    return {
        "reasoning_api_key": ctx.get_secret("XAI_API_KEY") or ctx.get_secret("GROK_API_KEY"),
        "reasoning_model": ctx.get_secret("REASONING_MODEL") or DEFAULT_REASONING_MODEL,
        "reasoning_base_url": ctx.get_secret("XAI_BASE_URL") or XAI_BASE_URL,
        "openai_api_key": ctx.get_secret("OPENAI_API_KEY"),
        "general_model": ctx.get_secret("GENERAL_MODEL") or DEFAULT_GENERAL_MODEL,
        "openai_base_url": ctx.get_secret("OPENAI_BASE_URL") or OPENAI_BASE_URL,
    }


class TextGenerationClient:
    """
    complete() sends one system/user prompt pair and returns the raw text.

    Pass an httpx.AsyncClient to share a connection pool (or to mock
    transport in tests); otherwise a client is opened per call.
    """

    def __init__(self, config: dict, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client

    @classmethod
    def from_context(cls, ctx, client: Optional[httpx.AsyncClient] = None) -> "TextGenerationClient":
        return cls(_get_llm_config(ctx), client=client)

    def system_prompt(self, provider: TextProvider, now: Optional[datetime] = None) -> str:
        template = REASONING_SYSTEM_PROMPT if provider is TextProvider.REASONING else GENERAL_SYSTEM_PROMPT
        return template.format(current_date=current_date_label(now))

    async def complete(
        self,
        provider: TextProvider,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        label: str = "llm",
    ) -> str:
        response = await _call_llm(
            provider,
            system_prompt,
            user_prompt,
            self.config,
            temperature=temperature,
            max_tokens=max_tokens,
            label=label,
            client=self.client,
        )
        logger.info(
            "llm_completed",
            label=label,
            provider=provider.value,
            response_chars=len(response),
        )
        return response

    # =========================================================================
    # HELPERS (general provider)
    # =========================================================================

    async def improve_image_prompt(self, prompt: str) -> str:
        """Best-effort enrichment; returns the input prompt on any failure."""
        try:
            improved = await self.complete(
                TextProvider.GENERAL,
                "You write prompts for image generation models.",
                IMPROVE_IMAGE_PROMPT.format(prompt=prompt),
                temperature=0.7,
                max_tokens=300,
                label="image_prompt",
            )
        except LLMError as e:
            logger.warning("image_prompt_improvement_failed", error=str(e))
            return prompt
        return improved or prompt

    async def translate_text(self, text: str, target_locale: str, context: str = "text") -> str:
        """
        Translate from the source locale.

        Blank input gives "" and the source locale returns the text unchanged.
        Provider failures raise LLMError; callers choose the fallback.
        """
        if not text or not text.strip():
            return ""
        if target_locale == SOURCE_LOCALE:
            return text
        if target_locale not in LOCALE_NAMES:
            raise ValueError(f"Unsupported locale: {target_locale}")

        translated = await self.complete(
            TextProvider.GENERAL,
            "You are a professional translator.",
            TRANSLATE_PROMPT.format(
                context=context,
                source_language=LOCALE_NAMES[SOURCE_LOCALE],
                target_language=LOCALE_NAMES[target_locale],
                text=text,
            ),
            temperature=0.3,
            max_tokens=max(200, len(text) * 4),
            label="translate",
        )
        return translated

    async def generate_summary(self, text: str, locale: str = SOURCE_LOCALE) -> str:
        return await self.complete(
            TextProvider.GENERAL,
            self.system_prompt(TextProvider.GENERAL),
            SUMMARY_PROMPT.format(language=LOCALE_NAMES.get(locale, locale), text=text),
            temperature=0.5,
            max_tokens=400,
            label="summary",
        )

    async def suggest_latin_slug(self, name: str) -> str:
        """Raw model suggestion; callers sanitise."""
        return await self.complete(
            TextProvider.GENERAL,
            "You create URL slugs.",
            TAG_SLUG_PROMPT.format(name=name),
            temperature=0.2,
            max_tokens=50,
            label="tag_slug",
        )


# =============================================================================
# PROVIDER CALLS
# =============================================================================

async def _call_llm(
    provider: TextProvider,
    system_prompt: str,
    user_prompt: str,
    config: dict,
    *,
    temperature: float,
    max_tokens: int,
    label: str,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Route to the configured provider."""
    if provider is TextProvider.REASONING:
        return await _call_xai(system_prompt, user_prompt, config, temperature, max_tokens, label, client)
    if provider is TextProvider.GENERAL:
        return await _call_openai(system_prompt, user_prompt, config, temperature, max_tokens, label, client)
    raise ValueError(f"Unknown text provider: {provider}")


async def _call_xai(system_prompt, user_prompt, config, temperature, max_tokens, label, client=None) -> str:
    """Call xAI Grok (OpenAI-compatible)."""
    api_key = config.get("reasoning_api_key")
    if not api_key:
        raise LLMError("XAI_API_KEY not set", provider="xai")
    return await _chat_completion(
        provider="xai",
        base_url=config.get("reasoning_base_url") or XAI_BASE_URL,
        api_key=api_key,
        model=config.get("reasoning_model") or DEFAULT_REASONING_MODEL,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        temperature=temperature,
        max_tokens=max_tokens,
        label=label,
        client=client,
    )


async def _call_openai(system_prompt, user_prompt, config, temperature, max_tokens, label, client=None) -> str:
    """Call OpenAI API."""
    api_key = config.get("openai_api_key")
    if not api_key:
        raise LLMError("OPENAI_API_KEY not set", provider="openai")
    return await _chat_completion(
        provider="openai",
        base_url=config.get("openai_base_url") or OPENAI_BASE_URL,
        api_key=api_key,
        model=config.get("general_model") or DEFAULT_GENERAL_MODEL,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        temperature=temperature,
        max_tokens=max_tokens,
        label=label,
        client=client,
    )


async def _chat_completion(
    *,
    provider: str,
    base_url: str,
    api_key: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    temperature: float,
    max_tokens: int,
    label: str,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    request_body = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    url = f"{base_url.rstrip('/')}/chat/completions"

    try:
        if client is not None:
            response = await client.post(url, headers=headers, json=request_body, timeout=REQUEST_TIMEOUT)
        else:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as http:
                response = await http.post(url, headers=headers, json=request_body)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(
            "llm_http_error",
            label=label,
            provider=provider,
            status_code=e.response.status_code,
            body=e.response.text[:500],
        )
        raise LLMError(f"{provider} returned {e.response.status_code} for {label}", provider=provider) from e
    except (httpx.HTTPError, ValueError) as e:
        logger.error("llm_request_failed", label=label, provider=provider, error=str(e))
        raise LLMError(f"{provider} request failed for {label}: {e}", provider=provider) from e

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not content or not content.strip():
        logger.error("llm_empty_completion", label=label, provider=provider)
        raise LLMError(f"{provider} returned an empty completion for {label}", provider=provider)
    return content.strip()

