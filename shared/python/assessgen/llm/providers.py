"""Text generation backends behind one async interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging

from google.genai import Client, types
import httpx

from assessgen.config import Settings, get_settings
from assessgen.errors import GenerationFailure, compact_error

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Turns a prompt into model text or raises ``GenerationFailure``."""

    name: str = "llm"

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        raise NotImplementedError


class GeminiProvider(LLMProvider):
    """Google Gemini through the google-genai SDK."""

    name = "gemini"

    def __init__(self, *, api_key: str | None, model: str, temperature: float = 0.4) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = temperature

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise GenerationFailure("Assessment generation failed: GEMINI_API_KEY is not set")

        client = Client(api_key=self.api_key)
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=types.GenerateContentConfig(temperature=self.temperature),
            )
        except Exception as exc:
            logger.exception("gemini call failed", extra={"model": self.model})
            raise GenerationFailure(
                f"Assessment generation failed: {compact_error(exc)}"
            ) from exc

        text = response.text
        if not text or not text.strip():
            raise GenerationFailure("Assessment generation failed: empty model response")
        return text.strip()


class MistralProvider(LLMProvider):
    """Mistral chat completions over plain HTTP, with two retries."""

    name = "mistral"

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        model: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_delay: float = 1.5,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.retry_delay = retry_delay
        self._transport = transport

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise GenerationFailure("Assessment generation failed: MISTRAL_API_KEY is not set")

        url = f"{self.base_url.rstrip('/')}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": "You write quiz questions and answer in JSON only."},
                {"role": "user", "content": prompt},
            ],
        }

        timeout = httpx.Timeout(timeout=self.timeout, connect=min(10.0, float(self.timeout)))
        last_error: Exception | None = None
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            for attempt in range(1, 4):
                try:
                    response = await client.post(url, headers=headers, json=payload)
                    response.raise_for_status()
                    text = _extract_chat_completion_content(response.json())
                    if text:
                        return text
                    last_error = RuntimeError("empty_mistral_response")
                except (httpx.HTTPError, ValueError) as exc:
                    last_error = exc
                if attempt < 3:
                    await asyncio.sleep(self.retry_delay * attempt)

        logger.warning(
            "mistral call failed after retries",
            extra={"error": compact_error(last_error) if last_error else "unknown"},
        )
        raise GenerationFailure(
            f"Assessment generation failed: {compact_error(last_error) if last_error else 'unknown'}"
        )


def get_provider(settings: Settings | None = None) -> LLMProvider:
    """Provider named by ``LLM_PROVIDER``; Gemini unless set to ``mistral``."""

    settings = settings or get_settings()
    if settings.llm_provider == "mistral":
        return MistralProvider(
            api_key=settings.mistral_api_key,
            base_url=settings.mistral_base_url,
            model=settings.mistral_model,
            timeout=settings.llm_timeout_seconds,
        )
    return GeminiProvider(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        temperature=settings.gemini_temperature,
    )


def _extract_chat_completion_content(payload: dict) -> str | None:
    """First choice's message text; list-style content parts are joined."""

    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None

    if isinstance(content, list):
        parts = (part.get("text") if isinstance(part, dict) else part for part in content)
        content = "\n".join(part.strip() for part in parts if isinstance(part, str) and part.strip())
    if not isinstance(content, str):
        return None
    return content.strip() or None
