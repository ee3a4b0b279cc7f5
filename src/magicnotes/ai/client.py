"""AI service contract and its OpenAI-compatible HTTP adapter."""
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from magicnotes.ai.attachments import Attachment
from magicnotes.ai.prompts import (
    build_continue_prompt,
    build_custom_prompt,
    build_grammar_prompt,
    build_summary_prompt,
    build_title_prompt,
)
from magicnotes.config import config
from magicnotes.exceptions import ErrorCode, ExternalServiceError

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class AIService(Protocol):
    """Text generation backend used by the orchestrator.

    Implementations raise ``ExternalServiceError`` on any failure.
    """

    async def generate_title(self, content: str) -> str: ...

    async def summarize(self, content: str) -> str: ...

    async def continue_writing(self, content: str) -> str: ...

    async def fix_grammar(self, content: str) -> str: ...

    async def custom_generate(
        self, prompt: str, context: str, attachment: Optional[Attachment] = None
    ) -> str: ...


class OpenRouterAIService:
    """Calls an OpenAI-compatible ``/chat/completions`` endpoint.

    Images are sent as ``image_url`` parts carrying a base64 data URL.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = _UNSET,
        language: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the adapter; unset arguments come from the global config.

        Args:
            timeout: Request timeout in seconds; ``None`` waits indefinitely.
            client: Optional pre-built client; the adapter owns one otherwise.
        """
        self.api_key = config.ai_api_key if api_key is None else api_key
        self.model = model or config.ai_model
        self.base_url = (base_url or config.ai_base_url).rstrip("/")
        self.timeout = config.ai_timeout if timeout is _UNSET else timeout
        self.language = language or config.ai_language
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _complete(self, operation: str, content: Any) -> str:
        if not self.api_key:
            raise ExternalServiceError(
                "No AI API key configured",
                operation=operation,
                code=ErrorCode.AI_NOT_CONFIGURED,
            )
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "X-Title": "MagicNotes",
        }
        try:
            response = await self._get_client().post(
                f"{self.base_url}/chat/completions",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                operation=operation,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                f"AI request failed: {e}", operation=operation, original_error=e
            ) from e
        except ValueError as e:
            raise ExternalServiceError(
                "AI service returned invalid JSON", operation=operation, original_error=e
            ) from e

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError(
                "AI service returned an unexpected response", operation=operation, original_error=e
            ) from e
        text = text.strip()
        if not text:
            raise ExternalServiceError("AI service returned an empty response", operation=operation)
        logger.debug(f"AI {operation}: {len(text)} chars from {self.model}")
        return text

    async def generate_title(self, content: str) -> str:
        return await self._complete("generate_title", build_title_prompt(content, self.language))

    async def summarize(self, content: str) -> str:
        return await self._complete("summarize", build_summary_prompt(content, self.language))

    async def continue_writing(self, content: str) -> str:
        return await self._complete("continue_writing", build_continue_prompt(content, self.language))

    async def fix_grammar(self, content: str) -> str:
        return await self._complete("fix_grammar", build_grammar_prompt(content, self.language))

    async def custom_generate(
        self, prompt: str, context: str, attachment: Optional[Attachment] = None
    ) -> str:
        text = build_custom_prompt(prompt, context, self.language)
        if attachment is None or not attachment.is_image:
            return await self._complete("custom_generate", text)
        parts: List[Dict[str, Any]] = [
            {"type": "image_url", "image_url": {"url": attachment.data_url}},
            {"type": "text", "text": text},
        ]
        return await self._complete("custom_generate", parts)
