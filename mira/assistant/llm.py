"""Remote chat-completion providers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from .config import LLMConfig

LOGGER = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """Raised when the completion service fails or returns no content."""


@dataclass(frozen=True)
class CompletionReply:
    content: str
    role: str = "assistant"


class CompletionProvider:
    async def complete(self, turns: Sequence[dict[str, str]]) -> CompletionReply:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class OpenAIChatProvider(CompletionProvider):
    """Call OpenAI-compatible chat completion endpoints.

    The whole conversation is sent on every call; the provider keeps no state
    between calls and never retries.
    """

    def __init__(
        self,
        config: LLMConfig,
        *,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.openai_timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _build_payload(self, turns: Sequence[dict[str, str]]) -> dict:
        messages: list[dict[str, str]] = []
        system_prompt = (self.config.system_prompt or "").strip()
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        for turn in turns:
            role = turn.get("role")
            content = turn.get("content")
            if role in {"user", "assistant"} and isinstance(content, str):
                messages.append({"role": role, "content": content})
        return {
            "model": self.config.openai_model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    async def complete(self, turns: Sequence[dict[str, str]]) -> CompletionReply:
        if not self.config.openai_api_key:
            raise CompletionError("OPENAI_API_KEY is not set")
        payload = self._build_payload(turns)
        url = f"{self.config.openai_base_url.rstrip('/')}/chat/completions"
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.openai_api_key}"},
            )
        except httpx.HTTPError as exc:
            raise CompletionError(f"Completion request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CompletionError(f"Completion HTTP error: {response.status_code}")
        try:
            parsed = response.json()
        except ValueError as exc:
            raise CompletionError("Completion response is not JSON") from exc

        choices = parsed.get("choices") if isinstance(parsed, dict) else None
        if not choices:
            raise CompletionError("Completion response missing choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise CompletionError("Completion response missing content")
        self._logger.debug("[llm] Completion returned %d characters", len(content))
        return CompletionReply(content=content.strip())


def build_completion_provider(config: LLMConfig, logger: logging.Logger | None = None) -> CompletionProvider:
    return OpenAIChatProvider(config, logger=logger)
