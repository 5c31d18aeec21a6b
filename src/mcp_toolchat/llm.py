"""Client for the OpenAI-compatible chat completions endpoint.

Every call is independent: the full message list is sent each time and no
conversation state is kept on the server. :meth:`LLMClient.chat_completion`
never raises; failures come back as ``LLMResponse(success=False)``.
"""

from collections.abc import AsyncIterator, Sequence
from typing import Any

from openai import AsyncOpenAI

from mcp_toolchat.logging import get_logger
from mcp_toolchat.models.chat_stats import ChatStats
from mcp_toolchat.models.config import LLMSettings
from mcp_toolchat.models.messages import ChatMessage, LLMResponse

logger = get_logger("llm")


def _usage_to_dict(usage: Any) -> dict[str, Any] | None:
    if usage is None:
        return None
    if hasattr(usage, "model_dump"):
        return usage.model_dump(exclude_none=True)
    if isinstance(usage, dict):
        return usage
    return None


class LLMClient:
    def __init__(self, client: AsyncOpenAI, settings: LLMSettings, stats: ChatStats | None = None):
        self.client = client
        self.settings = settings
        self.stats = stats

    def _record(self, usage: dict[str, Any] | None = None) -> None:
        if self.stats is None:
            return
        self.stats.llm_calls += 1
        self.stats.tokens.add(usage)

    def _request(
        self,
        messages: Sequence[ChatMessage],
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        return {
            "model": model or self.settings.model,
            "messages": [message.to_openai() for message in messages],
            "temperature": self.settings.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.settings.max_tokens,
        }

    async def chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        request = self._request(messages, model, temperature, max_tokens)
        logger.debug(f"Chat completion: {len(messages)} messages, model {request['model']}")

        try:
            response = await self.client.chat.completions.create(**request)
        except Exception as e:
            logger.warning(f"Chat completion failed: {e}")
            self._record()
            return LLMResponse.failure(str(e))

        if not response.choices:
            self._record()
            return LLMResponse.failure("Completion returned no choices")

        content = response.choices[0].message.content
        usage = _usage_to_dict(getattr(response, "usage", None))
        self._record(usage)
        logger.debug(f"Chat completion usage: {usage}")
        return LLMResponse(success=True, content=content or "", usage=usage)

    async def stream_chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Yield the reply as it is generated.

        The iterator is finite and cannot be restarted. Transport errors are
        raised from the iterator.
        """
        request = self._request(messages, model, temperature, max_tokens)
        self._record()
        stream = await self.client.chat.completions.create(**request, stream=True)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta


async def accumulate(chunks: AsyncIterator[str]) -> str:
    parts: list[str] = []
    async for chunk in chunks:
        parts.append(chunk)
    return "".join(parts)


class LLMClientFactory:
    """Builds one :class:`LLMClient` per endpoint and reuses it across turns."""

    def __init__(self) -> None:
        self._clients: dict[str, AsyncOpenAI] = {}

    def _get_client_key(self, settings: LLMSettings) -> str:
        return f"{settings.resolved_base_url()}|{settings.resolved_api_key() or ''}|{settings.timeout}"

    def _get_or_create_client(self, settings: LLMSettings) -> AsyncOpenAI:
        key = self._get_client_key(settings)
        existing = self._clients.get(key)
        if existing:
            return existing

        logger.info(f"Creating LLM client for {settings.resolved_base_url()}")
        client = AsyncOpenAI(
            base_url=settings.resolved_base_url(),
            api_key=settings.resolved_api_key(),
            timeout=settings.timeout,
        )
        self._clients[key] = client
        return client

    def get(self, settings: LLMSettings, stats: ChatStats | None = None) -> LLMClient:
        return LLMClient(self._get_or_create_client(settings), settings, stats)

    async def close(self) -> None:
        clients, self._clients = self._clients, {}
        for client in clients.values():
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing LLM client: {e}")
