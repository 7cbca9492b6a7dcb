import asyncio
import os
from typing import Any, Callable, Optional

import anthropic

from ..cancellation import CancellationToken, check
from ..models.extract import ImageData
from ..models.summarizer import ChatMessage, ResolvedConfig
from .base import ChunkRecorder, OnChunk, ProviderError, Sleep, rewrite_prompt, with_retry

NAME = "anthropic"

ClientFactory = Callable[[str, Optional[str]], Any]


def _default_client(api_key: str, base_url: Optional[str]) -> anthropic.AsyncAnthropic:
    return anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url)


def classify_error(exc: Exception) -> ProviderError:
    if isinstance(exc, anthropic.AuthenticationError):
        return ProviderError("Invalid API key. Check ANTHROPIC_API_KEY.", "AUTH", NAME)
    if isinstance(exc, anthropic.RateLimitError):
        return ProviderError(
            "Rate limited by API. Please wait a moment and try again.", "RATE_LIMIT", NAME
        )
    if isinstance(exc, anthropic.NotFoundError):
        return ProviderError(f"Model not found: {exc}", "NOT_FOUND", NAME)
    if isinstance(exc, anthropic.APITimeoutError):
        return ProviderError("Request to Anthropic timed out.", "TIMEOUT", NAME)
    if isinstance(exc, anthropic.APIConnectionError):
        return ProviderError("Network error. Check your connection.", "NETWORK", NAME)
    return ProviderError(f"Summarization failed: {exc}", "UNKNOWN", NAME)


def user_content(user_prompt: str, image: Optional[ImageData]) -> Any:
    if image is None:
        return user_prompt
    return [
        {
            "type": "image",
            "source": {"type": "base64", "media_type": image.media_type, "data": image.base64},
        },
        {"type": "text", "text": user_prompt},
    ]


class AnthropicProvider:
    name = NAME

    def __init__(self, client_factory: Optional[ClientFactory] = None, sleep: Sleep = asyncio.sleep):
        self._client_factory = client_factory or _default_client
        self._sleep = sleep

    def _client(self, config: ResolvedConfig) -> Any:
        api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise ProviderError("No Anthropic API key. Set ANTHROPIC_API_KEY.", "AUTH", NAME)
        return self._client_factory(api_key, config.base_url)

    async def _stream(self, client: Any, emit: ChunkRecorder, **kwargs) -> str:
        async with client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                emit(text)
        return emit.text

    async def summarize(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        user_prompt: str,
        on_chunk: OnChunk,
        image: Optional[ImageData] = None,
        token: Optional[CancellationToken] = None,
    ) -> str:
        check(token)
        client = self._client(config)
        messages = [{"role": "user", "content": user_content(user_prompt, image)}]

        return await with_retry(
            lambda emit: self._stream(
                client,
                emit,
                model=config.model,
                max_tokens=config.max_tokens,
                system=system_prompt,
                messages=messages,
            ),
            classify_error,
            on_chunk=on_chunk,
            sleep=self._sleep,
            token=token,
        )

    async def rewrite(self, markdown: str, config: ResolvedConfig, system_prompt: str) -> str:
        client = self._client(config)

        async def attempt(_: ChunkRecorder) -> str:
            response = await client.messages.create(
                model=config.model,
                max_tokens=config.max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": rewrite_prompt(markdown)}],
            )
            block = response.content[0] if response.content else None
            if block is not None and block.type == "text" and block.text:
                return block.text
            return markdown

        return await with_retry(attempt, classify_error, sleep=self._sleep)

    async def chat(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        messages: list[ChatMessage],
        on_chunk: OnChunk,
    ) -> str:
        client = self._client(config)
        return await with_retry(
            lambda emit: self._stream(
                client,
                emit,
                model=config.model,
                max_tokens=config.max_tokens,
                system=system_prompt,
                messages=[{"role": m.role, "content": m.content} for m in messages],
            ),
            classify_error,
            on_chunk=on_chunk,
            sleep=self._sleep,
        )
