import asyncio
import os
from typing import Any, Callable, Optional

import openai

from ..cancellation import CancellationToken, check
from ..models.extract import ImageData
from ..models.summarizer import ChatMessage, ResolvedConfig
from .base import ChunkRecorder, OnChunk, ProviderError, Sleep, rewrite_prompt, with_retry

ClientFactory = Callable[[str, Optional[str]], Any]

XAI_BASE_URL = "https://api.x.ai/v1"


def _default_client(api_key: str, base_url: Optional[str]) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(api_key=api_key, base_url=base_url)


def user_content(user_prompt: str, image: Optional[ImageData]) -> Any:
    if image is None:
        return user_prompt
    return [
        {
            "type": "image_url",
            "image_url": {"url": f"data:{image.media_type};base64,{image.base64}"},
        },
        {"type": "text", "text": user_prompt},
    ]


class OpenAICompatibleProvider:
    """Chat-completions backend. xAI speaks the same protocol at another base URL."""

    def __init__(
        self,
        name: str = "openai",
        *,
        label: str = "OpenAI",
        env_api_key: str = "OPENAI_API_KEY",
        env_base_url: str = "OPENAI_BASE_URL",
        default_base_url: Optional[str] = None,
        client_factory: Optional[ClientFactory] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.name = name
        self._label = label
        self._env_api_key = env_api_key
        self._env_base_url = env_base_url
        self._default_base_url = default_base_url
        self._client_factory = client_factory or _default_client
        self._sleep = sleep

    def classify_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, openai.AuthenticationError):
            return ProviderError(
                f"Invalid {self._label} API key. Check {self._env_api_key}.", "AUTH", self.name
            )
        if isinstance(exc, openai.RateLimitError):
            return ProviderError(
                f"Rate limited by {self._label} API. Please wait a moment and try again.",
                "RATE_LIMIT",
                self.name,
            )
        if isinstance(exc, openai.NotFoundError):
            return ProviderError(f"Model not found: {exc}", "NOT_FOUND", self.name)
        if isinstance(exc, openai.APITimeoutError):
            return ProviderError(f"Request to {self._label} timed out.", "TIMEOUT", self.name)
        if isinstance(exc, openai.APIConnectionError):
            return ProviderError("Network error. Check your connection.", "NETWORK", self.name)
        return ProviderError(f"{self._label} error: {exc}", "UNKNOWN", self.name)

    def _client(self, config: ResolvedConfig) -> Any:
        api_key = config.api_key or os.getenv(self._env_api_key)
        if not api_key:
            raise ProviderError(
                f"No {self._label} API key. Set {self._env_api_key}.", "AUTH", self.name
            )
        base_url = config.base_url or os.getenv(self._env_base_url) or self._default_base_url
        return self._client_factory(api_key, base_url)

    async def _stream(self, client: Any, emit: ChunkRecorder, config: ResolvedConfig, messages: list) -> str:
        stream = await client.chat.completions.create(
            model=config.model,
            max_tokens=config.max_tokens,
            stream=True,
            messages=messages,
        )
        async for event in stream:
            if event.choices:
                emit(event.choices[0].delta.content or "")
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
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content(user_prompt, image)},
        ]
        return await with_retry(
            lambda emit: self._stream(client, emit, config, messages),
            self.classify_error,
            on_chunk=on_chunk,
            sleep=self._sleep,
            token=token,
        )

    async def rewrite(self, markdown: str, config: ResolvedConfig, system_prompt: str) -> str:
        client = self._client(config)

        async def attempt(_: ChunkRecorder) -> str:
            response = await client.chat.completions.create(
                model=config.model,
                max_tokens=config.max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": rewrite_prompt(markdown)},
                ],
            )
            text = response.choices[0].message.content if response.choices else None
            return text or markdown

        return await with_retry(attempt, self.classify_error, sleep=self._sleep)

    async def chat(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        messages: list[ChatMessage],
        on_chunk: OnChunk,
    ) -> str:
        client = self._client(config)
        payload = [{"role": "system", "content": system_prompt}]
        payload.extend({"role": m.role, "content": m.content} for m in messages)
        return await with_retry(
            lambda emit: self._stream(client, emit, config, payload),
            self.classify_error,
            on_chunk=on_chunk,
            sleep=self._sleep,
        )


def xai_provider(**kwargs) -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        "xai",
        label="xAI",
        env_api_key="XAI_API_KEY",
        env_base_url="XAI_BASE_URL",
        default_base_url=XAI_BASE_URL,
        **kwargs,
    )
