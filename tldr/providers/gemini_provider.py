import asyncio
import base64
import os
from typing import Any, Callable, Optional

import httpx
from google import genai
from google.genai import errors, types

from ..cancellation import CancellationToken, check
from ..models.extract import ImageData
from ..models.summarizer import ChatMessage, ResolvedConfig
from .base import ChunkRecorder, OnChunk, ProviderError, Sleep, rewrite_prompt, with_retry

NAME = "gemini"

ClientFactory = Callable[[str], Any]


def _default_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def classify_error(exc: Exception) -> ProviderError:
    status = exc.code if isinstance(exc, errors.APIError) else None
    message = str(exc)
    lower = message.lower()

    if status in (401, 403) or "api key" in lower:
        return ProviderError(
            "Invalid Gemini API key. Set GEMINI_API_KEY or pass api_key in the config.", "AUTH", NAME
        )
    if status == 429 or any(s in lower for s in ("rate limit", "resource_exhausted", "quota")):
        return ProviderError(
            "Rate limited by Gemini API. Please wait a moment and try again.", "RATE_LIMIT", NAME
        )
    if status == 404:
        return ProviderError(f"Model not found: {message}", "NOT_FOUND", NAME)
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError("Request to Gemini timed out.", "TIMEOUT", NAME)
    if isinstance(exc, httpx.TransportError) or "network" in lower or "connect" in lower:
        return ProviderError("Network error. Check your connection.", "NETWORK", NAME)
    return ProviderError(f"Gemini error: {message}", "UNKNOWN", NAME)


def _generation_config(config: ResolvedConfig, system_prompt: str) -> types.GenerateContentConfig:
    return types.GenerateContentConfig(
        system_instruction=system_prompt,
        max_output_tokens=config.max_tokens,
    )


def user_parts(user_prompt: str, image: Optional[ImageData]) -> list[types.Part]:
    parts = []
    if image is not None:
        parts.append(
            types.Part.from_bytes(data=base64.b64decode(image.base64), mime_type=image.media_type)
        )
    parts.append(types.Part.from_text(text=user_prompt))
    return parts


class GeminiProvider:
    name = NAME

    def __init__(self, client_factory: Optional[ClientFactory] = None, sleep: Sleep = asyncio.sleep):
        self._client_factory = client_factory or _default_client
        self._sleep = sleep

    def _client(self, config: ResolvedConfig) -> Any:
        api_key = config.api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise ProviderError("No Gemini API key. Set GEMINI_API_KEY.", "AUTH", NAME)
        return self._client_factory(api_key)

    async def _stream(
        self, client: Any, emit: ChunkRecorder, config: ResolvedConfig, system_prompt: str, contents: list
    ) -> str:
        stream = await client.aio.models.generate_content_stream(
            model=config.model,
            contents=contents,
            config=_generation_config(config, system_prompt),
        )
        async for chunk in stream:
            emit(chunk.text or "")
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
        contents = [types.Content(role="user", parts=user_parts(user_prompt, image))]
        return await with_retry(
            lambda emit: self._stream(client, emit, config, system_prompt, contents),
            classify_error,
            on_chunk=on_chunk,
            sleep=self._sleep,
            token=token,
        )

    async def rewrite(self, markdown: str, config: ResolvedConfig, system_prompt: str) -> str:
        client = self._client(config)

        async def attempt(_: ChunkRecorder) -> str:
            response = await client.aio.models.generate_content(
                model=config.model,
                contents=[types.Content(role="user", parts=[types.Part.from_text(text=rewrite_prompt(markdown))])],
                config=_generation_config(config, system_prompt),
            )
            return response.text or markdown

        return await with_retry(attempt, classify_error, sleep=self._sleep)

    async def chat(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        messages: list[ChatMessage],
        on_chunk: OnChunk,
    ) -> str:
        client = self._client(config)
        contents = [
            types.Content(
                role="user" if m.role == "user" else "model",
                parts=[types.Part.from_text(text=m.content)],
            )
            for m in messages
        ]
        return await with_retry(
            lambda emit: self._stream(client, emit, config, system_prompt, contents),
            classify_error,
            on_chunk=on_chunk,
            sleep=self._sleep,
        )
