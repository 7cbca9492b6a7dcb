import json
import logging
import os
from typing import Callable, Optional

import httpx

from ..cancellation import CancellationToken, check, run_cancellable
from ..models.extract import ImageData
from ..models.summarizer import ChatMessage, ResolvedConfig
from .base import ChunkRecorder, OnChunk, ProviderError, rewrite_prompt

logger = logging.getLogger(__name__)

NAME = "ollama"
DEFAULT_BASE_URL = "http://localhost:11434"

ClientFactory = Callable[[], httpx.AsyncClient]


def _default_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None))


class OllamaProvider:
    """Local Ollama daemon, spoken to over its NDJSON chat API."""

    name = NAME

    def __init__(self, client_factory: Optional[ClientFactory] = None):
        self._client_factory = client_factory or _default_client

    @staticmethod
    def base_url(config: ResolvedConfig) -> str:
        return (config.base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_BASE_URL).rstrip("/")

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = (await response.aread()).decode("utf-8", errors="replace")
        if response.status_code == 404:
            raise ProviderError(
                "Model not found. Pull it first with: ollama pull <model>", "NOT_FOUND", NAME
            )
        raise ProviderError(f"Ollama HTTP {response.status_code}: {body[:200]}", "UNKNOWN", NAME)

    async def _chat(
        self,
        config: ResolvedConfig,
        messages: list[dict],
        emit: Optional[ChunkRecorder] = None,
    ) -> str:
        url = f"{self.base_url(config)}/api/chat"
        payload = {"model": config.model, "messages": messages, "stream": emit is not None}

        try:
            async with self._client_factory() as client:
                if emit is None:
                    response = await client.post(url, json=payload)
                    await self._raise_for_status(response)
                    return (response.json().get("message") or {}).get("content") or ""

                async with client.stream("POST", url, json=payload) as response:
                    await self._raise_for_status(response)
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.warning("Skipping malformed Ollama line: %.80s", line)
                            continue
                        emit((data.get("message") or {}).get("content") or "")
                    return emit.text
        except httpx.ConnectError as exc:
            raise ProviderError(
                "Cannot connect to Ollama. Make sure it's running (ollama serve).", "NETWORK", NAME
            ) from exc
        except httpx.TimeoutException as exc:
            raise ProviderError("Ollama request timed out.", "TIMEOUT", NAME) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Ollama network error: {exc}", "NETWORK", NAME) from exc

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
        user_message = {"role": "user", "content": user_prompt}
        if image is not None:
            user_message["images"] = [image.base64]
        messages = [{"role": "system", "content": system_prompt}, user_message]
        return await run_cancellable(self._chat(config, messages, ChunkRecorder(on_chunk)), token)

    async def rewrite(self, markdown: str, config: ResolvedConfig, system_prompt: str) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": rewrite_prompt(markdown)},
        ]
        return await self._chat(config, messages) or markdown

    async def chat(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        messages: list[ChatMessage],
        on_chunk: OnChunk,
    ) -> str:
        payload = [{"role": "system", "content": system_prompt}]
        payload.extend({"role": m.role, "content": m.content} for m in messages)
        return await self._chat(config, payload, ChunkRecorder(on_chunk))
