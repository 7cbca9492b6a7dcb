"""Shared contract for the text-generation backends."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from ..cancellation import AbortedError, CancellationToken, check, run_cancellable
from ..errors import ErrorCode, TldrError, code_set
from ..models.extract import ImageData
from ..models.summarizer import ChatMessage, ResolvedConfig

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0

OnChunk = Callable[[str], None]
Sleep = Callable[[float], Awaitable[None]]


class ProviderError(TldrError):
    allowed_codes = code_set("AUTH", "RATE_LIMIT", "NETWORK", "NOT_FOUND", "TIMEOUT", "UNKNOWN")

    def __init__(self, message: str, code: ErrorCode | str, provider: str):
        super().__init__(message, code)
        self.provider = provider


class Provider(Protocol):
    name: str

    async def summarize(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        user_prompt: str,
        on_chunk: OnChunk,
        image: Optional[ImageData] = None,
        token: Optional[CancellationToken] = None,
    ) -> str: ...

    async def rewrite(self, markdown: str, config: ResolvedConfig, system_prompt: str) -> str: ...

    async def chat(
        self,
        config: ResolvedConfig,
        system_prompt: str,
        messages: list[ChatMessage],
        on_chunk: OnChunk,
    ) -> str: ...


def rewrite_prompt(markdown: str) -> str:
    return f"Rewrite this summary as an engaging audio script:\n\n{markdown}"


def _noop(_: str) -> None:
    pass


class ChunkRecorder:
    """Forwards chunks to the caller and remembers whether any went out."""

    def __init__(self, on_chunk: Optional[OnChunk]):
        self._on_chunk = on_chunk or _noop
        self.chunks: list[str] = []

    def __call__(self, text: str) -> None:
        if not text:
            return
        self.chunks.append(text)
        self._on_chunk(text)

    @property
    def emitted(self) -> bool:
        return bool(self.chunks)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


async def with_retry(
    attempt: Callable[[ChunkRecorder], Awaitable[str]],
    classify: Callable[[Exception], ProviderError],
    *,
    on_chunk: Optional[OnChunk] = None,
    sleep: Sleep = asyncio.sleep,
    token: Optional[CancellationToken] = None,
) -> str:
    """Run `attempt` up to MAX_ATTEMPTS times, backing off on rate limits only.

    `classify` turns SDK exceptions into ProviderError. An attempt that has
    already streamed text is never repeated.
    """
    for n in range(MAX_ATTEMPTS):
        check(token)
        recorder = ChunkRecorder(on_chunk)
        try:
            return await run_cancellable(attempt(recorder), token)
        except AbortedError:
            raise
        except ProviderError:
            raise
        except Exception as exc:
            if token is not None and token.cancelled:
                raise AbortedError() from exc
            error = classify(exc)
            retryable = (
                error.code is ErrorCode.RATE_LIMIT
                and n < MAX_ATTEMPTS - 1
                and not recorder.emitted
            )
            if not retryable:
                raise error from exc
            delay = BASE_DELAY_SECONDS * (2 ** n)
            logger.warning("%s rate limited, retrying in %.1fs", error.provider, delay)
            await run_cancellable(sleep(delay), token)

    raise AssertionError("unreachable")
