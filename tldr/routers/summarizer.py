import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from ..cancellation import CancellationToken
from ..models.summarizer import (
    ChatRequest,
    ResolvedConfig,
    RewriteRequest,
    RewriteResponse,
    SummarizeRequest,
)
from ..providers.base import OnChunk
from ..services.chat_service import chat_with_session
from ..services.extractor_service import extract, prepare_for_summary
from ..services.summarizer_service import rewrite_for_speech, summarize

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Summarizer"])

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


def _config(config: Optional[ResolvedConfig]) -> ResolvedConfig:
    return config or ResolvedConfig.from_settings()


def _log_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Stream ended with %s: %s", type(exc).__name__, exc)


async def _stream(
    run: Callable[[OnChunk, CancellationToken], Awaitable[object]],
) -> StreamingResponse:
    """Start `run` and hold the response until its first chunk.

    Failures before any text is produced propagate to the app's exception
    handlers and get a proper status code; later ones only end the body.
    """
    token = CancellationToken()
    queue: asyncio.Queue = asyncio.Queue()

    task = asyncio.ensure_future(run(queue.put_nowait, token))
    task.add_done_callback(lambda _: queue.put_nowait(None))

    first = await queue.get()
    if first is None:
        task.result()

    task.add_done_callback(_log_outcome)

    async def body():
        try:
            chunk = first
            while chunk is not None:
                yield chunk
                chunk = await queue.get()
        finally:
            token.cancel()
            if not task.done():
                task.cancel()

    return StreamingResponse(body(), media_type=TEXT_MEDIA_TYPE)


@router.post("/summarize", summary="Extract and summarize a URL, file path, or text")
async def summarize_input(request: SummarizeRequest) -> StreamingResponse:
    config = _config(request.config)

    async def run(on_chunk: OnChunk, token: CancellationToken) -> None:
        extraction = await extract(request.input, token)
        extraction, effective = prepare_for_summary(extraction, config)
        try:
            await summarize(extraction, effective, on_chunk, token)
        finally:
            image = extraction.image
            if image and image.file_path and extraction.source.lower().startswith(("http://", "https://")):
                Path(image.file_path).unlink(missing_ok=True)

    return await _stream(run)


@router.post("/rewrite", response_model=RewriteResponse)
async def rewrite(request: RewriteRequest) -> RewriteResponse:
    script = await rewrite_for_speech(request.markdown, _config(request.config))
    return RewriteResponse(script=script)


@router.post("/chat")
async def chat(request: ChatRequest) -> StreamingResponse:
    config = _config(request.config)

    async def run(on_chunk: OnChunk, token: CancellationToken) -> str:
        return await chat_with_session(config, request.summary, request.messages, on_chunk)

    return await _stream(run)
