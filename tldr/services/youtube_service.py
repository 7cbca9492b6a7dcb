import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, Optional
from urllib.parse import urlencode

from youtube_transcript_api import (
    AgeRestricted,
    CouldNotRetrieveTranscript,
    InvalidVideoId,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
    VideoUnplayable,
    YouTubeTranscriptApi,
)

from ..cancellation import CancellationToken, check
from ..errors import TldrError, code_set
from ..models.extract import ExtractionResult, count_words
from .fetch_service import safe_fetch

logger = logging.getLogger(__name__)

TranscriptFetcher = Callable[[str], Awaitable[list[str]]]
TitleFetcher = Callable[[str], Awaitable[Optional[str]]]

VIDEO_ID_PATTERNS = [
    re.compile(r"[?&]v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"),
    re.compile(r"/shorts/([a-zA-Z0-9_-]{11})"),
]

OEMBED_URL = "https://www.youtube.com/oembed"

NO_TRANSCRIPT_MESSAGE = (
    "No transcript available for this video. "
    "Try a video with captions enabled, or paste a transcript directly."
)


class YouTubeError(TldrError):
    allowed_codes = code_set("INVALID_URL", "NO_TRANSCRIPT", "NETWORK")


# The video itself has no readable captions. Blocked or failed requests stay NETWORK.
_UNAVAILABLE = (
    TranscriptsDisabled,
    NoTranscriptFound,
    VideoUnavailable,
    VideoUnplayable,
    AgeRestricted,
    InvalidVideoId,
)


def parse_video_id(url: str) -> str:
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    raise YouTubeError(f"Could not parse YouTube video ID from URL: {url}", "INVALID_URL")


# ---------------------------------------------------------------------------
# Default transports
# ---------------------------------------------------------------------------

def _fetch_transcript_sync(video_id: str) -> list[str]:
    try:
        transcript = YouTubeTranscriptApi().fetch(video_id)
    except _UNAVAILABLE as exc:
        raise YouTubeError(NO_TRANSCRIPT_MESSAGE, "NO_TRANSCRIPT") from exc
    except (CouldNotRetrieveTranscript, OSError) as exc:
        raise YouTubeError(f"Failed to fetch transcript: {exc}", "NETWORK") from exc
    return [snippet.text for snippet in transcript]


async def default_fetch_transcript(video_id: str) -> list[str]:
    return await asyncio.to_thread(_fetch_transcript_sync, video_id)


async def default_fetch_title(url: str) -> Optional[str]:
    oembed = f"{OEMBED_URL}?{urlencode({'url': url, 'format': 'json'})}"
    try:
        result = await safe_fetch(oembed)
        if result.status != 200:
            return None
        title = json.loads(result.body).get("title") or ""
    except (TldrError, ValueError, AttributeError) as exc:
        logger.warning("YouTube title lookup failed for %s: %s", url, exc)
        return None
    return title.strip() or None


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

async def extract_from_youtube(
    url: str,
    *,
    fetch_transcript: Optional[TranscriptFetcher] = None,
    fetch_title: Optional[TitleFetcher] = None,
    token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    check(token)
    fetch_transcript = fetch_transcript or default_fetch_transcript
    fetch_title = fetch_title or default_fetch_title

    video_id = parse_video_id(url)
    segments = await fetch_transcript(video_id)

    if not segments:
        raise YouTubeError(NO_TRANSCRIPT_MESSAGE, "NO_TRANSCRIPT")

    # Segment text is kept verbatim, including its own newlines.
    content = " ".join(segments)

    return ExtractionResult(
        title=await fetch_title(url),
        content=content,
        word_count=count_words(content),
        source=url,
    )
