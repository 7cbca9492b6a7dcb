import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..cancellation import CancellationToken, check
from ..config import settings
from ..errors import ExtractionError
from ..models.extract import ExtractionResult, InputType, count_words
from ..models.summarizer import ResolvedConfig
from .classifier_service import classify, expand_home
from .github_service import extract_from_github
from .image_service import extract_from_image
from .notion_service import extract_from_notion
from .pdf_service import extract_from_pdf
from .slack_service import extract_from_slack
from .web_service import extract_from_url
from .youtube_service import extract_from_youtube

logger = logging.getLogger(__name__)

Extractor = Callable[[str, Optional[CancellationToken]], Awaitable[ExtractionResult]]


# ---------------------------------------------------------------------------
# Local sources
# ---------------------------------------------------------------------------

def _read_text_file(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError as exc:
        raise ExtractionError(f"File not found: {path}", "NOT_FOUND") from exc
    except IsADirectoryError as exc:
        raise ExtractionError(f"Path is a directory, not a file: {path}", "NOT_FOUND") from exc
    except PermissionError as exc:
        raise ExtractionError(f"Permission denied: {path}", "AUTH") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ExtractionError(f"Could not read {path}: {exc}", "UNKNOWN") from exc


async def extract_from_file(value: str, token: Optional[CancellationToken] = None) -> ExtractionResult:
    content = await asyncio.to_thread(_read_text_file, expand_home(value))
    return ExtractionResult(content=content, word_count=count_words(content), source=value)


async def extract_from_text(value: str, token: Optional[CancellationToken] = None) -> ExtractionResult:
    return ExtractionResult(content=value, word_count=count_words(value), source="direct input")


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

EXTRACTORS: dict[InputType, Extractor] = {
    InputType.URL: lambda v, t: extract_from_url(v, token=t),
    InputType.URL_ARXIV: lambda v, t: extract_from_url(v, token=t),
    InputType.URL_GITHUB: lambda v, t: extract_from_github(v, token=t),
    InputType.URL_PDF: lambda v, t: extract_from_pdf(v, token=t),
    InputType.FILE_PDF: lambda v, t: extract_from_pdf(v, token=t),
    InputType.URL_IMAGE: lambda v, t: extract_from_image(v, token=t),
    InputType.FILE_IMAGE: lambda v, t: extract_from_image(v, token=t),
    InputType.URL_YOUTUBE: lambda v, t: extract_from_youtube(v, token=t),
    InputType.URL_SLACK: lambda v, t: extract_from_slack(v, cancel_token=t),
    InputType.URL_NOTION: lambda v, t: extract_from_notion(v, cancel_token=t),
    InputType.FILE: extract_from_file,
    InputType.TEXT: extract_from_text,
}


async def extract(
    raw: str,
    token: Optional[CancellationToken] = None,
    *,
    extractors: Optional[dict[InputType, Extractor]] = None,
) -> ExtractionResult:
    """Classify `raw` and run the matching extractor.

    Raises the extractor's own TldrError subclass on failure, or AbortedError
    if `token` is cancelled.
    """
    check(token)

    classified = classify(raw)
    logger.info("Extracting %s input", classified.type.value)

    extractor = (extractors or EXTRACTORS)[classified.type]
    return await extractor(classified.value, token)


# ---------------------------------------------------------------------------
# Summary preparation
# ---------------------------------------------------------------------------

def prepare_for_summary(
    extraction: ExtractionResult, config: ResolvedConfig
) -> tuple[ExtractionResult, ResolvedConfig]:
    """Cap very long inputs and give long ones a bigger output budget."""
    if extraction.image is not None:
        return extraction, config

    words = extraction.content.split()

    if len(words) > settings.long_content_words:
        config = config.model_copy(
            update={"max_tokens": min(config.max_tokens * 2, settings.max_tokens_ceiling)}
        )

    if len(words) > settings.max_input_words:
        logger.warning(
            "Truncating %s from %d to %d words", extraction.source, len(words), settings.max_input_words
        )
        content = " ".join(words[: settings.max_input_words])
        extraction = extraction.model_copy(
            update={"content": content, "word_count": count_words(content)}
        )

    return extraction, config
