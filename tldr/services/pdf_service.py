import asyncio
import logging
import re
from typing import Optional

import pymupdf

from ..cancellation import CancellationToken, check
from ..errors import TldrError, code_set
from ..models.extract import ExtractionResult, count_words
from .classifier_service import expand_home
from .fetch_service import Fetcher, safe_fetch

logger = logging.getLogger(__name__)

_URL = re.compile(r"^https?://", re.IGNORECASE)


class PdfError(TldrError):
    allowed_codes = code_set("NOT_FOUND", "UNKNOWN")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _pdf_title(page_count: int) -> str:
    return f"PDF ({page_count} page{'' if page_count == 1 else 's'})"


def _read_pdf(data: bytes) -> tuple[str, int]:
    """Returns (text, page_count). Synchronous: always call via asyncio.to_thread."""
    try:
        doc = pymupdf.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as exc:
        raise PdfError(f"Could not open PDF: {exc}", "UNKNOWN") from exc

    with doc:
        text = "\n".join(page.get_text() for page in doc)
        return text.strip(), doc.page_count


def _read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except (FileNotFoundError, IsADirectoryError) as exc:
        raise PdfError(f"PDF not found: {path}", "NOT_FOUND") from exc
    except OSError as exc:
        raise PdfError(f"Could not read PDF {path}: {exc}", "UNKNOWN") from exc


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

async def extract_from_pdf(
    source: str,
    *,
    fetch: Optional[Fetcher] = None,
    data: Optional[bytes] = None,
    token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    """Extract the text layer of a PDF given as a local path or an http(s) URL.

    Pass `data` when the bytes were already downloaded (the web extractor
    does this for URLs that turn out to serve a PDF). A PDF without a text
    layer is a successful, empty result.
    """
    check(token)

    if data is None:
        if _URL.match(source):
            fetch = fetch or (lambda url: safe_fetch(url, token=token))
            result = await fetch(source)
            if result.status == 404:
                raise PdfError(f"PDF not found: {source}", "NOT_FOUND")
            if not 200 <= result.status < 300:
                raise PdfError(f"Could not download PDF: HTTP {result.status}", "UNKNOWN")
            data = result.content
        else:
            data = await asyncio.to_thread(_read_file, expand_home(source))

    text, page_count = await asyncio.to_thread(_read_pdf, data)
    if not text:
        logger.info("PDF %s has no extractable text", source)

    return ExtractionResult(
        title=_pdf_title(page_count),
        content=text,
        word_count=count_words(text),
        source=source,
    )
