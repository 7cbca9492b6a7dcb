import asyncio
import logging
import re
from typing import Optional

import lxml.html
from lxml.etree import ParserError
from newspaper import Article, Config
from newspaper.article import ArticleException

from ..cancellation import CancellationToken, check
from ..config import settings
from ..models.extract import ExtractionResult, count_words
from .fetch_service import Fetcher, safe_fetch
from .pdf_service import extract_from_pdf

logger = logging.getLogger(__name__)

_PDF_URL = re.compile(r"\.pdf(\?.*)?$", re.IGNORECASE)

PARTIAL_TEXT_CHARS = 200
PARTIAL_HTML_CHARS = 5000

# First match wins.
DATE_XPATHS = [
    "//meta[@property='article:published_time']/@content",
    "//meta[@name='date']/@content",
    "//meta[@name='DC.date']/@content",
    "//time[@datetime]/@datetime",
]


# ---------------------------------------------------------------------------
# HTML helpers
# ---------------------------------------------------------------------------

def _newspaper_config() -> Config:
    config = Config()
    config.browser_user_agent = settings.fetch_user_agent
    config.fetch_images = False
    return config


def _run_newspaper(url: str, html: str) -> tuple[str, list[str], str]:
    """Parse already-fetched HTML with newspaper. Returns (title, authors, text).
    Synchronous: always call via asyncio.to_thread."""
    article = Article(url, config=_newspaper_config())
    try:
        article.download(input_html=html)
        article.parse()
    except ArticleException as exc:
        logger.warning("newspaper could not parse %s: %s", url, exc)
        return "", [], ""
    return article.title or "", article.authors or [], article.text or ""


def find_published_date(html: str) -> Optional[str]:
    if not html.strip():
        return None
    try:
        tree = lxml.html.fromstring(html)
    except ParserError:
        return None

    for xpath in DATE_XPATHS:
        values = [v.strip() for v in tree.xpath(xpath) if v and v.strip()]
        if values:
            return values[0]
    return None


def is_partial(text: str, html: str) -> bool:
    return len(text) < PARTIAL_TEXT_CHARS and len(html) > PARTIAL_HTML_CHARS


def _is_pdf(content_type: str, url: str) -> bool:
    return "application/pdf" in content_type.lower() or bool(_PDF_URL.search(url))


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

async def extract_from_url(
    url: str,
    *,
    fetch: Optional[Fetcher] = None,
    token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    check(token)
    fetch = fetch or (lambda u: safe_fetch(u, token=token))

    result = await fetch(url)

    if _is_pdf(result.content_type, result.url):
        logger.info("%s served a PDF, switching extractor", url)
        return await extract_from_pdf(url, data=result.content, token=token)

    title, authors, text = await asyncio.to_thread(_run_newspaper, result.url, result.body)
    text = text.strip()

    if not text:
        return ExtractionResult(content="", word_count=0, source=result.url)

    return ExtractionResult(
        title=title or None,
        author=", ".join(authors) or None,
        date=find_published_date(result.body),
        content=text,
        word_count=count_words(text),
        source=result.url,
        partial=True if is_partial(text, result.body) else None,
    )
