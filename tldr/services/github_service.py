import logging
import re
from typing import Optional

from ..cancellation import CancellationToken, check
from ..errors import TldrError
from ..models.extract import ExtractionResult, count_words
from .fetch_service import Fetcher, safe_fetch
from .web_service import extract_from_url

logger = logging.getLogger(__name__)

BLOB_PATTERN = re.compile(
    r"^https?://(www\.)?github\.com/([^/]+)/([^/]+)/blob/([^/]+)/(.+)", re.IGNORECASE
)


def raw_url_for(url: str) -> Optional[str]:
    """Map a github.com blob URL to its raw.githubusercontent.com twin, or None."""
    match = BLOB_PATTERN.match(url)
    if not match:
        return None
    _, owner, repo, ref, path = match.groups()
    return f"https://raw.githubusercontent.com/{owner}/{repo}/{ref}/{path}"


async def extract_from_github(
    url: str,
    *,
    fetch: Optional[Fetcher] = None,
    token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    check(token)
    fetch = fetch or (lambda u: safe_fetch(u, token=token))

    match = BLOB_PATTERN.match(url)
    if not match:
        return await extract_from_url(url, fetch=fetch, token=token)

    _, owner, repo, _, path = match.groups()
    raw_url = raw_url_for(url)

    try:
        result = await fetch(raw_url)
    except TldrError as exc:
        logger.warning("Raw fetch of %s failed (%s), falling back to page scrape", raw_url, exc)
        return await extract_from_url(url, fetch=fetch, token=token)

    if not 200 <= result.status < 300 or "text/html" in result.content_type:
        logger.warning("Raw fetch of %s returned %s, falling back to page scrape", raw_url, result.status)
        return await extract_from_url(url, fetch=fetch, token=token)

    filename = path.rsplit("/", 1)[-1]
    return ExtractionResult(
        title=f"{filename} — {owner}/{repo}",
        content=result.body,
        word_count=count_words(result.body),
        source=url,
    )
