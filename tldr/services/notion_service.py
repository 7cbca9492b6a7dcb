import logging
import os
import re
from typing import Awaitable, Callable, Optional

import httpx

from ..cancellation import CancellationToken, check
from ..config import settings
from ..errors import TldrError, code_set
from ..models.extract import ExtractionResult, count_words

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
PAGE_SIZE = 100

NOTION_ID_PATTERN = re.compile(
    r"([a-f0-9]{32}|[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})\s*$",
    re.IGNORECASE,
)

PageFetcher = Callable[[str, str], Awaitable[str]]
BlocksFetcher = Callable[[str, str], Awaitable[str]]


class NotionError(TldrError):
    allowed_codes = code_set("NO_TOKEN", "INVALID_URL", "NOT_FOUND", "AUTH", "NETWORK")


def parse_page_id(url: str) -> str:
    match = NOTION_ID_PATTERN.search(url)
    if not match:
        raise NotionError(f"Could not parse Notion page ID from URL: {url}", "INVALID_URL")
    raw = match.group(1).replace("-", "").lower()
    return f"{raw[:8]}-{raw[8:12]}-{raw[12:16]}-{raw[16:20]}-{raw[20:]}"


# ---------------------------------------------------------------------------
# Block rendering
# ---------------------------------------------------------------------------

_PREFIXES = {
    "heading_1": "# ",
    "heading_2": "## ",
    "heading_3": "### ",
    "bulleted_list_item": "- ",
    "numbered_list_item": "1. ",
    "quote": "> ",
    "callout": "> ",
    "toggle": "> ",
}

_EMBEDDED = {"image", "video", "file", "audio", "pdf", "embed", "bookmark"}


def rich_text(items: Optional[list[dict]]) -> str:
    if not items:
        return ""
    return "".join(item.get("plain_text", "") for item in items)


def block_to_text(block: dict) -> str:
    block_type = block.get("type", "")
    content = block.get(block_type)
    if not isinstance(content, dict):
        return ""

    text = rich_text(content.get("rich_text"))

    if block_type == "paragraph":
        return text
    if block_type in _PREFIXES:
        return _PREFIXES[block_type] + text
    if block_type == "to_do":
        return f"- [{'x' if content.get('checked') else ' '}] {text}"
    if block_type == "code":
        return f"```{content.get('language', '')}\n{text}\n```"
    if block_type == "divider":
        return "---"
    if block_type == "child_page":
        return f"[Sub-page: {content.get('title') or 'Untitled'}]"
    if block_type == "child_database":
        return f"[Sub-database: {content.get('title') or 'Untitled'}]"
    if block_type in _EMBEDDED:
        return f"[{block_type}: embedded content]"
    return text


# ---------------------------------------------------------------------------
# REST API
# ---------------------------------------------------------------------------

def _raise_for_notion(response: httpx.Response) -> None:
    if response.is_success:
        return

    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("code", "") if isinstance(body, dict) else ""
    message = body.get("message", response.text[:200]) if isinstance(body, dict) else ""

    if response.status_code == 404 or code == "object_not_found":
        raise NotionError(
            "Page not found. Check the URL and ensure the integration has access.", "NOT_FOUND"
        )
    if response.status_code == 401 or code == "unauthorized":
        raise NotionError("Authentication failed. Check your NOTION_TOKEN.", "AUTH")
    raise NotionError(f"Notion API error: {message}", "NETWORK")


async def _get(client: httpx.AsyncClient, token: str, path: str, params: Optional[dict] = None) -> dict:
    headers = {"Authorization": f"Bearer {token}", "Notion-Version": NOTION_VERSION}
    try:
        response = await client.get(f"{NOTION_API_URL}{path}", params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise NotionError(f"Notion API error: {exc}", "NETWORK") from exc
    _raise_for_notion(response)
    return response.json()


def _new_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.fetch_timeout_seconds)


async def default_fetch_page(
    token: str, page_id: str, *, client: Optional[httpx.AsyncClient] = None
) -> str:
    if client is None:
        async with _new_client() as owned:
            return await default_fetch_page(token, page_id, client=owned)

    page = await _get(client, token, f"/pages/{page_id}")
    for prop in (page.get("properties") or {}).values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            return rich_text(prop.get("title")) or "Untitled"
    return "Untitled"


async def _list_children(client: httpx.AsyncClient, token: str, block_id: str) -> list[dict]:
    blocks: list[dict] = []
    cursor = None
    while True:
        params = {"page_size": PAGE_SIZE}
        if cursor:
            params["start_cursor"] = cursor
        data = await _get(client, token, f"/blocks/{block_id}/children", params)
        blocks.extend(data.get("results") or [])
        cursor = data.get("next_cursor") if data.get("has_more") else None
        if not cursor:
            return blocks


async def default_fetch_blocks(
    token: str,
    block_id: str,
    *,
    depth: int = 0,
    max_depth: Optional[int] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Render a block tree as markdown-ish text.

    Children are followed down to `max_depth` levels below the page; anything
    deeper is dropped without error.
    """
    max_depth = settings.notion_max_depth if max_depth is None else max_depth
    if depth > max_depth:
        return ""

    if client is None:
        async with _new_client() as owned:
            return await default_fetch_blocks(
                token, block_id, depth=depth, max_depth=max_depth, client=owned
            )

    lines = []
    for block in await _list_children(client, token, block_id):
        text = block_to_text(block)
        if text:
            lines.append(text)
        if block.get("has_children") and depth < max_depth:
            child_text = await default_fetch_blocks(
                token, block["id"], depth=depth + 1, max_depth=max_depth, client=client
            )
            if child_text:
                lines.append(child_text)

    return "\n\n".join(lines)


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

async def extract_from_notion(
    url: str,
    *,
    token: Optional[str] = None,
    fetch_page: Optional[PageFetcher] = None,
    fetch_blocks: Optional[BlocksFetcher] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    check(cancel_token)

    token = token or os.getenv("NOTION_TOKEN")
    if not token:
        raise NotionError("Set NOTION_TOKEN environment variable to extract Notion pages.", "NO_TOKEN")

    page_id = parse_page_id(url)
    fetch_page = fetch_page or default_fetch_page
    fetch_blocks = fetch_blocks or default_fetch_blocks

    title = await fetch_page(token, page_id)
    content = await fetch_blocks(token, page_id)

    return ExtractionResult(
        title=title,
        content=content,
        word_count=count_words(content),
        source=url,
    )
