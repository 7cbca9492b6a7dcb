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

SLACK_API_URL = "https://slack.com/api"
REPLIES_LIMIT = 200

SLACK_URL_PATTERN = re.compile(r"slack\.com/archives/([A-Z0-9]+)/p(\d+)", re.IGNORECASE)

RepliesFetcher = Callable[[str, str, str], Awaitable[list[dict]]]
UserNameFetcher = Callable[[str, str], Awaitable[str]]


class SlackError(TldrError):
    allowed_codes = code_set("NO_TOKEN", "INVALID_URL", "NOT_FOUND", "AUTH", "NETWORK")


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

_NOT_FOUND_ERRORS = ("channel_not_found", "thread_not_found")
_AUTH_ERRORS = ("invalid_auth", "not_authed", "token_revoked")


def build_slack_error(message: str) -> SlackError:
    if any(e in message for e in _NOT_FOUND_ERRORS):
        return SlackError(f"Thread not found: {message}", "NOT_FOUND")
    if any(e in message for e in _AUTH_ERRORS):
        return SlackError(f"Authentication failed: {message}", "AUTH")
    return SlackError(f"Slack API error: {message}", "NETWORK")


def parse_slack_url(url: str) -> tuple[str, str]:
    """Returns (channel_id, message_ts). The permalink's `p<digits>` becomes `sec.micro`."""
    match = SLACK_URL_PATTERN.search(url)
    if not match:
        raise SlackError(
            f"Could not parse Slack channel and timestamp from URL: {url}", "INVALID_URL"
        )
    channel_id, raw = match.group(1), match.group(2)
    return channel_id, f"{raw[:10]}.{raw[10:]}"


# ---------------------------------------------------------------------------
# Web API
# ---------------------------------------------------------------------------

async def _call(
    method: str, token: str, params: dict, client: Optional[httpx.AsyncClient] = None
) -> dict:
    if client is None:
        async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds) as owned:
            return await _call(method, token, params, owned)

    response = await client.get(
        f"{SLACK_API_URL}/{method}",
        params=params,
        headers={"Authorization": f"Bearer {token}"},
    )
    return response.json()


async def default_fetch_replies(
    token: str, channel: str, ts: str, *, client: Optional[httpx.AsyncClient] = None
) -> list[dict]:
    try:
        data = await _call(
            "conversations.replies",
            token,
            {"channel": channel, "ts": ts, "limit": REPLIES_LIMIT},
            client,
        )
    except (httpx.HTTPError, ValueError) as exc:
        raise build_slack_error(str(exc)) from exc

    if not data.get("ok"):
        raise build_slack_error(data.get("error") or "Unknown error")
    return data.get("messages") or []


async def default_fetch_user_name(
    token: str, user_id: str, *, client: Optional[httpx.AsyncClient] = None
) -> str:
    try:
        data = await _call("users.info", token, {"user": user_id}, client)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Slack user lookup failed for %s: %s", user_id, exc)
        return user_id

    user = data.get("user") or {}
    profile = user.get("profile") or {}
    return profile.get("display_name") or user.get("real_name") or user.get("name") or user_id


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

async def extract_from_slack(
    url: str,
    *,
    token: Optional[str] = None,
    fetch_replies: Optional[RepliesFetcher] = None,
    fetch_user_name: Optional[UserNameFetcher] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    check(cancel_token)

    token = token or os.getenv("SLACK_TOKEN")
    if not token:
        raise SlackError("Set SLACK_TOKEN environment variable to extract Slack threads.", "NO_TOKEN")

    channel_id, message_ts = parse_slack_url(url)
    fetch_replies = fetch_replies or default_fetch_replies
    fetch_user_name = fetch_user_name or default_fetch_user_name

    messages = await fetch_replies(token, channel_id, message_ts)
    if not messages:
        raise SlackError("Thread not found or empty.", "NOT_FOUND")

    names: dict[str, str] = {}
    lines = []
    for message in messages:
        user_id = message.get("user")
        if not user_id:
            author = "Unknown"
        else:
            if user_id not in names:
                names[user_id] = await fetch_user_name(token, user_id)
            author = names[user_id]
        lines.append(f"[{author}]: {message.get('text') or ''}")

    content = "\n\n".join(lines)
    title = f"Slack Thread ({len(messages)} messages)" if len(messages) > 1 else "Slack Message"

    return ExtractionResult(
        title=title,
        content=content,
        word_count=count_words(content),
        source=url,
    )
