import asyncio
import ipaddress
import logging
import socket
from typing import Awaitable, Callable, Optional
from urllib.parse import urljoin, urlparse

import httpx

from ..cancellation import CancellationToken, check, run_cancellable
from ..config import settings
from ..errors import TldrError, code_set
from ..models.extract import FetchResult

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}
REDIRECT_STATUSES = range(300, 400)

HostnameResolver = Callable[[str], Awaitable[str]]
Fetcher = Callable[[str], Awaitable[FetchResult]]


class FetchError(TldrError):
    allowed_codes = code_set("SSRF", "SCHEME", "TIMEOUT", "REDIRECT_LIMIT", "NETWORK")


# ---------------------------------------------------------------------------
# SSRF guard
# ---------------------------------------------------------------------------

def is_private_ip(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        # Unparseable resolver output counts as private.
        return True

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped

    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or ip.is_multicast
    )


async def default_resolve_hostname(hostname: str) -> str:
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"No address found for {hostname}")
    return infos[0][4][0]


async def _check_url(url: str, resolve_hostname: HostnameResolver) -> None:
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()

    if scheme not in ALLOWED_SCHEMES:
        raise FetchError(
            f"Blocked scheme: {scheme or '(none)'}: only http: and https: are allowed",
            "SCHEME",
        )

    hostname = parsed.hostname
    if not hostname:
        raise FetchError(f"Invalid URL (no host): {url}", "NETWORK")

    try:
        address = await resolve_hostname(hostname)
    except OSError as exc:
        raise FetchError(f"Could not resolve {hostname}: {exc}", "NETWORK") from exc

    if is_private_ip(address):
        raise FetchError(f"Blocked request to private IP: {address}", "SSRF")


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

async def _request(client: httpx.AsyncClient, url: str, timeout: float) -> httpx.Response:
    try:
        return await asyncio.wait_for(
            client.get(
                url,
                headers={"User-Agent": settings.fetch_user_agent},
                follow_redirects=False,
                timeout=timeout,
            ),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise FetchError(f"Request timed out after {timeout:g}s", "TIMEOUT") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Network error: {exc}", "NETWORK") from exc


async def _follow(
    url: str,
    client: httpx.AsyncClient,
    timeout: float,
    max_redirects: int,
    resolve_hostname: HostnameResolver,
) -> FetchResult:
    current_url = url

    for hop in range(max_redirects + 1):
        await _check_url(current_url, resolve_hostname)

        response = await _request(client, current_url, timeout)

        if response.status_code in REDIRECT_STATUSES:
            location = response.headers.get("location")
            if not location:
                raise FetchError("Redirect without Location header", "NETWORK")
            if hop == max_redirects:
                raise FetchError(f"Too many redirects (>{max_redirects})", "REDIRECT_LIMIT")
            current_url = urljoin(current_url, location)
            logger.debug("Following redirect %d -> %s", hop + 1, current_url)
            continue

        return FetchResult(
            body=response.text,
            content_type=response.headers.get("content-type", ""),
            url=current_url,
            status=response.status_code,
            content=response.content,
        )

    raise FetchError(f"Too many redirects (>{max_redirects})", "REDIRECT_LIMIT")


async def safe_fetch(
    url: str,
    *,
    timeout: Optional[float] = None,
    max_redirects: Optional[int] = None,
    resolve_hostname: Optional[HostnameResolver] = None,
    client: Optional[httpx.AsyncClient] = None,
    token: Optional[CancellationToken] = None,
) -> FetchResult:
    """GET `url` without letting it reach private networks.

    Every hop (the initial URL and each redirect target) is scheme-checked and
    resolved before a connection is made. Non-2xx responses are returned, not
    raised; only transport failures become FetchError.
    """
    check(token)

    timeout = settings.fetch_timeout_seconds if timeout is None else timeout
    max_redirects = settings.fetch_max_redirects if max_redirects is None else max_redirects
    resolve_hostname = resolve_hostname or default_resolve_hostname

    if client is not None:
        return await run_cancellable(
            _follow(url, client, timeout, max_redirects, resolve_hostname), token
        )

    async with httpx.AsyncClient() as owned_client:
        return await run_cancellable(
            _follow(url, owned_client, timeout, max_redirects, resolve_hostname), token
        )
