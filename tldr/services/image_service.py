import asyncio
import base64
import os
import re
import tempfile
from typing import Optional
from urllib.parse import urlparse

from ..cancellation import CancellationToken, check
from ..errors import TldrError, code_set
from ..models.extract import ExtractionResult, ImageData, ImageMediaType
from .classifier_service import expand_home
from .fetch_service import Fetcher, safe_fetch

_URL = re.compile(r"^https?://", re.IGNORECASE)

EXTENSION_MEDIA_TYPES: dict[str, ImageMediaType] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


class ImageError(TldrError):
    allowed_codes = code_set("NETWORK", "NOT_FOUND", "UNKNOWN")


def media_type_for(filename: str) -> ImageMediaType:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return EXTENSION_MEDIA_TYPES.get(ext, "image/png")


def _read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except (FileNotFoundError, IsADirectoryError) as exc:
        raise ImageError(f"Image not found: {path}", "NOT_FOUND") from exc
    except OSError as exc:
        raise ImageError(f"Could not read image {path}: {exc}", "UNKNOWN") from exc


def _write_temp(data: bytes, filename: str) -> str:
    with tempfile.NamedTemporaryFile(prefix="tldr-", suffix=f"-{filename}", delete=False) as tmp:
        tmp.write(data)
        return tmp.name


def _result(source: str, filename: str, data: bytes, file_path: str) -> ExtractionResult:
    return ExtractionResult(
        title=filename,
        content="",
        word_count=0,
        source=source,
        image=ImageData(
            base64=base64.b64encode(data).decode("ascii"),
            media_type=media_type_for(filename),
            file_path=file_path,
        ),
    )


async def extract_from_image(
    source: str,
    *,
    fetch: Optional[Fetcher] = None,
    token: Optional[CancellationToken] = None,
) -> ExtractionResult:
    """Load an image for a vision-capable provider.

    Remote images are written to a temp file so CLI backends can read them by
    path; deleting that file is the caller's job.
    """
    check(token)

    if _URL.match(source):
        fetch = fetch or (lambda url: safe_fetch(url, token=token))
        result = await fetch(source)
        if not 200 <= result.status < 300:
            raise ImageError(f"Failed to fetch image: HTTP {result.status}", "NETWORK")

        filename = os.path.basename(urlparse(source).path) or "image"
        temp_path = await asyncio.to_thread(_write_temp, result.content, filename)
        return _result(source, filename, result.content, temp_path)

    absolute_path = os.path.abspath(expand_home(source))
    data = await asyncio.to_thread(_read_file, absolute_path)
    return _result(source, os.path.basename(absolute_path), data, absolute_path)
