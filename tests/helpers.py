import pymupdf

from tldr.models.extract import FetchResult


def make_pdf(*pages: str) -> bytes:
    doc = pymupdf.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def fetch_result(
    body: str = "",
    *,
    url: str = "https://example.com/",
    status: int = 200,
    content_type: str = "text/html",
    content: bytes | None = None,
) -> FetchResult:
    return FetchResult(
        body=body,
        content_type=content_type,
        url=url,
        status=status,
        content=body.encode("utf-8") if content is None else content,
    )


def fake_fetch(result):
    calls = []

    async def fetch(url):
        calls.append(url)
        if isinstance(result, Exception):
            raise result
        return result

    fetch.calls = calls
    return fetch
