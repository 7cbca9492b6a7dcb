import httpx
import pytest

from tldr.errors import ErrorCode
from tldr.services.notion_service import (
    NotionError,
    block_to_text,
    default_fetch_blocks,
    default_fetch_page,
    extract_from_notion,
    parse_page_id,
)

PAGE_ID = "01234567-89ab-cdef-0123-456789abcdef"


@pytest.mark.parametrize(
    "url",
    [
        "https://www.notion.so/team/Roadmap-0123456789abcdef0123456789abcdef",
        "https://www.notion.so/0123456789ABCDEF0123456789ABCDEF",
        "https://www.notion.so/01234567-89ab-cdef-0123-456789abcdef",
    ],
)
def test_parse_page_id(url):
    assert parse_page_id(url) == PAGE_ID


def test_parse_page_id_rejects():
    with pytest.raises(NotionError) as info:
        parse_page_id("https://www.notion.so/team/Roadmap")
    assert info.value.code is ErrorCode.INVALID_URL


def _rt(text):
    return {"rich_text": [{"plain_text": text}]}


@pytest.mark.parametrize(
    "block, expected",
    [
        ({"type": "paragraph", "paragraph": _rt("Plain")}, "Plain"),
        ({"type": "heading_1", "heading_1": _rt("Top")}, "# Top"),
        ({"type": "heading_3", "heading_3": _rt("Low")}, "### Low"),
        ({"type": "bulleted_list_item", "bulleted_list_item": _rt("dot")}, "- dot"),
        ({"type": "numbered_list_item", "numbered_list_item": _rt("first")}, "1. first"),
        ({"type": "to_do", "to_do": {**_rt("ship"), "checked": True}}, "- [x] ship"),
        ({"type": "to_do", "to_do": {**_rt("test"), "checked": False}}, "- [ ] test"),
        ({"type": "callout", "callout": _rt("Heads up")}, "> Heads up"),
        ({"type": "code", "code": {**_rt("print(1)"), "language": "python"}}, "```python\nprint(1)\n```"),
        ({"type": "divider", "divider": {}}, "---"),
        ({"type": "child_page", "child_page": {"title": "Notes"}}, "[Sub-page: Notes]"),
        ({"type": "child_database", "child_database": {}}, "[Sub-database: Untitled]"),
        ({"type": "image", "image": {"type": "external"}}, "[image: embedded content]"),
        ({"type": "synced_block", "synced_block": _rt("fallback")}, "fallback"),
        ({"type": "table", "table": {"table_width": 2}}, ""),
        ({"type": "paragraph"}, ""),
    ],
)
def test_block_to_text(block, expected):
    assert block_to_text(block) == expected


def _block(block_id, text, has_children=False):
    return {"id": block_id, "type": "paragraph", "paragraph": _rt(text), "has_children": has_children}


def _notion_client(tree, requests=None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        assert request.headers["Notion-Version"]
        assert request.headers["Authorization"] == "Bearer secret"
        block_id = request.url.path.split("/")[3]
        return httpx.Response(200, json=tree[block_id])

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_blocks_paginates_and_caps_depth():
    tree = {
        "page": {"results": [_block("a", "Level one", has_children=True)], "has_more": True, "next_cursor": "c1"},
        "a": {"results": [_block("b", "Level two", has_children=True)], "has_more": False},
        "b": {"results": [_block("c", "Level three", has_children=True)], "has_more": False},
        "c": {"results": [_block("d", "Level four")], "has_more": False},
    }
    second_page = {"results": [_block("z", "After the cursor")], "has_more": False, "next_cursor": None}
    requests = []

    def handler(request):
        requests.append(request)
        block_id = request.url.path.split("/")[3]
        if block_id == "page" and request.url.params.get("start_cursor") == "c1":
            return httpx.Response(200, json=second_page)
        return httpx.Response(200, json=tree[block_id])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        text = await default_fetch_blocks("secret", "page", max_depth=2, client=client)

    assert text == "Level one\n\nLevel two\n\nLevel three\n\nAfter the cursor"
    assert "Level four" not in text
    assert all(r.url.params["page_size"] == "100" for r in requests)


@pytest.mark.asyncio
async def test_fetch_page_title():
    tree = {
        PAGE_ID: {
            "properties": {
                "Status": {"type": "select"},
                "Name": {"type": "title", "title": [{"plain_text": "Road"}, {"plain_text": "map"}]},
            }
        }
    }
    async with _notion_client(tree) as client:
        assert await default_fetch_page("secret", PAGE_ID, client=client) == "Roadmap"


@pytest.mark.asyncio
async def test_fetch_page_without_title():
    async with _notion_client({PAGE_ID: {"properties": {}}}) as client:
        assert await default_fetch_page("secret", PAGE_ID, client=client) == "Untitled"


@pytest.mark.parametrize(
    "status, body, code",
    [
        (404, {"code": "object_not_found", "message": "Could not find page"}, ErrorCode.NOT_FOUND),
        (401, {"code": "unauthorized", "message": "API token is invalid."}, ErrorCode.AUTH),
        (400, {"code": "object_not_found", "message": "nope"}, ErrorCode.NOT_FOUND),
        (502, {"code": "internal_server_error", "message": "bad gateway"}, ErrorCode.NETWORK),
    ],
)
@pytest.mark.asyncio
async def test_api_errors(status, body, code):
    transport = httpx.MockTransport(lambda r: httpx.Response(status, json=body))
    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(NotionError) as info:
            await default_fetch_page("secret", PAGE_ID, client=client)
    assert info.value.code is code


@pytest.mark.asyncio
async def test_extract_from_notion():
    async def page(token, page_id):
        assert (token, page_id) == ("secret", PAGE_ID)
        return "Roadmap"

    async def blocks(token, block_id):
        return "# Q3\n\n- ship it"

    result = await extract_from_notion(
        "https://www.notion.so/Roadmap-0123456789abcdef0123456789abcdef",
        token="secret",
        fetch_page=page,
        fetch_blocks=blocks,
    )

    assert result.title == "Roadmap"
    assert result.content == "# Q3\n\n- ship it"
    assert result.word_count == 5


@pytest.mark.asyncio
async def test_missing_token(monkeypatch):
    monkeypatch.delenv("NOTION_TOKEN", raising=False)
    with pytest.raises(NotionError) as info:
        await extract_from_notion("https://www.notion.so/0123456789abcdef0123456789abcdef")
    assert info.value.code is ErrorCode.NO_TOKEN
