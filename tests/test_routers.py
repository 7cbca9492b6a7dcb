import pytest
from fastapi.testclient import TestClient

from tldr.cancellation import AbortedError
from tldr.errors import ErrorCode, TldrError
from tldr.main import app, status_for
from tldr.models.extract import ExtractionResult, ImageData
from tldr.models.summarizer import TldrResult
from tldr.routers import extract as extract_router
from tldr.routers import summarizer as summarizer_router
from tldr.services.fetch_service import FetchError
from tldr.services.slack_service import SlackError
from tldr.services.summarizer_service import SummarizerError
from tldr.services.youtube_service import YouTubeError

client = TestClient(app)

ARTICLE = ExtractionResult(title="Tides", content="The moon pulls the sea.", word_count=5, source="direct input")


def _extract_returning(result):
    async def fake(raw, token=None):
        return result

    return fake


def _extract_raising(error):
    async def fake(raw, token=None):
        raise error

    return fake


def test_health():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "API is running!"}


def test_extract_get_and_post(monkeypatch):
    monkeypatch.setattr(extract_router, "extract", _extract_returning(ARTICLE))

    got = client.get("/extract", params={"input": "hello"})
    posted = client.post("/extract", json={"input": "hello"})

    assert got.status_code == posted.status_code == 200
    assert got.json()["title"] == "Tides"
    assert posted.json()["word_count"] == 5


@pytest.mark.parametrize(
    "error, status",
    [
        (FetchError("Blocked private address", "SSRF"), 400),
        (FetchError("Only http and https are allowed", "SCHEME"), 400),
        (SlackError("No Slack token", "NO_TOKEN"), 401),
        (YouTubeError("Not a YouTube link", "INVALID_URL"), 422),
        (YouTubeError("No transcript", "NO_TRANSCRIPT"), 404),
        (FetchError("Too many redirects", "REDIRECT_LIMIT"), 502),
        (FetchError("Request timed out after 10s", "TIMEOUT"), 504),
    ],
)
def test_extraction_errors_map_to_status(monkeypatch, error, status):
    monkeypatch.setattr(extract_router, "extract", _extract_raising(error))

    response = client.post("/extract", json={"input": "https://example.com"})

    assert response.status_code == status
    assert response.json() == {"detail": error.message, "code": error.code.value}


def test_every_code_has_an_error_status():
    for code in ErrorCode:
        assert status_for(TldrError("x", code)) >= 400


@pytest.fixture
def fake_summarize(monkeypatch):
    calls = []

    async def summarize(extraction, config, on_chunk, token=None):
        calls.append((extraction, config))
        for chunk in ("## TL;DR\n", "The moon."):
            on_chunk(chunk)
        return TldrResult(extraction=extraction, summary="## TL;DR\nThe moon.", timestamp=0)

    monkeypatch.setattr(summarizer_router, "summarize", summarize)
    return calls


def test_summarize_streams_text(monkeypatch, fake_summarize):
    monkeypatch.setattr(summarizer_router, "extract", _extract_returning(ARTICLE))

    response = client.post(
        "/summarize", json={"input": "hello", "config": {"model": "m", "provider": "ollama"}}
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "## TL;DR\nThe moon."
    extraction, config = fake_summarize[0]
    assert extraction == ARTICLE
    assert config.provider.value == "ollama"


def test_summarize_extraction_failure_has_status(monkeypatch, fake_summarize):
    monkeypatch.setattr(
        summarizer_router, "extract", _extract_raising(SlackError("No Slack token", "NO_TOKEN"))
    )

    response = client.post("/summarize", json={"input": "https://acme.slack.com/archives/C1/p1"})

    assert response.status_code == 401
    assert response.json()["code"] == "NO_TOKEN"
    assert fake_summarize == []


def test_summarize_provider_failure_before_first_chunk(monkeypatch):
    async def summarize(extraction, config, on_chunk, token=None):
        raise SummarizerError("Rate limited", "RATE_LIMIT")

    monkeypatch.setattr(summarizer_router, "extract", _extract_returning(ARTICLE))
    monkeypatch.setattr(summarizer_router, "summarize", summarize)

    response = client.post("/summarize", json={"input": "hello"})

    assert response.status_code == 429
    assert response.json() == {"detail": "Rate limited", "code": "RATE_LIMIT"}


def test_summarize_failure_after_first_chunk_ends_body(monkeypatch):
    async def summarize(extraction, config, on_chunk, token=None):
        on_chunk("partial ")
        raise SummarizerError("Network error", "NETWORK")

    monkeypatch.setattr(summarizer_router, "extract", _extract_returning(ARTICLE))
    monkeypatch.setattr(summarizer_router, "summarize", summarize)

    response = client.post("/summarize", json={"input": "hello"})

    assert response.status_code == 200
    assert response.text == "partial "


def test_aborted_maps_to_client_closed(monkeypatch):
    monkeypatch.setattr(summarizer_router, "extract", _extract_raising(AbortedError()))
    response = client.post("/summarize", json={"input": "hello"})
    assert response.status_code == 499


def test_remote_image_temp_file_is_removed(monkeypatch, fake_summarize, tmp_path):
    temp = tmp_path / "tldr-cat.png"
    temp.write_bytes(b"\x89PNG")
    image = ExtractionResult(
        title="cat.png",
        content="",
        word_count=0,
        source="https://img.test/cat.png",
        image=ImageData(base64="iVBO", media_type="image/png", file_path=str(temp)),
    )
    monkeypatch.setattr(summarizer_router, "extract", _extract_returning(image))

    response = client.post("/summarize", json={"input": "https://img.test/cat.png"})

    assert response.status_code == 200
    assert not temp.exists()


def test_local_image_is_kept(monkeypatch, fake_summarize, tmp_path):
    local = tmp_path / "cat.png"
    local.write_bytes(b"\x89PNG")
    image = ExtractionResult(
        title="cat.png",
        content="",
        word_count=0,
        source=str(local),
        image=ImageData(base64="iVBO", media_type="image/png", file_path=str(local)),
    )
    monkeypatch.setattr(summarizer_router, "extract", _extract_returning(image))

    client.post("/summarize", json={"input": str(local)})

    assert local.exists()


def test_rewrite(monkeypatch):
    async def rewrite_for_speech(markdown, config):
        return f"spoken: {markdown}"

    monkeypatch.setattr(summarizer_router, "rewrite_for_speech", rewrite_for_speech)

    response = client.post("/rewrite", json={"markdown": "# Notes"})

    assert response.status_code == 200
    assert response.json() == {"script": "spoken: # Notes"}


def test_rewrite_rejects_empty_markdown():
    assert client.post("/rewrite", json={"markdown": ""}).status_code == 422


def test_chat_streams(monkeypatch):
    seen = []

    async def chat_with_session(config, summary, messages, on_chunk):
        seen.append((summary, [m.content for m in messages]))
        on_chunk("Because ")
        on_chunk("gravity.")
        return "Because gravity."

    monkeypatch.setattr(summarizer_router, "chat_with_session", chat_with_session)

    response = client.post(
        "/chat",
        json={"summary": "## TL;DR\nMoon.", "messages": [{"role": "user", "content": "Why?"}]},
    )

    assert response.status_code == 200
    assert response.text == "Because gravity."
    assert seen == [("## TL;DR\nMoon.", ["Why?"])]


def test_missing_temp_file_does_not_mask_summarize_error(monkeypatch, tmp_path):
    async def summarize(extraction, config, on_chunk, token=None):
        raise SummarizerError("Rate limited", "RATE_LIMIT")

    image = ExtractionResult(
        title="cat.png",
        content="",
        word_count=0,
        source="https://img.test/cat.png",
        image=ImageData(base64="iVBO", media_type="image/png", file_path=str(tmp_path / "gone.png")),
    )
    monkeypatch.setattr(summarizer_router, "extract", _extract_returning(image))
    monkeypatch.setattr(summarizer_router, "summarize", summarize)

    response = client.post("/summarize", json={"input": "https://img.test/cat.png"})

    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMIT"
