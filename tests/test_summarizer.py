import pytest

from tldr.cancellation import AbortedError, CancellationToken
from tldr.errors import ErrorCode
from tldr.models.extract import ExtractionResult, ImageData
from tldr.models.summarizer import ChatMessage, ResolvedConfig
from tldr.providers.base import ProviderError
from tldr.services import chat_service, summarizer_service
from tldr.services.chat_service import build_chat_system_prompt, chat_with_session
from tldr.services.prompt_service import (
    IMAGE_INSTRUCTION,
    STYLE_TEMPLATES,
    TRAIT_RULES,
    build_system_prompt,
    build_user_prompt,
)
from tldr.services.summarizer_service import (
    SummarizerError,
    build_speech_prompt,
    rewrite_for_speech,
    summarize,
)


class FakeProvider:
    name = "fake"

    def __init__(self, chunks=("Sum", "mary"), error=None, cancel=None):
        self.chunks = chunks
        self.error = error
        self.cancel = cancel
        self.calls = []

    async def summarize(self, config, system_prompt, user_prompt, on_chunk, image=None, token=None):
        self.calls.append((system_prompt, user_prompt, image))
        for chunk in self.chunks:
            on_chunk(chunk)
        if self.cancel is not None:
            self.cancel.cancel()
        if self.error is not None:
            raise self.error
        return "".join(self.chunks)

    async def rewrite(self, markdown, config, system_prompt):
        self.calls.append((system_prompt, markdown))
        if self.error is not None:
            raise self.error
        return f"script for {markdown}"

    async def chat(self, config, system_prompt, messages, on_chunk):
        self.calls.append((system_prompt, messages))
        on_chunk("answer")
        return "answer"


@pytest.fixture
def provider(monkeypatch):
    fake = FakeProvider()
    requested = []

    def get_provider(name):
        requested.append(name)
        return fake

    monkeypatch.setattr(summarizer_service, "get_provider", get_provider)
    monkeypatch.setattr(chat_service, "get_provider", get_provider)
    fake.requested = requested
    return fake


ARTICLE = ExtractionResult(
    title="Tides", author="Ada", content="The moon pulls the sea.", word_count=5, source="https://x.test/a"
)


@pytest.mark.asyncio
async def test_summarize_streams_and_builds_prompts(provider):
    config = ResolvedConfig(model="m", provider="openai", tone="eli5", summary_style="quick")
    chunks = []

    result = await summarize(ARTICLE, config, chunks.append)

    assert chunks == ["Sum", "mary"]
    assert result.summary == "Summary"
    assert result.extraction == ARTICLE
    assert result.timestamp > 1_600_000_000_000
    assert provider.requested[0].value == "openai"
    system_prompt, user_prompt, image = provider.calls[0]
    assert "Explain like I'm five" in system_prompt
    assert STYLE_TEMPLATES["quick"] in system_prompt
    assert user_prompt.startswith("Title: Tides\nAuthor: Ada\nSource: https://x.test/a\n\n")
    assert image is None


@pytest.mark.asyncio
async def test_summarize_passes_image(provider):
    image = ImageData(base64="QUJD", media_type="image/png", file_path="/tmp/a.png")
    extraction = ExtractionResult(title="a.png", content="", word_count=0, source="/tmp/a.png", image=image)

    await summarize(extraction, ResolvedConfig(model="m"), lambda c: None)

    _, user_prompt, passed = provider.calls[0]
    assert passed == image
    assert IMAGE_INSTRUCTION in user_prompt
    assert "Content to summarize" not in user_prompt


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, code",
    [
        (ProviderError("bad key", "AUTH", "fake"), ErrorCode.AUTH),
        (ProviderError("slow down", "RATE_LIMIT", "fake"), ErrorCode.RATE_LIMIT),
        (ProviderError("no model", "NOT_FOUND", "fake"), ErrorCode.NOT_FOUND),
        (RuntimeError("kaboom"), ErrorCode.UNKNOWN),
    ],
)
async def test_summarize_error_codes(provider, error, code):
    provider.error = error
    with pytest.raises(SummarizerError) as info:
        await summarize(ARTICLE, ResolvedConfig(model="m"), lambda c: None)
    assert info.value.code is code
    assert info.value.__cause__ is error


@pytest.mark.asyncio
async def test_summarize_pre_aborted(provider):
    token = CancellationToken()
    token.cancel()
    with pytest.raises(AbortedError):
        await summarize(ARTICLE, ResolvedConfig(model="m"), lambda c: None, token)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_abort_wins_over_provider_error(provider):
    token = CancellationToken()
    provider.cancel = token
    provider.error = ProviderError("stream reset", "NETWORK", "fake")
    with pytest.raises(AbortedError):
        await summarize(ARTICLE, ResolvedConfig(model="m"), lambda c: None, token)


@pytest.mark.asyncio
async def test_rewrite_for_speech(provider):
    config = ResolvedConfig(model="m", audio_mode="briefing", cognitive_traits=["adhd"])
    script = await rewrite_for_speech("# Notes", config)

    assert script == "script for # Notes"
    system_prompt, markdown = provider.calls[0]
    assert markdown == "# Notes"
    assert system_prompt == build_speech_prompt(config)


@pytest.mark.asyncio
async def test_rewrite_failure_is_typed(provider):
    provider.error = ProviderError("bad key", "AUTH", "fake")
    with pytest.raises(SummarizerError) as info:
        await rewrite_for_speech("# Notes", ResolvedConfig(model="m"))
    assert info.value.code is ErrorCode.AUTH


@pytest.mark.asyncio
async def test_chat_with_session(provider):
    chunks = []
    messages = [ChatMessage(role="user", content="Why tides?")]

    answer = await chat_with_session(ResolvedConfig(model="m"), "## TL;DR\nMoon.", messages, chunks.append)

    assert answer == "answer"
    assert chunks == ["answer"]
    system_prompt, passed = provider.calls[0]
    assert system_prompt.endswith("\n\n---\n\n## TL;DR\nMoon.")
    assert passed == messages


def test_chat_system_prompt_stays_grounded():
    assert "if the answer isn't in the summary, say so" in build_chat_system_prompt("x")


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def test_system_prompt_section_order():
    config = ResolvedConfig(
        model="m",
        tone="professional",
        summary_style="study-notes",
        cognitive_traits=["dyslexia", "esl"],
        custom_instructions="Mention the year.",
    )
    prompt = build_system_prompt(config)

    headings = [
        "Base Formatting Rules:",
        "Reading Accessibility Rules:",
        "Tone:",
        "Visual Structure:",
        "## Review Questions",
        "Additional Instructions:\nMention the year.",
    ]
    positions = [prompt.index(h) for h in headings]
    assert positions == sorted(positions)
    assert f"- {TRAIT_RULES['dyslexia']}\n- {TRAIT_RULES['esl']}" in prompt


def test_system_prompt_omits_empty_sections():
    prompt = build_system_prompt(ResolvedConfig(model="m"))
    assert "Reading Accessibility Rules" not in prompt
    assert "Additional Instructions" not in prompt
    assert prompt.endswith(STYLE_TEMPLATES["standard"])


def test_user_prompt_without_metadata():
    assert build_user_prompt("body text") == "Content to summarize:\nbody text"


def test_speech_prompt_modes_and_traits():
    calm = build_speech_prompt(ResolvedConfig(model="m", audio_mode="calm", tone="academic"))
    assert calm.startswith("You are a gentle, soothing narrator")
    assert "No markdown formatting" in calm
    assert calm.endswith("- Stay precise and analytical, but still conversational.")

    with_traits = build_speech_prompt(ResolvedConfig(model="m", cognitive_traits=["autism"]))
    assert "\n\nListener Accessibility:\n- autism: Be direct and precise." in with_traits
