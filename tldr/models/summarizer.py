from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..config import settings
from .extract import ExtractionResult


class ProviderName(str, Enum):
    ANTHROPIC = "anthropic"
    CLAUDE_CODE = "claude-code"
    OPENAI = "openai"
    GEMINI = "gemini"
    CODEX = "codex"
    OLLAMA = "ollama"
    XAI = "xai"

    @classmethod
    def _missing_(cls, value):
        # Older configs used "api" and "cli" for the two Anthropic-backed modes.
        aliases = {"api": cls.ANTHROPIC, "cli": cls.CLAUDE_CODE}
        if isinstance(value, str):
            return aliases.get(value.strip().lower())
        return None


Tone = Literal["casual", "professional", "academic", "eli5"]
SummaryStyle = Literal["quick", "standard", "detailed", "study-notes"]
CognitiveTrait = Literal["dyslexia", "adhd", "autism", "esl", "visual-thinker"]
AudioMode = Literal["podcast", "briefing", "lecture", "storyteller", "study-buddy", "calm"]


class ResolvedConfig(BaseModel):
    api_key: str = ""
    base_url: Optional[str] = None
    model: str
    max_tokens: int = Field(default=1024, ge=1)
    provider: ProviderName = ProviderName.ANTHROPIC
    tone: Tone = "casual"
    summary_style: SummaryStyle = "standard"
    cognitive_traits: list[CognitiveTrait] = Field(default_factory=list)
    custom_instructions: Optional[str] = None
    audio_mode: AudioMode = "podcast"

    @classmethod
    def from_settings(cls, **overrides) -> "ResolvedConfig":
        values = {
            "model": settings.default_model,
            "max_tokens": settings.default_max_tokens,
            "provider": ProviderName(settings.default_provider),
        }
        values.update(overrides)
        return cls(**values)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class TldrResult(BaseModel):
    extraction: ExtractionResult
    summary: str
    timestamp: int = Field(description="Epoch milliseconds.")


class SummarizeRequest(BaseModel):
    input: str = Field(..., description="URL, local file path, or raw text to summarize.")
    config: Optional[ResolvedConfig] = None


class RewriteRequest(BaseModel):
    markdown: str = Field(..., min_length=1)
    config: Optional[ResolvedConfig] = None


class RewriteResponse(BaseModel):
    script: str


class ChatRequest(BaseModel):
    summary: str = Field(..., min_length=1)
    messages: list[ChatMessage] = Field(..., min_length=1)
    config: Optional[ResolvedConfig] = None
