from typing import Callable

from ..models.summarizer import ProviderName
from .anthropic_provider import AnthropicProvider
from .base import Provider
from .cli_provider import claude_code_provider, codex_provider
from .gemini_provider import GeminiProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAICompatibleProvider, xai_provider

PROVIDERS: dict[ProviderName, Callable[[], Provider]] = {
    ProviderName.ANTHROPIC: AnthropicProvider,
    ProviderName.CLAUDE_CODE: claude_code_provider,
    ProviderName.OPENAI: OpenAICompatibleProvider,
    ProviderName.GEMINI: GeminiProvider,
    ProviderName.CODEX: codex_provider,
    ProviderName.OLLAMA: OllamaProvider,
    ProviderName.XAI: xai_provider,
}


def get_provider(name: ProviderName | str) -> Provider:
    return PROVIDERS[ProviderName(name)]()
