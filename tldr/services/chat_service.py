from ..models.summarizer import ChatMessage, ResolvedConfig
from ..providers.base import OnChunk
from ..providers.factory import get_provider


def build_chat_system_prompt(summary: str) -> str:
    return (
        "You are a helpful assistant. Answer questions based on the following summary. "
        "Stay grounded: if the answer isn't in the summary, say so."
        f"\n\n---\n\n{summary}"
    )


async def chat_with_session(
    config: ResolvedConfig,
    summary: str,
    messages: list[ChatMessage],
    on_chunk: OnChunk,
) -> str:
    """Follow-up Q&A about a summary the user already has."""
    provider = get_provider(config.provider)
    return await provider.chat(config, build_chat_system_prompt(summary), messages, on_chunk)
