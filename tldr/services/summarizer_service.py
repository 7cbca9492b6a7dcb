import logging
import time
from typing import Optional

from ..cancellation import AbortedError, CancellationToken, check
from ..errors import ErrorCode, TldrError, code_set
from ..models.extract import ExtractionResult
from ..models.summarizer import AudioMode, CognitiveTrait, ResolvedConfig, TldrResult, Tone
from ..providers.base import OnChunk
from ..providers.factory import get_provider
from .prompt_service import build_system_prompt, build_user_prompt

logger = logging.getLogger(__name__)


class SummarizerError(TldrError):
    allowed_codes = code_set("AUTH", "RATE_LIMIT", "NETWORK", "NOT_FOUND", "TIMEOUT", "UNKNOWN")


def to_summarizer_error(exc: Exception) -> SummarizerError:
    if isinstance(exc, SummarizerError):
        return exc
    code = getattr(exc, "code", None)
    if not (isinstance(code, ErrorCode) and code in SummarizerError.allowed_codes):
        code = ErrorCode.UNKNOWN
    message = exc.message if isinstance(exc, TldrError) else str(exc)
    return SummarizerError(message, code)


# ---------------------------------------------------------------------------
# Audio rewrite prompt
# ---------------------------------------------------------------------------

TRAIT_AUDIO_RULES: dict[CognitiveTrait, str] = {
    "dyslexia": (
        "Use short, punchy sentences. Repeat key terms naturally for reinforcement. "
        "Pause between ideas. Avoid complex multi-clause sentences."
    ),
    "adhd": (
        "Lead with the most surprising or actionable insight to hook attention. Keep energy high "
        "with varied pacing. Break into distinct segments with clear transitions. End each "
        "segment with a mini-takeaway."
    ),
    "autism": (
        "Be direct and precise. Avoid idioms, sarcasm, and implied meanings. Explicitly state "
        "connections between topics. Clarify ambiguous meanings."
    ),
    "esl": (
        "Use common everyday vocabulary. Briefly explain specialized terms inline. Avoid phrasal "
        "verbs and culturally-specific references. Use active voice."
    ),
    "visual-thinker": (
        "Paint word pictures with spatial language. Describe relationships as physical "
        "arrangements. Give items a memorable spatial or narrative structure."
    ),
}

TONE_HINTS: dict[Tone, str] = {
    "eli5": "Keep it super simple and fun, like explaining to a curious kid.",
    "academic": "Stay precise and analytical, but still conversational.",
    "professional": "Be clear and polished, like a well-produced briefing.",
    "casual": "Be relaxed and friendly, like chatting with a smart friend.",
}

AUDIO_MODES: dict[AudioMode, dict[str, str]] = {
    "podcast": {
        "persona": "You are a podcast host rewriting a text summary into a short, engaging audio script.",
        "structure": "Hook that grabs attention, then a conversational walkthrough, then a memorable takeaway.",
        "rules": (
            "Write as if hosting a brief podcast segment: conversational, energetic, with personality.\n"
            'Use natural transitions ("Here\'s the interesting part...", "Now, what really stands out is...").\n'
            "Open with a hook that grabs attention.\n"
            "Close with a memorable takeaway.\n"
            "Keep the same information density. Don't drop facts, but make them compelling to hear.\n"
            "Explain concepts through analogies and concrete examples."
        ),
    },
    "briefing": {
        "persona": "You are an analyst delivering a concise briefing, rewriting a text summary into a short spoken brief.",
        "structure": "Headlines first, then key facts, then implications, then action items.",
        "rules": (
            "No filler, no opinions, pure signal.\n"
            "Lead with what changed and what it means for the listener.\n"
            "Number the items for mental tracking.\n"
            "Be ruthlessly concise. Every sentence must earn its place.\n"
            "Close with concrete next steps or implications."
        ),
    },
    "lecture": {
        "persona": "You are a patient, skilled teacher rewriting a text summary into an explanatory audio script.",
        "structure": "Context setting, then concept by concept with examples and connections, then a recap.",
        "rules": (
            "Build understanding progressively. Define terms before using them.\n"
            "Use analogies to anchor new concepts to familiar ones.\n"
            "Pause between concepts with clear transitions.\n"
            'End with a "the key things to remember are..." recap.'
        ),
    },
    "storyteller": {
        "persona": "You are a narrator weaving a compelling story, rewriting a text summary into a narrative audio script.",
        "structure": "Scene setting, the players, tension or conflict, resolution, meaning.",
        "rules": (
            "Find the narrative thread in the content.\n"
            'Use temporal flow ("It started when...", "Then came the turning point...").\n'
            "Make abstract concepts concrete through characters and scenes.\n"
            "Build toward a satisfying conclusion or insight."
        ),
    },
    "study-buddy": {
        "persona": (
            "You are a smart friend helping the listener review and retain material, rewriting a "
            "text summary into a study-friendly audio script."
        ),
        "structure": 'Key concepts, "test yourself" moments, connections, mnemonic aids, quick recap.',
        "rules": (
            "Pose rhetorical questions before revealing answers.\n"
            "Use mnemonic devices when possible.\n"
            "Group related facts together.\n"
            'End with "quiz yourself on these three things..." or a similar recall prompt.'
        ),
    },
    "calm": {
        "persona": "You are a gentle, soothing narrator rewriting a text summary into a calming audio script.",
        "structure": "Soft opening, unhurried walkthrough, reflective close.",
        "rules": (
            "No urgency language. Longer pauses between ideas.\n"
            'Avoid alarming framing: use "interestingly" not "shockingly".\n'
            "Be reflective rather than actionable.\n"
            "Close with a quiet, reflective thought the listener can sit with."
        ),
    },
}

SHARED_AUDIO_RULES = (
    "No markdown formatting. Output plain spoken text only.\n"
    "No stage directions or sound effects.\n"
    "Use punctuation deliberately for pacing: commas for brief pauses, periods for full stops, "
    "ellipses for dramatic pauses.\n"
    "Vary sentence rhythm to maintain engagement.\n"
    'Write out numbers and abbreviations in full ("three" not "3", "for example" not "e.g.").'
)


def build_speech_prompt(config: ResolvedConfig) -> str:
    mode = AUDIO_MODES[config.audio_mode]
    prompt = (
        f"{mode['persona']}\n\n"
        f"Structure:\n{mode['structure']}\n\n"
        f"Rules:\n{mode['rules']}\n"
        f"{SHARED_AUDIO_RULES}\n"
        f"- {TONE_HINTS[config.tone]}"
    )
    if config.cognitive_traits:
        rules = "\n".join(f"- {t}: {TRAIT_AUDIO_RULES[t]}" for t in config.cognitive_traits)
        prompt += f"\n\nListener Accessibility:\n{rules}"
    return prompt


# ---------------------------------------------------------------------------
# Public interface
# ---------------------------------------------------------------------------

async def summarize(
    extraction: ExtractionResult,
    config: ResolvedConfig,
    on_chunk: OnChunk,
    token: Optional[CancellationToken] = None,
) -> TldrResult:
    """Stream a summary of `extraction` through the configured provider.

    Provider failures surface as SummarizerError; cancellation always
    surfaces as AbortedError, whatever the provider raised while dying.
    """
    check(token)

    system_prompt = build_system_prompt(config)
    user_prompt = build_user_prompt(
        extraction.content,
        title=extraction.title,
        author=extraction.author,
        source=extraction.source,
        is_image=extraction.image is not None,
    )

    try:
        provider = get_provider(config.provider)
        logger.info("Summarizing %s with %s/%s", extraction.source, provider.name, config.model)
        summary = await provider.summarize(
            config, system_prompt, user_prompt, on_chunk, extraction.image, token
        )
    except AbortedError:
        raise
    except Exception as exc:
        if token is not None and token.cancelled:
            raise AbortedError() from exc
        raise to_summarizer_error(exc) from exc

    return TldrResult(extraction=extraction, summary=summary, timestamp=int(time.time() * 1000))


async def rewrite_for_speech(markdown: str, config: ResolvedConfig) -> str:
    try:
        provider = get_provider(config.provider)
        return await provider.rewrite(markdown, config, build_speech_prompt(config))
    except Exception as exc:
        raise to_summarizer_error(exc) from exc
