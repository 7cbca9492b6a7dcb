from typing import Optional

from ..models.summarizer import CognitiveTrait, ResolvedConfig, SummaryStyle, Tone

# ---------------------------------------------------------------------------
# Prompt fragments
# ---------------------------------------------------------------------------

ROLE = (
    "You are a learning-focused summarization assistant. Your goal is to help the reader "
    "understand and retain the material, not just skim it. Explain concepts clearly, "
    "connect ideas, and surface the 'why' behind facts."
)

BASE_FORMATTING = (
    "Structure for scannability. Use bullet points over paragraphs.\n"
    "Bold key terms. Keep sentences under 20 words.\n"
    "Lead with the most important information. No filler."
)

VISUAL_STRUCTURE = (
    "When data can be compared or categorized, use a markdown table.\n"
    "When a process has steps, use numbered lists.\n"
    "Prefer structure over prose."
)

TRAIT_RULES: dict[CognitiveTrait, str] = {
    "dyslexia": "Short sentences (max 20 words). Simple vocabulary. Bold key terms. Bullet points over prose.",
    "adhd": "Most important info first. No filler phrases. No hedging. Action-oriented takeaways.",
    "autism": "Literal, precise language. No idioms or sarcasm. Explicit structure. Flag ambiguity.",
    "esl": "Simple vocabulary (common 3000 words). No phrasal verbs. Define jargon inline.",
    "visual-thinker": "Hierarchical structure. Numbered steps for processes. Group related ideas with headers.",
}

TONE_INSTRUCTIONS: dict[Tone, str] = {
    "casual": "Use a conversational, friendly tone. Write like explaining to a colleague.",
    "professional": "Use a clear, formal tone. No slang. Precise and direct.",
    "academic": "Use an analytical, scholarly tone. Reference key concepts and terminology.",
    "eli5": "Explain like I'm five. Use analogies. Avoid jargon entirely. Keep it simple and fun.",
}

STYLE_TEMPLATES: dict[SummaryStyle, str] = {
    "quick": """Output format (strictly follow):

## TL;DR
[One sentence. Max 25 words.]

## Key Points
- **Bold term**: short explanation (max 15 words per bullet)
- [3-7 bullets depending on content length]

## Why It Matters
[One sentence connecting this to the reader's world.]

## Action Items
- [ ] [Only if the content implies things the reader should do]""",
    "standard": """Output format (strictly follow):

## TL;DR
[1-2 sentences summarizing the core message.]

## Key Points
- **Bold term**: explanation (max 20 words per bullet)
- [4-9 bullets depending on content length]

## Why It Matters
[1-2 sentences on why this matters to the reader.]

## Action Items
- [ ] [Only if the content implies things the reader should do]""",
    "detailed": """Output format (strictly follow):

## TL;DR
[2-3 sentences summarizing the core message.]

## Context
[1-2 sentences on why this matters or where it comes from.]

## Key Points
- **Bold term**: explanation (max 20 words per bullet)
- [5-12 bullets depending on content length]

## Analogy
[Explain the core idea through a familiar comparison. One short paragraph.]

## Notable Details
- [Details that add depth but aren't essential]

## Action Items
- [ ] [Only if the content implies things the reader should do]""",
    "study-notes": """Output format (strictly follow):

## TL;DR
[1-2 sentences summarizing the core topic.]

## Core Concepts
- **Concept**: definition and significance

## How They Connect
[Brief explanation of relationships between core concepts.]

## Key Facts
- [Specific facts, data points, or examples worth remembering]

## Visual Map
[ASCII diagram showing how core concepts relate to each other]

## Review Questions
1. [Question that tests understanding of a core concept]
2. [Question that requires connecting multiple ideas]
3. [Question that applies the knowledge to a scenario]""",
}

IMAGE_INSTRUCTION = (
    "Summarize the content of this image. Describe what you see, extract any text or data "
    "visible, and provide insights about the visual content."
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def build_system_prompt(config: ResolvedConfig) -> str:
    sections = [ROLE, f"Base Formatting Rules:\n{BASE_FORMATTING}"]

    if config.cognitive_traits:
        rules = "\n".join(f"- {TRAIT_RULES[trait]}" for trait in config.cognitive_traits)
        sections.append(f"Reading Accessibility Rules:\n{rules}")

    sections.append(f"Tone:\n{TONE_INSTRUCTIONS[config.tone]}")
    sections.append(f"Visual Structure:\n{VISUAL_STRUCTURE}")
    sections.append(STYLE_TEMPLATES[config.summary_style])

    if config.custom_instructions:
        sections.append(f"Additional Instructions:\n{config.custom_instructions}")

    return "\n\n".join(sections)


def build_user_prompt(
    text: str,
    title: Optional[str] = None,
    author: Optional[str] = None,
    source: Optional[str] = None,
    is_image: bool = False,
) -> str:
    lines = []
    if title:
        lines.append(f"Title: {title}")
    if author:
        lines.append(f"Author: {author}")
    if source:
        lines.append(f"Source: {source}")
    if lines:
        lines.append("")

    if is_image:
        lines.append(IMAGE_INSTRUCTION)
    else:
        lines.append("Content to summarize:")
        lines.append(text)

    return "\n".join(lines)
