"""
Session Story Generation

Turns a merged transcript into a polished prose recap, optionally
grounded by the campaign glossary, earlier session stories and the game
master's corrections.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from ..config import settings
from ..errors import EmptyGeneration
from .capabilities import TextGenerator
from .glossary import build_glossary_block
from .models import FeatureConfig, GlossaryContext, SessionSummary
from .responses import decode_text

logger = logging.getLogger(__name__)


SESSION_STORY_PROMPT = """You are a skilled narrative writer specializing in D&D 5e session recaps.
Your task is to transform a raw session transcript into a polished, engaging session recap written entirely in {language}.

The transcript you receive was produced from audio. Your job is to RESTRUCTURE and POLISH - not to add new content.

TRUTHFULNESS (CRITICAL):
- ONLY include events, dialogue, and details that appear in the transcript
- NEVER invent, fabricate, or embellish scenes, dialogue, actions, or outcomes
- If something in the transcript is vague or unclear, keep it vague - do NOT fill in gaps with imagination
- You are polishing existing content, not creating new content

WRITING STYLE:
- Write in narrative third person and in the past tense
- Use vivid but accurate language - enhance readability without changing facts
- Keep important quotes and dialogue intact, cleaned up for readability

CAMPAIGN CONTEXT USAGE:
- When a campaign reference is provided, use it ONLY to correct names and spellings
- Do NOT add lore, backstory, or details from the reference that are not reflected in the session

PREVIOUS SESSION REFERENCES:
- When previous session stories are provided, you may weave in brief references to earlier events
- Only reference events that naturally connect to the current session
- Keep references short - a sentence or brief aside, not a retelling

DM CORRECTIONS:
- When corrections are provided, apply them exactly as written
- Corrections override ambiguous interpretations from the transcript

CONTENT TO EXCLUDE:
- Meta-game discussions and rules arguments
- Breaks, off-topic chatter, and out-of-character banter
- Technical interruptions or audio issues

OUTPUT FORMAT:
- Organize into logical sections with descriptive Markdown headers (## for main sections)
- Open with a brief atmospheric introduction and end with a natural conclusion"""


def select_previous_summaries(
    summaries: List[SessionSummary],
    max_chars: int,
) -> List[SessionSummary]:
    """
    Keep the most recent summaries that fit in ``max_chars``.

    ``summaries`` must be ordered older-first. Whole summaries are kept
    or dropped; a kept summary is never truncated. Selection stops at the
    first (newest-to-oldest) summary that does not fit, so the kept set is
    always a contiguous run ending at the most recent session.

    Returns:
        The kept summaries, older-first
    """
    kept: List[SessionSummary] = []
    used = 0
    for summary in reversed(summaries):
        size = len(summary.content)
        if used + size > max_chars:
            break
        kept.append(summary)
        used += size

    dropped = len(summaries) - len(kept)
    if dropped:
        logger.info(f"Dropped {dropped} older session summaries to fit {max_chars} chars")
    return list(reversed(kept))


class NarrativeContext(BaseModel):
    """Optional grounding material for story generation."""

    glossary: Optional[GlossaryContext] = None
    previous_summaries: List[SessionSummary] = Field(default_factory=list)
    user_corrections: Optional[str] = None


def build_story_contents(
    transcript_text: str,
    context: NarrativeContext,
    max_summary_chars: int,
) -> str:
    sections = []

    glossary_block = build_glossary_block(context.glossary)
    if glossary_block:
        sections.append(glossary_block)

    previous = select_previous_summaries(context.previous_summaries, max_summary_chars)
    if previous:
        stories = "\n\n".join(
            f"### {s.title or s.session_id} ({s.session_date or 'Unknown date'})\n{s.content}"
            for s in previous
        )
        sections.append(f"PREVIOUS SESSION STORIES (oldest first):\n{stories}")

    corrections = (context.user_corrections or "").strip()
    if corrections:
        sections.append(f"DM CORRECTIONS:\n{corrections}")

    sections.append(f"SESSION TRANSCRIPT:\n{transcript_text}")
    return "\n\n".join(sections)


class NarrativeGenerator:
    """Generate the session story from a transcript."""

    def __init__(
        self,
        text_generator: TextGenerator,
        language: Optional[str] = None,
        max_summary_chars: Optional[int] = None,
    ):
        self.text_generator = text_generator
        self.language = language or settings.story_language
        self.max_summary_chars = max_summary_chars or settings.previous_summaries_max_chars

    async def generate(
        self,
        transcript_text: str,
        context: Optional[NarrativeContext],
        config: FeatureConfig,
    ) -> str:
        """
        Generate prose for one session.

        Raises:
            EmptyGeneration: If the model returns no text
        """
        contents = build_story_contents(
            transcript_text,
            context or NarrativeContext(),
            self.max_summary_chars,
        )
        system_instruction = SESSION_STORY_PROMPT.format(language=self.language)

        logger.info(f"Generating story ({len(transcript_text)} transcript chars, model={config.model})")
        response = await self.text_generator.generate(contents, system_instruction, config)
        story = decode_text(response).strip()

        if not story:
            raise EmptyGeneration("Story generation returned no content.")

        logger.info(f"Story generated: {len(story)} characters")
        return story
