"""
Podcast Script Generation

Turns a session story into a two-host dialogue script that fits the
speech-synthesis character budget. Over-budget scripts are rejected,
never truncated.
"""

import logging
import math
from typing import Optional

from ..config import settings
from ..errors import EmptyGeneration, NoSegmentsParsed, ScriptTooLong
from .capabilities import TextGenerator
from .models import DialogueScript, DialogueSegment, FeatureConfig, Speaker
from .responses import decode_text

logger = logging.getLogger(__name__)


PODCAST_SCRIPT_PROMPT = """You are a creative podcast script writer.
Your task is to turn a tabletop role-playing session recap into an engaging podcast script for two hosts, written in {language}.

HOSTS:
- HOST1: Analytical, focused on mechanics, tactics and strategic decisions
- HOST2: Narrative-focused, highlights story, character moments and emotional peaks

STYLE:
- Natural, conversational dialogue with back-and-forth discussion (no monologues)
- Enthusiasm at epic moments, light humor, commentary on player decisions
- Use punctuation for intonation: question marks, exclamation marks, ellipses for dramatic pauses
- Write the way people actually talk, not like a newsreader

IMPORTANT:
- The hosts KNOW this comes from a tabletop session but do NOT say "D&D" or "Dungeons & Dragons"
- Refer to campaign context naturally (characters, locations, quests)
- Keep turns short (1-3 sentences per speaker before switching)
- CRITICAL: The whole script must stay UNDER {max_characters} characters. This is a hard limit of the speech engine.

FORMAT:
Output the script in exactly this format, one line per turn:
HOST1: [dialogue]
HOST2: [dialogue]
HOST1: [dialogue]
...

Write the podcast script based on the session story below."""

_PREFIXES = (
    ("HOST1:", Speaker.HOST1),
    ("HOST2:", Speaker.HOST2),
)


def estimate_duration_seconds(word_count: int, words_per_minute: Optional[int] = None) -> int:
    wpm = words_per_minute or settings.words_per_minute
    return math.ceil(word_count / wpm * 60)


def parse_script(text: str, words_per_minute: Optional[int] = None) -> DialogueScript:
    """
    Parse ``HOST1:`` / ``HOST2:`` lines into a dialogue script.

    Every other line (headings, stage directions, blank lines) is dropped.
    """
    segments = []
    for line in (text or "").splitlines():
        stripped = line.strip()
        for prefix, speaker in _PREFIXES:
            if stripped.startswith(prefix):
                segments.append(
                    DialogueSegment(speaker=speaker, text=stripped[len(prefix):].strip())
                )
                break

    total_words = sum(len(segment.text.split()) for segment in segments)
    return DialogueScript(
        segments=segments,
        estimated_duration_seconds=estimate_duration_seconds(total_words, words_per_minute),
    )


def check_budget(script: DialogueScript, max_characters: int) -> None:
    """
    Raises:
        ScriptTooLong: If the script's total text length exceeds ``max_characters``
    """
    total = script.total_characters
    if total > max_characters:
        raise ScriptTooLong(total, max_characters)


class DialogueScriptGenerator:
    """Generate a two-host script from prose."""

    def __init__(
        self,
        text_generator: TextGenerator,
        language: Optional[str] = None,
        words_per_minute: Optional[int] = None,
    ):
        self.text_generator = text_generator
        self.language = language or settings.story_language
        self.words_per_minute = words_per_minute or settings.words_per_minute

    async def generate(
        self,
        prose: str,
        max_characters: int,
        title: Optional[str] = None,
        session_date: Optional[str] = None,
        config: Optional[FeatureConfig] = None,
    ) -> DialogueScript:
        """
        Generate and validate a dialogue script.

        Args:
            prose: The session story
            max_characters: Total text budget across all segments
            title: Session title shown to the model
            session_date: Session date shown to the model
            config: Generation parameters for the podcastScript feature

        Raises:
            EmptyGeneration: If the model returns no text
            NoSegmentsParsed: If no HOST1/HOST2 lines were found
            ScriptTooLong: If the parsed script exceeds max_characters
        """
        if config is None:
            raise ValueError("A podcastScript feature config is required")

        contents = (
            f"SESSION TITLE: {title or 'Untitled session'}\n"
            f"SESSION DATE: {session_date or 'Unknown'}\n\n"
            f"SESSION STORY:\n{prose}"
        )
        system_instruction = PODCAST_SCRIPT_PROMPT.format(
            language=self.language,
            max_characters=max_characters,
        )

        logger.info(f"Generating podcast script (model={config.model}, budget={max_characters} chars)")
        response = await self.text_generator.generate(contents, system_instruction, config)
        text = decode_text(response)
        if not text.strip():
            raise EmptyGeneration("No script generated by the model.")

        script = parse_script(text, self.words_per_minute)
        if not script.segments:
            raise NoSegmentsParsed("Failed to parse script segments.")

        check_budget(script, max_characters)

        logger.info(
            f"Script: {len(script.segments)} segments, {script.total_characters} chars, "
            f"~{script.estimated_duration_seconds}s"
        )
        return script
