"""
Segment Transcription Module

Sends one audio segment plus an instruction prompt to a speech-to-text
model and validates the structured JSON it returns.
"""

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..errors import ModelReportedError, NoTranscriptionContent
from .capabilities import SpeechToText
from .glossary import build_glossary_block
from .models import AudioSegment, FeatureConfig, GlossaryContext, Utterance
from .responses import decode_text
from .splitter import SEGMENT_MIME_TYPE, format_timestamp

logger = logging.getLogger(__name__)


TRANSCRIPTION_PROMPT = """Transcribe this audio recording of a D&D 5e session.

CRITICAL: You MUST actually listen to and process the provided audio file. DO NOT generate fictional content if you cannot access or hear the audio.

REQUIREMENTS:
- If you cannot access the audio file or detect any speech, return: { "error": "NO_AUDIO_DETECTED", "message": "No speech detected in audio file" }
- If the audio is corrupted or unreadable, return: { "error": "AUDIO_CORRUPTED", "message": "Audio file is corrupted or unreadable" }
- If you successfully hear audio, transcribe ONLY what you actually hear - DO NOT make up or invent content
- Focus on in-game content only (combat, character actions, plot, NPC dialogue)
- Remove meta-game talk, rules debates, breaks, background noise, and repeated corrections
- Use clear, complete sentences
- Provide timestamps in seconds from the start of the audio for each segment
- Keep speaker labels short if you can infer them, otherwise omit

OUTPUT:
- If successful, return JSON with:
  - segments: array of { timeSeconds: number, text: string, speaker?: string }
- If error, return JSON with:
  - error: error code string
  - message: error message string"""

SEGMENT_CONTEXT_TEMPLATE = """SEGMENT CONTEXT:
- This is segment {position} of {total} in a longer recording.
- This segment covers {start} to {end} from the full session start.
- All timestamps must be relative to the FULL session start, not this segment's start.
- If someone speaks 30 seconds into this segment, timestamp should be {example}."""

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class _SegmentPayload(BaseModel):
    time_seconds: float = Field(alias="timeSeconds")
    text: str
    speaker: Optional[str] = None


class _TranscriptionPayload(BaseModel):
    segments: Optional[List[_SegmentPayload]] = None
    error: Optional[str] = None
    message: Optional[str] = None


def build_segment_prompt(
    segment: AudioSegment,
    total_segments: int,
    glossary: Optional[GlossaryContext] = None,
) -> str:
    """
    Build the transcription prompt for one segment.

    The first segment already starts at 0:00, so only later segments get
    the block that anchors their timestamps to the full recording.
    """
    parts = [TRANSCRIPTION_PROMPT]

    glossary_block = build_glossary_block(glossary)
    if glossary_block:
        parts.append(glossary_block)

    if segment.index > 0 and total_segments > 1:
        parts.append(
            SEGMENT_CONTEXT_TEMPLATE.format(
                position=segment.index + 1,
                total=total_segments,
                start=format_timestamp(segment.start_offset_seconds),
                end=format_timestamp(segment.end_offset_seconds),
                example=format_timestamp(round(segment.start_offset_seconds + 30)),
            )
        )

    return "\n\n".join(parts)


def parse_transcription(raw_text: str) -> List[Utterance]:
    """
    Validate a transcription JSON document.

    Raises:
        ModelReportedError: If the model reported it could not process the audio
        NoTranscriptionContent: If the document is empty, malformed or has no segments
    """
    text = (raw_text or "").strip()
    if not text:
        raise NoTranscriptionContent("No response from transcription model.")

    fenced = _CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise NoTranscriptionContent("Transcription model returned malformed output.") from e

    if not isinstance(data, dict):
        raise NoTranscriptionContent("Transcription model returned malformed output.")

    if data.get("error"):
        message = data.get("message")
        raise ModelReportedError(
            message if isinstance(message, str) and message else "Audio processing failed."
        )

    try:
        payload = _TranscriptionPayload.model_validate(data)
    except ValidationError as e:
        raise NoTranscriptionContent("Transcription model returned malformed segments.") from e

    if not payload.segments:
        raise NoTranscriptionContent("No valid transcription segments returned.")

    return [
        Utterance(time_seconds=s.time_seconds, text=s.text, speaker=s.speaker or None)
        for s in payload.segments
    ]


class SegmentTranscriber:
    """Transcribe one segment at a time; retries are the caller's decision."""

    def __init__(self, speech_to_text: SpeechToText, config: FeatureConfig):
        self.speech_to_text = speech_to_text
        self.config = config

    async def transcribe(self, segment: AudioSegment, context_prompt: str) -> List[Utterance]:
        """
        Transcribe a single segment.

        Args:
            segment: Segment whose local file is sent inline
            context_prompt: Full prompt from build_segment_prompt

        Returns:
            Utterances with timestamps as the model reported them
        """
        audio = await asyncio.to_thread(Path(segment.local_path).read_bytes)
        logger.info(
            f"Transcribing segment {segment.index + 1} "
            f"({len(audio) / 1024 / 1024:.1f} MB, model={self.config.model})"
        )

        response = await self.speech_to_text.transcribe(
            audio,
            SEGMENT_MIME_TYPE,
            context_prompt,
            self.config,
        )
        utterances = parse_transcription(decode_text(response))

        logger.info(f"Segment {segment.index + 1}: {len(utterances)} utterances")
        return utterances
