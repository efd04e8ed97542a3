"""
Podcast Voice Synthesis

Renders a dialogue script with one multi-speaker synthesis call and
collects the streamed audio into a single buffer.
"""

import logging

from ..errors import CapabilityUnavailable, EmptySynthesis
from .capabilities import DialogueInput, DialogueSpeech
from .models import DialogueScript, SynthesizedAudio, VoiceAssignment

logger = logging.getLogger(__name__)


class VoiceSynthesizer:
    def __init__(self, speech: DialogueSpeech):
        self.speech = speech

    async def synthesize(self, script: DialogueScript, voices: VoiceAssignment) -> SynthesizedAudio:
        """
        Synthesize the whole script as one audio file.

        Raises:
            CapabilityUnavailable: If a host has no voice id
            EmptySynthesis: If the stream produced no bytes
        """
        if not voices.host1_voice_id or not voices.host2_voice_id:
            raise CapabilityUnavailable("Podcast voices are not configured.")

        inputs = [
            DialogueInput(text=segment.text, voice_id=voices.voice_for(segment.speaker))
            for segment in script.segments
        ]
        logger.info(f"Synthesizing {len(inputs)} dialogue turns")

        chunks = []
        async for chunk in self.speech.convert(inputs):
            if chunk:
                chunks.append(chunk)

        data = b"".join(chunks)
        if not data:
            raise EmptySynthesis("Speech synthesis returned no audio.")

        logger.info(f"Synthesized {len(data) / 1024:.0f} KB of audio")
        return SynthesizedAudio(data=data)
