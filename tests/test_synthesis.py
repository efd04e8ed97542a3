"""
Tests for Podcast Voice Synthesis
"""

import asyncio

import pytest

from conftest import FakeDialogueSpeech
from talecast.errors import CapabilityUnavailable, EmptySynthesis
from talecast.pipeline.models import DialogueScript, DialogueSegment, Speaker, VoiceAssignment
from talecast.pipeline.synthesis import VoiceSynthesizer

VOICES = VoiceAssignment(host1_voice_id="voice-1", host2_voice_id="voice-2")

SCRIPT = DialogueScript(
    segments=[
        DialogueSegment(speaker=Speaker.HOST1, text="Welcome back."),
        DialogueSegment(speaker=Speaker.HOST2, text="Let's dive in."),
        DialogueSegment(speaker=Speaker.HOST1, text="Roll the tape."),
    ],
    estimated_duration_seconds=4,
)


class TestVoiceSynthesizer:
    def test_single_call_with_mapped_voices(self):
        speech = FakeDialogueSpeech([b"ID3", b"-", b"frames"])

        audio = asyncio.run(VoiceSynthesizer(speech).synthesize(SCRIPT, VOICES))

        assert audio.data == b"ID3-frames"
        assert audio.content_type == "audio/mpeg"
        assert len(speech.calls) == 1
        assert [(i.voice_id, i.text) for i in speech.calls[0]] == [
            ("voice-1", "Welcome back."),
            ("voice-2", "Let's dive in."),
            ("voice-1", "Roll the tape."),
        ]

    def test_empty_stream_raises(self):
        speech = FakeDialogueSpeech([])

        with pytest.raises(EmptySynthesis):
            asyncio.run(VoiceSynthesizer(speech).synthesize(SCRIPT, VOICES))

    def test_empty_chunks_only_raises(self):
        speech = FakeDialogueSpeech([b"", b""])

        with pytest.raises(EmptySynthesis):
            asyncio.run(VoiceSynthesizer(speech).synthesize(SCRIPT, VOICES))

    def test_missing_voice_raises_before_calling(self):
        speech = FakeDialogueSpeech()

        with pytest.raises(CapabilityUnavailable):
            asyncio.run(VoiceSynthesizer(speech).synthesize(SCRIPT, VoiceAssignment(host1_voice_id="voice-1")))

        assert speech.calls == []
