"""
Shared test fakes for the capability interfaces.

Vendor services are replaced with in-memory fakes that record every call
and return scripted responses.
"""

import json
from typing import Any, AsyncIterator, List, Optional

import pytest

from talecast.pipeline.capabilities import DialogueInput, DialogueSpeech, SpeechToText, TextGenerator
from talecast.pipeline.models import FeatureConfig
from talecast.store import InMemoryDocumentStore, LocalObjectStorage


class FakeSpeechToText(SpeechToText):
    """Returns queued responses in order; a callable response is called with the prompt."""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls = []

    async def transcribe(self, audio: bytes, mime_type: str, prompt: str, config: FeatureConfig) -> Any:
        self.calls.append({"audio": audio, "mime_type": mime_type, "prompt": prompt, "config": config})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FakeTextGenerator(TextGenerator):
    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls = []

    async def generate(self, contents: str, system_instruction: Optional[str], config: FeatureConfig) -> Any:
        self.calls.append({"contents": contents, "system_instruction": system_instruction, "config": config})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeDialogueSpeech(DialogueSpeech):
    def __init__(self, chunks: Optional[List[bytes]] = None):
        self.chunks = list(chunks if chunks is not None else [b"ID3", b"audio"])
        self.calls: List[List[DialogueInput]] = []

    async def convert(self, inputs: List[DialogueInput]) -> AsyncIterator[bytes]:
        self.calls.append(list(inputs))
        for chunk in self.chunks:
            yield chunk


def transcription_json(*utterances) -> str:
    """Build a transcription response from (timeSeconds, text[, speaker]) tuples."""
    segments = []
    for utterance in utterances:
        item = {"timeSeconds": utterance[0], "text": utterance[1]}
        if len(utterance) > 2:
            item["speaker"] = utterance[2]
        segments.append(item)
    return json.dumps({"segments": segments})


@pytest.fixture
def feature_config():
    return FeatureConfig(model="test-model")


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def object_storage(tmp_path):
    return LocalObjectStorage(tmp_path / "objects")
