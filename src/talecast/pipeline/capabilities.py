"""
External Capability Interfaces

Abstract base classes for the vendor services the pipeline drives.
Concrete network clients live outside this package; the pipeline only
relies on these contracts and decodes whatever they return defensively.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, List, Optional

from pydantic import BaseModel

from .models import FeatureConfig


class DialogueInput(BaseModel):
    """One line of multi-speaker synthesis input."""

    text: str
    voice_id: str


class SpeechToText(ABC):
    """Speech-to-text model that accepts inline audio and an instruction prompt."""

    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str,
        config: FeatureConfig,
    ) -> Any:
        """
        Transcribe one audio payload.

        Returns:
            The raw vendor response; its text must be a JSON document.
        """
        pass


class TextGenerator(ABC):
    """Text-generation model."""

    @abstractmethod
    async def generate(
        self,
        contents: str,
        system_instruction: Optional[str],
        config: FeatureConfig,
    ) -> Any:
        """Return the raw vendor response for one prompt."""
        pass


class DialogueSpeech(ABC):
    """Multi-speaker speech synthesis that renders a whole dialogue in one call."""

    @abstractmethod
    def convert(self, inputs: List[DialogueInput]) -> AsyncIterator[bytes]:
        """Stream encoded audio for the given dialogue."""
        pass
