"""
AI Settings Loader

Reads per-feature generation parameters and podcast voices from the
``settings/ai`` document, merged over built-in defaults. The document is
cached for a configurable time-to-live; the clock is injectable so
staleness is testable without sleeping.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from ..config import settings
from ..errors import CapabilityUnavailable
from ..store import DocumentStore
from .models import FeatureConfig, VoiceAssignment

logger = logging.getLogger(__name__)

AI_SETTINGS_PATH = "settings/ai"

TRANSCRIPTION = "transcription"
STORY_GENERATION = "storyGeneration"
PODCAST_SCRIPT = "podcastScript"
PODCAST_VOICES = "podcastVoices"

DEFAULT_FEATURE_CONFIGS: Dict[str, Dict[str, Any]] = {
    TRANSCRIPTION: {
        "model": "gemini-2.0-flash-exp",
        "temperature": 0.1,
        "topP": 1,
        "topK": 40,
        "maxOutputTokens": 128000,
    },
    STORY_GENERATION: {
        "model": "gemini-2.0-flash-exp",
        "temperature": 0.8,
        "topP": 0.95,
        "topK": 40,
        "maxOutputTokens": 32000,
    },
    PODCAST_SCRIPT: {
        "model": "gemini-2.5-flash",
        "temperature": 0.9,
        "topP": 0.95,
        "topK": 40,
        "maxOutputTokens": 4096,
    },
}


class AISettingsLoader:
    """Cached view of the ``settings/ai`` document."""

    def __init__(
        self,
        store: DocumentStore,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl_seconds = settings.ai_settings_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._cached: Optional[Dict[str, Any]] = None
        self._fetched_at: Optional[float] = None

    def is_stale(self) -> bool:
        if self._cached is None or self._fetched_at is None:
            return True
        return self.clock() - self._fetched_at >= self.ttl_seconds

    def invalidate(self) -> None:
        self._cached = None
        self._fetched_at = None

    async def get(self) -> Dict[str, Any]:
        """Return the settings document, refetching when the cache is stale."""
        if self.is_stale():
            document = await self.store.get(AI_SETTINGS_PATH)
            if document is None:
                logger.warning(f"{AI_SETTINGS_PATH} not found, using built-in defaults")
            self._cached = document or {}
            self._fetched_at = self.clock()
        return self._cached

    async def feature(self, feature_key: str) -> FeatureConfig:
        """
        Resolve generation parameters for one feature.

        Stored values override defaults field by field. A feature without
        built-in defaults falls back to the document's ``defaultModel``.

        Raises:
            CapabilityUnavailable: If no model can be resolved or values are invalid
        """
        document = await self.get()
        features = document.get("features") or {}

        merged: Dict[str, Any] = dict(DEFAULT_FEATURE_CONFIGS.get(feature_key, {}))
        if "model" not in merged and document.get("defaultModel"):
            merged["model"] = document["defaultModel"]
        merged.update(features.get(feature_key) or {})

        try:
            return FeatureConfig.model_validate(merged)
        except ValidationError as e:
            raise CapabilityUnavailable(
                f"AI settings for '{feature_key}' are incomplete or invalid."
            ) from e

    async def voices(self) -> VoiceAssignment:
        """Podcast host voices; empty stored values fall back to configured env voices."""
        document = await self.get()
        configured = (document.get("features") or {}).get(PODCAST_VOICES) or {}
        return VoiceAssignment(
            host1_voice_id=(configured.get("host1VoiceId") or "").strip() or settings.host1_voice_id,
            host2_voice_id=(configured.get("host2VoiceId") or "").strip() or settings.host2_voice_id,
        )

    async def max_script_characters(self) -> int:
        document = await self.get()
        configured = (document.get("features") or {}).get(PODCAST_VOICES) or {}
        value = configured.get("maxCharacters")
        if isinstance(value, int) and value > 0:
            return value
        return settings.max_script_characters
