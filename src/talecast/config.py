"""
Talecast Configuration
Pydantic Settings for all configurable options.
"""

import tempfile
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_prefix="TALECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Storage Paths ---
    storage_path: Path = Field(default=Path.home() / ".talecast")
    temp_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))

    # --- Audio Segmentation ---
    segment_duration_seconds: int = 30 * 60
    segment_sample_rate: int = 16000
    offset_tolerance_seconds: float = 5.0  # Below start - tolerance means segment-relative

    # --- Story Generation ---
    story_language: str = "English"
    previous_summaries_max_chars: int = 20000
    previous_sessions_limit: int = 10

    # --- Podcast Script ---
    max_script_characters: int = 5000  # Hard TTS input limit
    words_per_minute: int = 150

    # --- Podcast Voices (fallback when settings/ai has none) ---
    host1_voice_id: str = ""
    host2_voice_id: str = ""

    # --- Campaign Glossary (Kanka) ---
    kanka_api_token: Optional[str] = Field(default=None, validation_alias="KANKA_API_TOKEN")
    kanka_base_url: str = "https://api.kanka.io/1.0"
    kanka_timeout_seconds: float = 30.0

    # --- Runtime ---
    ai_settings_ttl_seconds: float = 300.0
    worker_count: int = 2

    @property
    def state_file(self) -> Path:
        return self.storage_path / "documents.json"

    @property
    def objects_path(self) -> Path:
        return self.storage_path / "objects"

    def ensure_directories(self) -> None:
        """Create storage directories if they don't exist."""
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.objects_path.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
