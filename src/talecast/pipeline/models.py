"""
Session Pipeline Data Models

Pydantic models for audio segments, transcripts, dialogue scripts and
processing job state. Document field names are camelCase aliases so the
stored session documents keep the shape clients already read.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentModel(BaseModel):
    """Base for models that are persisted into session documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# --- AI feature configuration ---


class FeatureConfig(DocumentModel):
    """Generation parameters for one AI feature (transcription, story, script)."""

    model: str
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int = 8192


class VoiceAssignment(DocumentModel):
    """Voice ids used for the two podcast hosts."""

    host1_voice_id: str = ""
    host2_voice_id: str = ""

    def voice_for(self, speaker: "Speaker") -> str:
        if speaker == Speaker.HOST2:
            return self.host2_voice_id
        return self.host1_voice_id


# --- Audio and transcription ---


class AudioSegment(BaseModel):
    """One slice of the source recording, written to a private temp file."""

    index: int = Field(description="0-based position, defines merge order")
    start_offset_seconds: float
    end_offset_seconds: float
    duration_seconds: float
    local_path: Path

    def __repr__(self):
        return (
            f"AudioSegment(index={self.index}, "
            f"start={self.start_offset_seconds:.1f}s, end={self.end_offset_seconds:.1f}s)"
        )


class Utterance(DocumentModel):
    """One spoken line with its time in seconds."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    time_seconds: float
    text: str
    speaker: Optional[str] = None


class SegmentResult(BaseModel):
    """Utterances returned for one segment, before re-anchoring."""

    segment: AudioSegment
    utterances: List[Utterance] = Field(default_factory=list)


class Transcript(DocumentModel):
    """Chronologically ordered utterances plus their flat display text."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    utterances: List[Utterance] = Field(default_factory=list)
    text: str = ""


# --- Podcast script ---


class Speaker(str, Enum):
    HOST1 = "host1"
    HOST2 = "host2"


class DialogueSegment(DocumentModel):
    speaker: Speaker
    text: str


class DialogueScript(DocumentModel):
    """Two-host podcast script with an estimated spoken duration."""

    segments: List[DialogueSegment] = Field(default_factory=list)
    estimated_duration_seconds: int = Field(default=0, alias="estimatedDuration")

    @property
    def total_characters(self) -> int:
        return sum(len(segment.text) for segment in self.segments)


class SynthesizedAudio(BaseModel):
    data: bytes
    content_type: str = "audio/mpeg"
    extension: str = "mp3"


# --- Campaign context ---


class GlossaryEntity(DocumentModel):
    name: str


class GlossaryContext(DocumentModel):
    """Campaign proper nouns used to bias spelling, never content."""

    characters: List[GlossaryEntity] = Field(default_factory=list)
    locations: List[GlossaryEntity] = Field(default_factory=list)
    quests: List[GlossaryEntity] = Field(default_factory=list)
    organisations: List[GlossaryEntity] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.characters or self.locations or self.quests or self.organisations)


class SessionSummary(BaseModel):
    """Story of an earlier session, used for narrative continuity."""

    session_id: str
    title: str = ""
    session_date: Optional[str] = None
    content: str


# --- Job state ---


class JobStage(str, Enum):
    SUBMITTED = "submitted"
    LOADING_CONTEXT = "loading-context"
    TRANSCRIBING = "transcribing"
    TRANSCRIPTION_COMPLETE = "transcription-complete"
    GENERATING_STORY = "generating-story"
    STORY_COMPLETE = "story-complete"
    GENERATING_SCRIPT = "generating-script"
    SCRIPT_COMPLETE = "script-complete"
    GENERATING_AUDIO = "generating-audio"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStage.COMPLETED, JobStage.FAILED)


class PipelineMode(str, Enum):
    FULL = "full"  # raw audio -> story -> script -> audio
    SCRIPT_PROVIDED = "script-provided"  # user-edited script -> audio
    STORY_TO_PODCAST = "story-to-podcast"  # stored story -> script -> audio
    REGENERATE_STORY = "regenerate-story"  # stored transcript -> story
    RETRANSCRIBE = "retranscribe"  # stored audio -> transcript [-> story]


class JobKey(BaseModel):
    """Addresses the session document that holds a job's state."""

    model_config = ConfigDict(frozen=True)

    campaign_id: str
    session_id: str

    @property
    def campaign_path(self) -> str:
        return f"campaigns/{self.campaign_id}"

    @property
    def sessions_collection(self) -> str:
        return f"{self.campaign_path}/audioSessions"

    @property
    def document_path(self) -> str:
        return f"{self.sessions_collection}/{self.session_id}"

    def __str__(self):
        return f"{self.campaign_id}/{self.session_id}"


class ProcessingJob(DocumentModel):
    """Progress record stored under the session document's ``processing`` field."""

    stage: JobStage = JobStage.SUBMITTED
    progress: int = 0
    message: str = ""
    mode: PipelineMode = PipelineMode.FULL
    version: Optional[int] = None
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    error: Optional[str] = None
    failed_stage: Optional[JobStage] = None


class SubmitRequest(BaseModel):
    """Parsed payload handed over by the transport layer."""

    campaign_id: str = ""
    session_id: str = ""
    mode: PipelineMode = PipelineMode.FULL
    audio_path: Optional[str] = Field(None, description="Object-storage key of the uploaded recording")
    audio_file_name: Optional[str] = None
    session_title: Optional[str] = None
    session_date: Optional[str] = None
    enable_glossary: bool = False
    user_corrections: Optional[str] = None
    script: Optional[DialogueScript] = None
    version: Optional[int] = None
    user_id: Optional[str] = None
    regenerate_story: bool = Field(True, description="Retranscription only: also rewrite the story")

    @property
    def key(self) -> JobKey:
        return JobKey(campaign_id=self.campaign_id, session_id=self.session_id)


class WorkItem(BaseModel):
    """One unit of queued work: run ``stage`` for the job addressed by ``key``."""

    key: JobKey
    stage: JobStage
    mode: PipelineMode
    version: Optional[int] = None
    regenerate_story: bool = True
