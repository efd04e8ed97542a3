"""
Talecast Session Pipeline

Turns a recorded tabletop-RPG session into a transcript, a written story
and a two-host podcast, checkpointing progress at every stage.
"""

from .models import (
    AudioSegment,
    DialogueScript,
    DialogueSegment,
    FeatureConfig,
    GlossaryContext,
    JobKey,
    JobStage,
    PipelineMode,
    ProcessingJob,
    SegmentResult,
    SessionSummary,
    Speaker,
    SubmitRequest,
    Transcript,
    Utterance,
    VoiceAssignment,
    WorkItem,
)
from .capabilities import DialogueInput, DialogueSpeech, SpeechToText, TextGenerator
from .responses import decode_text
from .splitter import AudioSplitter, cleanup_segments, plan_segments
from .transcriber import SegmentTranscriber, build_segment_prompt
from .merger import TranscriptMerger
from .narrative import NarrativeContext, NarrativeGenerator
from .script import DialogueScriptGenerator, parse_script
from .synthesis import VoiceSynthesizer
from .glossary import GlossaryLoader, KankaClient
from .history import PreviousSessionRepository
from .ai_settings import AISettingsLoader
from .progress import ProgressLedger
from .orchestrator import PipelineOrchestrator
from .queue import JobQueue

__all__ = [
    # Models
    "AudioSegment",
    "DialogueScript",
    "DialogueSegment",
    "FeatureConfig",
    "GlossaryContext",
    "JobKey",
    "JobStage",
    "PipelineMode",
    "ProcessingJob",
    "SegmentResult",
    "SessionSummary",
    "Speaker",
    "SubmitRequest",
    "Transcript",
    "Utterance",
    "VoiceAssignment",
    "WorkItem",
    # Capabilities
    "DialogueInput",
    "DialogueSpeech",
    "SpeechToText",
    "TextGenerator",
    "decode_text",
    # Stages
    "AudioSplitter",
    "cleanup_segments",
    "plan_segments",
    "SegmentTranscriber",
    "build_segment_prompt",
    "TranscriptMerger",
    "NarrativeContext",
    "NarrativeGenerator",
    "DialogueScriptGenerator",
    "parse_script",
    "VoiceSynthesizer",
    # Context and state
    "GlossaryLoader",
    "KankaClient",
    "PreviousSessionRepository",
    "AISettingsLoader",
    "ProgressLedger",
    # Orchestration
    "PipelineOrchestrator",
    "JobQueue",
]
