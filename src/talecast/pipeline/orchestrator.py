"""
Pipeline Orchestrator

State machine that turns a session recording into a transcript, a story,
a podcast script and finally podcast audio. Each run of ``run_stage``
executes exactly one stage, checkpoints its artifacts into the session
document and returns the next ``WorkItem`` (or None when the job is done
or failed). Stages never keep state in memory between runs: everything
is reloaded from the document store.
"""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..config import settings
from ..errors import InvalidRequest, StorageError, TalecastError
from ..store import DocumentStore, ObjectStorage
from .ai_settings import PODCAST_SCRIPT, STORY_GENERATION, TRANSCRIPTION, AISettingsLoader
from .capabilities import DialogueSpeech, SpeechToText, TextGenerator
from .glossary import GlossaryLoader
from .history import PreviousSessionRepository
from .merger import TranscriptMerger
from .models import (
    DialogueScript,
    GlossaryContext,
    JobKey,
    JobStage,
    PipelineMode,
    SegmentResult,
    SubmitRequest,
    WorkItem,
    utcnow,
)
from .narrative import NarrativeContext, NarrativeGenerator
from .progress import ProgressLedger
from .script import DialogueScriptGenerator, check_budget
from .splitter import AudioSplitter, cleanup_paths, cleanup_segments
from .synthesis import VoiceSynthesizer
from .transcriber import SegmentTranscriber, build_segment_prompt

logger = logging.getLogger(__name__)

UPLOAD_DIR_PREFIX = "talecast_upload_"

# Stages that run as one WorkItem each, per entry point
STAGE_PLANS: Dict[PipelineMode, List[JobStage]] = {
    PipelineMode.FULL: [
        JobStage.LOADING_CONTEXT,
        JobStage.TRANSCRIBING,
        JobStage.GENERATING_STORY,
        JobStage.GENERATING_SCRIPT,
        JobStage.GENERATING_AUDIO,
    ],
    PipelineMode.SCRIPT_PROVIDED: [
        JobStage.SCRIPT_COMPLETE,
        JobStage.GENERATING_AUDIO,
    ],
    PipelineMode.STORY_TO_PODCAST: [
        JobStage.LOADING_CONTEXT,
        JobStage.GENERATING_SCRIPT,
        JobStage.GENERATING_AUDIO,
    ],
    PipelineMode.REGENERATE_STORY: [
        JobStage.LOADING_CONTEXT,
        JobStage.GENERATING_STORY,
    ],
    PipelineMode.RETRANSCRIBE: [
        JobStage.LOADING_CONTEXT,
        JobStage.TRANSCRIBING,
        JobStage.GENERATING_STORY,
    ],
}

PODCAST_MODES = (
    PipelineMode.FULL,
    PipelineMode.SCRIPT_PROVIDED,
    PipelineMode.STORY_TO_PODCAST,
)

STAGE_LABELS = {
    JobStage.LOADING_CONTEXT: "Loading context",
    JobStage.TRANSCRIBING: "Transcription",
    JobStage.GENERATING_STORY: "Story generation",
    JobStage.SCRIPT_COMPLETE: "Script validation",
    JobStage.GENERATING_SCRIPT: "Script generation",
    JobStage.GENERATING_AUDIO: "Audio generation",
}


def stage_plan(mode: PipelineMode, regenerate_story: bool = True) -> List[JobStage]:
    """Stages for ``mode``; a re-transcription may stop after the transcript."""
    plan = STAGE_PLANS[mode]
    if mode == PipelineMode.RETRANSCRIBE and not regenerate_story:
        return [stage for stage in plan if stage != JobStage.GENERATING_STORY]
    return plan


def podcast_storage_path(key: JobKey, version: int, extension: str = "mp3") -> str:
    return f"campaigns/{key.campaign_id}/podcasts/{key.session_id}/v{version}.{extension.lstrip('.')}"


def upsert_podcast(existing: Optional[List[Dict[str, Any]]], entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Insert ``entry`` or merge it into the entry with the same version."""
    podcasts = [dict(p) for p in (existing or []) if isinstance(p, dict)]
    for i, podcast in enumerate(podcasts):
        if podcast.get("version") == entry["version"]:
            podcasts[i] = {**podcast, **entry}
            return podcasts
    podcasts.append(dict(entry))
    return podcasts


def find_podcast(document: Dict[str, Any], version: Optional[int]) -> Optional[Dict[str, Any]]:
    for podcast in document.get("podcasts") or []:
        if isinstance(podcast, dict) and podcast.get("version") == version:
            return podcast
    return None


def validate_request(request: SubmitRequest) -> None:
    """
    Check that a submission carries what its entry point needs.

    Raises:
        InvalidRequest: On the first missing field
    """
    if not request.campaign_id.strip():
        raise InvalidRequest("Missing campaignId.")
    if not request.session_id.strip():
        raise InvalidRequest("Missing sessionId.")
    if "/" in request.campaign_id or "/" in request.session_id:
        raise InvalidRequest("Invalid campaignId or sessionId.")
    if request.version is not None and request.version < 1:
        raise InvalidRequest("Podcast version must be a positive number.")

    if request.mode == PipelineMode.FULL:
        if not request.audio_path:
            raise InvalidRequest("Missing audio file (required for processing).")
        if not (request.session_title or "").strip():
            raise InvalidRequest("Missing sessionTitle.")
    elif request.mode == PipelineMode.SCRIPT_PROVIDED:
        if request.script is None or not request.script.segments:
            raise InvalidRequest("Invalid script provided.")


class PipelineOrchestrator:
    """Sequence pipeline stages for one job at a time."""

    def __init__(
        self,
        store: DocumentStore,
        objects: ObjectStorage,
        speech_to_text: SpeechToText,
        text_generator: TextGenerator,
        dialogue_speech: DialogueSpeech,
        ai_settings: Optional[AISettingsLoader] = None,
        glossary_loader: Optional[GlossaryLoader] = None,
        history: Optional[PreviousSessionRepository] = None,
        splitter: Optional[AudioSplitter] = None,
        merger: Optional[TranscriptMerger] = None,
        temp_root: Optional[Path] = None,
    ):
        self.store = store
        self.objects = objects
        self.speech_to_text = speech_to_text
        self.ledger = ProgressLedger(store)
        self.ai_settings = ai_settings or AISettingsLoader(store)
        self.glossary_loader = glossary_loader or GlossaryLoader(store)
        self.history = history or PreviousSessionRepository(store)
        self.splitter = splitter or AudioSplitter()
        self.merger = merger or TranscriptMerger()
        self.narrative = NarrativeGenerator(text_generator)
        self.script_generator = DialogueScriptGenerator(text_generator)
        self.synthesizer = VoiceSynthesizer(dialogue_speech)
        self.temp_root = temp_root or settings.temp_dir

        self._handlers: Dict[JobStage, Callable[[WorkItem], Awaitable[None]]] = {
            JobStage.LOADING_CONTEXT: self._load_context,
            JobStage.TRANSCRIBING: self._transcribe,
            JobStage.GENERATING_STORY: self._generate_story,
            JobStage.SCRIPT_COMPLETE: self._accept_script,
            JobStage.GENERATING_SCRIPT: self._generate_script,
            JobStage.GENERATING_AUDIO: self._generate_audio,
        }

    # --- Entry points ---

    async def submit(self, request: SubmitRequest) -> WorkItem:
        """
        Record a submission and return the first unit of work.

        Nothing is written when validation fails. The caller hands the
        returned item to a JobQueue; this method never runs a stage.

        Raises:
            InvalidRequest: If the request is incomplete
        """
        validate_request(request)
        key = request.key
        document = await self.store.get(key.document_path) or {}
        if request.mode == PipelineMode.RETRANSCRIBE and not document.get("audioPath"):
            raise InvalidRequest("No audio file found for this session.")

        fields: Dict[str, Any] = {}
        if request.session_title:
            fields["title"] = request.session_title
        if request.session_date:
            fields["sessionDate"] = request.session_date
        if request.audio_path:
            fields["audioPath"] = request.audio_path
            fields["audioFileName"] = request.audio_file_name or Path(request.audio_path).name
        if request.user_id:
            fields["ownerId"] = request.user_id
        fields["enableKankaContext"] = request.enable_glossary
        if request.user_corrections is not None:
            fields["userCorrections"] = request.user_corrections

        version = None
        if request.mode in PODCAST_MODES:
            version = request.version or (document.get("latestPodcastVersion") or 0) + 1
            existing = find_podcast(document, version) or {}
            entry: Dict[str, Any] = {
                "version": version,
                "createdAt": existing.get("createdAt") or utcnow().isoformat(),
                "storyVersion": document.get("storyRegenerationCount") or 1,
                "status": "pending",
                "progress": 0,
                "error": None,
            }
            if request.script is not None:
                entry["script"] = request.script.to_document()
                entry["duration"] = request.script.estimated_duration_seconds
            fields["podcasts"] = upsert_podcast(document.get("podcasts"), entry)
            fields["latestPodcastVersion"] = max(version, document.get("latestPodcastVersion") or 0)

        await self.ledger.start(key, request.mode, version=version, fields=fields)

        first_stage = stage_plan(request.mode, request.regenerate_story)[0]
        logger.info(f"Submitted {key} ({request.mode.value}), first stage: {first_stage.value}")
        return WorkItem(
            key=key,
            stage=first_stage,
            mode=request.mode,
            version=version,
            regenerate_story=request.regenerate_story,
        )

    async def run_stage(self, item: WorkItem) -> Optional[WorkItem]:
        """
        Run one stage and return the next work item.

        Failures are caught here, recorded as ``failed`` with a message that
        is safe to show, and end the job. Artifacts from earlier stages
        stay in the session document.
        """
        job = await self.ledger.get(item.key)
        if job is None or job.stage.is_terminal or job.mode != item.mode or job.version != item.version:
            logger.warning(f"Dropping stale work item {item.stage.value} for {item.key}")
            return None

        plan = stage_plan(item.mode, item.regenerate_story)
        handler = self._handlers[item.stage]
        try:
            await handler(item)

            position = plan.index(item.stage)
            if position + 1 < len(plan):
                return item.model_copy(update={"stage": plan[position + 1]})

            await self.ledger.complete(item.key, self._completion_message(item))
            return None

        except TalecastError as e:
            logger.error(f"{STAGE_LABELS[item.stage]} failed for {item.key}: {e.message}")
            await self._record_failure(item, e.message)
        except Exception:
            logger.exception(f"{STAGE_LABELS[item.stage]} failed unexpectedly for {item.key}")
            await self._record_failure(item, f"{STAGE_LABELS[item.stage]} failed unexpectedly.")
        return None

    async def run(self, item: Optional[WorkItem]) -> None:
        """Run a job inline until it completes or fails."""
        while item is not None:
            item = await self.run_stage(item)

    # --- Stage handlers ---

    async def _load_context(self, item: WorkItem) -> None:
        key = item.key
        await self.ledger.advance(key, JobStage.LOADING_CONTEXT, 1, "Loading AI settings...")
        self.ai_settings.invalidate()
        await self.ai_settings.get()

        document = await self._session(key)
        checkpoint: Dict[str, Any] = {}

        if item.mode == PipelineMode.STORY_TO_PODCAST:
            if not (document.get("content") or "").strip():
                raise InvalidRequest("This session has no story to turn into a podcast yet.")
            if not (document.get("title") or "").strip():
                raise InvalidRequest("Missing sessionTitle.")
        else:
            if item.mode == PipelineMode.REGENERATE_STORY and not self._transcript_text(document):
                raise InvalidRequest("This session has no transcript to regenerate the story from.")
            if item.mode == PipelineMode.RETRANSCRIBE and not document.get("audioPath"):
                raise InvalidRequest("No audio file found for this session.")

            await self.ledger.advance(key, JobStage.LOADING_CONTEXT, 5, "Loading campaign context...")
            glossary = await self.glossary_loader.load(
                key.campaign_id,
                bool(document.get("enableKankaContext")),
            )
            checkpoint["campaignContext"] = glossary.to_document() if glossary else None

        await self.ledger.advance(
            key, JobStage.LOADING_CONTEXT, 10, "Context loaded", checkpoint=checkpoint
        )

    async def _transcribe(self, item: WorkItem) -> None:
        key = item.key
        document = await self._session(key)
        audio_path = document.get("audioPath")
        if not audio_path:
            raise InvalidRequest("Missing audio file (required for processing).")

        glossary = self._glossary(document)
        config = await self.ai_settings.feature(TRANSCRIPTION)
        transcriber = SegmentTranscriber(self.speech_to_text, config)

        await self.ledger.advance(key, JobStage.TRANSCRIBING, 10, "Preparing audio...")

        upload_dir = None
        segments = []
        try:
            upload_dir = Path(tempfile.mkdtemp(prefix=UPLOAD_DIR_PREFIX, dir=self.temp_root))
            local_audio = upload_dir / Path(document.get("audioFileName") or "session_audio").name
            try:
                data = await self.objects.get(audio_path)
            except StorageError as e:
                raise InvalidRequest("The uploaded recording could not be found.") from e
            await asyncio.to_thread(local_audio.write_bytes, data)

            duration = await asyncio.to_thread(self.splitter.get_duration, local_audio)
            logger.info(f"Audio duration: {round(duration)}s ({duration / 60:.1f} minutes)")
            segments = await asyncio.to_thread(self.splitter.split, local_audio, duration)
            if not segments:
                raise InvalidRequest("The uploaded recording contains no audio.")

            results = []
            total = len(segments)
            for i, segment in enumerate(segments):
                await self.ledger.advance(
                    key,
                    JobStage.TRANSCRIBING,
                    10 + 30 * i / total,
                    f"Transcribing segment {i + 1} of {total}...",
                )
                prompt = build_segment_prompt(segment, total, glossary)
                utterances = await transcriber.transcribe(segment, prompt)
                results.append(SegmentResult(segment=segment, utterances=utterances))

            transcript = self.merger.merge(results)
        finally:
            cleanup_segments(segments)
            cleanup_paths([upload_dir])

        await self.ledger.advance(
            key,
            JobStage.TRANSCRIPTION_COMPLETE,
            40,
            f"Transcription complete ({len(transcript.utterances)} lines)",
            checkpoint={
                "transcription": transcript.to_document(),
                "transcriptionCompletedAt": utcnow().isoformat(),
                "modelsUsed.transcription": config.model,
            },
        )

    async def _generate_story(self, item: WorkItem) -> None:
        key = item.key
        await self.ledger.advance(key, JobStage.GENERATING_STORY, 45, "Generating story...")

        document = await self._session(key)
        transcript_text = self._transcript_text(document)
        if not transcript_text:
            raise InvalidRequest("This session has no transcript to generate a story from.")

        context = NarrativeContext(
            glossary=self._glossary(document),
            previous_summaries=await self.history.fetch(key.campaign_id, key.session_id),
            user_corrections=document.get("userCorrections"),
        )
        config = await self.ai_settings.feature(STORY_GENERATION)
        story = await self.narrative.generate(transcript_text, context, config)

        await self.ledger.advance(
            key,
            JobStage.STORY_COMPLETE,
            60,
            "Story generated",
            checkpoint={
                "content": story,
                "storyGeneratedAt": utcnow().isoformat(),
                "storyRegenerationCount": (document.get("storyRegenerationCount") or 0) + 1,
                "modelsUsed.storyGeneration": config.model,
            },
        )

    async def _accept_script(self, item: WorkItem) -> None:
        key = item.key
        document = await self._session(key)
        script = self._stored_script(document, item.version)
        check_budget(script, await self.ai_settings.max_script_characters())

        podcasts = upsert_podcast(document.get("podcasts"), {
            "version": item.version,
            "status": "script_complete",
            "progress": 75,
            "script": script.to_document(),
            "duration": script.estimated_duration_seconds,
            "scriptGeneratedAt": utcnow().isoformat(),
        })
        await self.ledger.advance(
            key, JobStage.SCRIPT_COMPLETE, 75, "Using provided script",
            checkpoint={"podcasts": podcasts},
        )

    async def _generate_script(self, item: WorkItem) -> None:
        key = item.key
        await self.ledger.advance(key, JobStage.GENERATING_SCRIPT, 65, "Generating podcast script...")

        document = await self._session(key)
        story = (document.get("content") or "").strip()
        if not story:
            raise InvalidRequest("This session has no story to turn into a podcast yet.")

        config = await self.ai_settings.feature(PODCAST_SCRIPT)
        script = await self.script_generator.generate(
            story,
            await self.ai_settings.max_script_characters(),
            title=document.get("title"),
            session_date=document.get("sessionDate"),
            config=config,
        )

        podcasts = upsert_podcast(document.get("podcasts"), {
            "version": item.version,
            "status": "script_complete",
            "progress": 75,
            "script": script.to_document(),
            "duration": script.estimated_duration_seconds,
            "storyVersion": document.get("storyRegenerationCount") or 1,
            "scriptGeneratedAt": utcnow().isoformat(),
            "modelUsed": config.model,
        })
        await self.ledger.advance(
            key,
            JobStage.SCRIPT_COMPLETE,
            75,
            f"Script ready ({len(script.segments)} lines, ~{script.estimated_duration_seconds}s)",
            checkpoint={"podcasts": podcasts},
        )

    async def _generate_audio(self, item: WorkItem) -> None:
        key = item.key
        await self.ledger.advance(key, JobStage.GENERATING_AUDIO, 80, "Loading podcast voices...")

        document = await self._session(key)
        script = self._stored_script(document, item.version)
        voices = await self.ai_settings.voices()

        await self.ledger.advance(key, JobStage.GENERATING_AUDIO, 85, "Synthesizing podcast audio...")
        audio = await self.synthesizer.synthesize(script, voices)

        await self.ledger.advance(key, JobStage.UPLOADING, 90, "Uploading podcast...")
        path = podcast_storage_path(key, item.version, audio.extension)
        metadata = {
            "campaignId": key.campaign_id,
            "sessionId": key.session_id,
            "version": str(item.version),
        }
        if document.get("ownerId"):
            metadata["userId"] = document["ownerId"]
        await self.objects.put(path, audio.data, audio.content_type, metadata=metadata)
        audio_url = await self.objects.signed_url(path)

        # Reload so the upsert sees any entry written while synthesizing
        document = await self._session(key)
        podcasts = upsert_podcast(document.get("podcasts"), {
            "version": item.version,
            "status": "completed",
            "progress": 100,
            "audioUrl": audio_url,
            "storagePath": path,
            "fileSize": len(audio.data),
            "audioGeneratedAt": utcnow().isoformat(),
            "error": None,
        })
        await self.store.update(key.document_path, {"podcasts": podcasts})
        logger.info(f"Podcast v{item.version} stored for {key}: {len(audio.data)} bytes")

    # --- Helpers ---

    async def _session(self, key: JobKey) -> Dict[str, Any]:
        document = await self.store.get(key.document_path)
        if document is None:
            raise InvalidRequest("Session not found.")
        return document

    async def _record_failure(self, item: WorkItem, message: str) -> None:
        checkpoint: Dict[str, Any] = {}
        if item.mode in PODCAST_MODES and item.version is not None:
            document = await self.store.get(item.key.document_path) or {}
            checkpoint["podcasts"] = upsert_podcast(document.get("podcasts"), {
                "version": item.version,
                "status": "failed",
                "progress": 0,
                "error": message,
            })
        await self.ledger.fail(item.key, item.stage, message, checkpoint=checkpoint)

    @staticmethod
    def _transcript_text(document: Dict[str, Any]) -> str:
        transcription = document.get("transcription") or {}
        return (transcription.get("text") or "").strip()

    @staticmethod
    def _glossary(document: Dict[str, Any]) -> Optional[GlossaryContext]:
        data = document.get("campaignContext")
        if not data:
            return None
        return GlossaryContext.model_validate(data)

    @staticmethod
    def _stored_script(document: Dict[str, Any], version: Optional[int]) -> DialogueScript:
        podcast = find_podcast(document, version) or {}
        if not podcast.get("script"):
            raise InvalidRequest(f"No podcast script found for version {version}.")
        try:
            script = DialogueScript.model_validate(podcast["script"])
        except ValidationError as e:
            raise InvalidRequest("The stored podcast script is invalid.") from e
        if not script.segments:
            raise InvalidRequest("Invalid script provided.")
        return script

    @staticmethod
    def _completion_message(item: WorkItem) -> str:
        if item.mode == PipelineMode.REGENERATE_STORY:
            return "Story regenerated"
        if item.mode == PipelineMode.RETRANSCRIBE:
            if item.regenerate_story:
                return "Retranscription and story generation complete"
            return "Retranscription complete"
        return "Podcast generation complete"
