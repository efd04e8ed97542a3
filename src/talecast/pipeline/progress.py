"""
Progress Ledger

Durable progress record for one processing job, stored under the
``processing`` field of the session document. Every write is a partial
update, so artifacts checkpointed by earlier stages are never touched.
"""

import logging
from typing import Any, Dict, Optional

from ..store import DocumentStore
from .models import JobKey, JobStage, PipelineMode, ProcessingJob, utcnow

logger = logging.getLogger(__name__)

PROCESSING_FIELD = "processing"


def clamp_percent(percent: float) -> int:
    return int(min(100, max(0, percent)))


class ProgressLedger:
    """Read and write the job record of a (campaign, session) pair."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def start(
        self,
        key: JobKey,
        mode: PipelineMode,
        version: Optional[int] = None,
        fields: Optional[Dict[str, Any]] = None,
        message: str = "Submitted for processing",
    ) -> ProcessingJob:
        """
        Record a new submission as ``submitted`` at 0%.

        A retry reuses the same record: the whole ``processing`` field is
        replaced, which clears any previous error. ``fields`` are written in
        the same update (request data the stages reload later) and must be
        top-level keys.
        """
        job = ProcessingJob(
            stage=JobStage.SUBMITTED,
            progress=0,
            message=message,
            mode=mode,
            version=version,
            error=None,
            failed_stage=None,
        )
        update = dict(fields or {})
        update[PROCESSING_FIELD] = job.to_document()

        existing = await self.store.get(key.document_path)
        if existing is None:
            await self.store.set(key.document_path, update)
        else:
            await self.store.update(key.document_path, update)

        logger.info(f"[Progress] {key}: submitted ({mode.value}, version={version})")
        return job

    async def advance(
        self,
        key: JobKey,
        stage: JobStage,
        percent: float,
        message: str,
        checkpoint: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Move the job to ``stage`` and optionally persist stage artifacts.

        Args:
            key: Job address
            stage: New stage
            percent: Overall progress, clamped to 0-100
            message: Human-readable status line
            checkpoint: Extra document fields written in the same update
        """
        progress = clamp_percent(percent)
        update = dict(checkpoint or {})
        update.update({
            f"{PROCESSING_FIELD}.stage": stage.value,
            f"{PROCESSING_FIELD}.progress": progress,
            f"{PROCESSING_FIELD}.message": message,
            f"{PROCESSING_FIELD}.updatedAt": utcnow().isoformat(),
        })
        await self.store.update(key.document_path, update)
        logger.info(f"[Progress] {key}: {stage.value} ({progress}%) - {message}")

    async def fail(
        self,
        key: JobKey,
        failed_stage: JobStage,
        error: str,
        checkpoint: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Mark the job failed. Progress drops to 0; artifacts stay in place."""
        update = dict(checkpoint or {})
        update.update({
            f"{PROCESSING_FIELD}.stage": JobStage.FAILED.value,
            f"{PROCESSING_FIELD}.progress": 0,
            f"{PROCESSING_FIELD}.message": error,
            f"{PROCESSING_FIELD}.error": error,
            f"{PROCESSING_FIELD}.failedStage": failed_stage.value,
            f"{PROCESSING_FIELD}.updatedAt": utcnow().isoformat(),
        })
        await self.store.update(key.document_path, update)
        logger.error(f"[Progress] {key} FAILED at {failed_stage.value}: {error}")

    async def complete(
        self,
        key: JobKey,
        message: str = "Processing complete",
        checkpoint: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.advance(key, JobStage.COMPLETED, 100, message, checkpoint)

    async def get(self, key: JobKey) -> Optional[ProcessingJob]:
        document = await self.store.get(key.document_path)
        if not document or not document.get(PROCESSING_FIELD):
            return None
        return ProcessingJob.model_validate(document[PROCESSING_FIELD])
