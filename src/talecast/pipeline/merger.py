"""
Transcript Merging

Re-anchors per-segment utterance timestamps onto the full recording
timeline and renders the merged transcript as flat text.
"""

import logging
from typing import Iterable, List, Optional

from ..config import settings
from .models import SegmentResult, Transcript, Utterance
from .splitter import format_timestamp

logger = logging.getLogger(__name__)


def render_line(utterance: Utterance) -> str:
    """Render one utterance as ``[mm:ss] speaker: text``."""
    stamp = format_timestamp(round(max(0.0, utterance.time_seconds)))
    if utterance.speaker:
        return f"[{stamp}] {utterance.speaker}: {utterance.text}"
    return f"[{stamp}] {utterance.text}"


def render_text(utterances: Iterable[Utterance]) -> str:
    return "\n".join(render_line(u) for u in utterances)


class TranscriptMerger:
    """
    Merge independently transcribed segments into one transcript.

    Models are asked for absolute timestamps but sometimes answer
    relative to the segment. A time more than ``tolerance_seconds`` below
    the segment's start offset cannot be absolute, so the offset is added;
    anything else is kept as reported.
    """

    def __init__(self, tolerance_seconds: Optional[float] = None):
        self.tolerance_seconds = (
            settings.offset_tolerance_seconds if tolerance_seconds is None else tolerance_seconds
        )

    def reanchor(self, result: SegmentResult) -> List[Utterance]:
        start = result.segment.start_offset_seconds
        adjusted = []
        for utterance in result.utterances:
            if utterance.time_seconds < start - self.tolerance_seconds:
                utterance = utterance.model_copy(
                    update={"time_seconds": utterance.time_seconds + start}
                )
            adjusted.append(utterance)
        return adjusted

    def merge(self, results: List[SegmentResult]) -> Transcript:
        ordered = sorted(results, key=lambda r: r.segment.index)

        if len(ordered) == 1:
            utterances = list(ordered[0].utterances)
        else:
            utterances = []
            for result in ordered:
                utterances.extend(self.reanchor(result))

        # sorted() is stable: ties keep segment order, then intra-segment order
        utterances = sorted(utterances, key=lambda u: u.time_seconds)

        logger.info(f"Merged {len(ordered)} segments into {len(utterances)} utterances")
        return Transcript(utterances=utterances, text=render_text(utterances))
