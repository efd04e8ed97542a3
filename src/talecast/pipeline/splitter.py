"""
Audio Splitting Module

Splits a session recording into fixed-duration segments (30 minutes by
default) re-encoded as mono 16 kHz WAV, so every transcription request
has one input shape regardless of the upload format.
"""

import logging
import math
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pydub import AudioSegment as PydubSegment
from pydub.utils import mediainfo

from ..config import settings
from ..errors import DurationUnavailable
from .models import AudioSegment

logger = logging.getLogger(__name__)

SEGMENT_MIME_TYPE = "audio/wav"
SEGMENT_DIR_PREFIX = "talecast_segments_"


def plan_segments(total_duration_seconds: float, max_segment_seconds: float) -> List[Tuple[float, float]]:
    """
    Compute consecutive (start, end) windows covering the whole recording.

    Windows tile [0, total) exactly: each end equals the next start and
    only the last window may be shorter than ``max_segment_seconds``.
    """
    if total_duration_seconds <= 0:
        return []
    if max_segment_seconds <= 0:
        raise ValueError("max_segment_seconds must be positive")

    count = math.ceil(total_duration_seconds / max_segment_seconds)
    windows = []
    for i in range(count):
        start = i * max_segment_seconds
        end = min(total_duration_seconds, (i + 1) * max_segment_seconds)
        windows.append((float(start), float(end)))
    return windows


def format_timestamp(seconds: float) -> str:
    """Format seconds as MM:SS (minutes are not wrapped into hours)."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class AudioSplitter:
    """Cut recordings into normalized segments in a private temp directory."""

    def __init__(
        self,
        max_segment_seconds: Optional[float] = None,
        sample_rate: Optional[int] = None,
        temp_root: Optional[Path] = None,
    ):
        self.max_segment_seconds = max_segment_seconds or settings.segment_duration_seconds
        self.sample_rate = sample_rate or settings.segment_sample_rate
        self.temp_root = temp_root

    def get_duration(self, path: Path) -> float:
        """
        Probe the duration of an audio file.

        Raises:
            DurationUnavailable: If the media probe cannot report a length
        """
        try:
            info = mediainfo(str(path))
        except Exception as e:
            logger.error(f"Could not probe {path}: {e}")
            raise DurationUnavailable("Could not determine audio duration.") from e

        try:
            duration = float(info.get("duration", ""))
        except (TypeError, ValueError):
            duration = 0.0

        if not math.isfinite(duration) or duration <= 0:
            raise DurationUnavailable("Could not determine audio duration.")
        return duration

    def split(self, source_path: Path, total_duration_seconds: float) -> List[AudioSegment]:
        """
        Split an audio file into normalized segments.

        Args:
            source_path: Path to the uploaded recording
            total_duration_seconds: Duration reported by get_duration

        Returns:
            AudioSegment objects with temporary file paths and offsets

        Note:
            Caller owns the returned files and must release them with
            cleanup_segments, also when a later step fails.
        """
        windows = plan_segments(total_duration_seconds, self.max_segment_seconds)
        if not windows:
            return []

        logger.info(f"Loading audio: {Path(source_path).name}")
        audio = PydubSegment.from_file(str(source_path))

        temp_dir = Path(tempfile.mkdtemp(prefix=SEGMENT_DIR_PREFIX, dir=self.temp_root))
        segments: List[AudioSegment] = []
        try:
            for index, (start, end) in enumerate(windows):
                segment_path = temp_dir / f"segment_{index:03d}.wav"
                piece = audio[int(start * 1000):int(end * 1000)]
                piece = piece.set_channels(1).set_frame_rate(self.sample_rate)
                piece.export(str(segment_path), format="wav")

                segment = AudioSegment(
                    index=index,
                    start_offset_seconds=start,
                    end_offset_seconds=end,
                    duration_seconds=end - start,
                    local_path=segment_path,
                )
                segments.append(segment)
                logger.info(
                    f"Segment {index + 1}/{len(windows)}: "
                    f"{format_timestamp(start)}-{format_timestamp(end)} ({round(end - start)}s)"
                )
        except Exception:
            cleanup_paths([temp_dir])
            raise

        logger.info(f"Audio split into {len(segments)} segments")
        return segments


def cleanup_paths(paths: Iterable[Path]) -> None:
    """
    Remove temporary files or directories.

    Missing paths are ignored and failures are logged, so calling this
    twice on the same paths is safe.
    """
    for path in paths:
        if path is None:
            continue
        path = Path(path)
        try:
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
        except OSError as e:
            logger.warning(f"Failed to clean up {path}: {e}")


def cleanup_segments(segments: Iterable[AudioSegment]) -> None:
    """Remove segment files and their private temp directories."""
    segments = list(segments)
    cleanup_paths(segment.local_path for segment in segments)
    cleanup_paths(
        {
            segment.local_path.parent
            for segment in segments
            if segment.local_path.parent.name.startswith(SEGMENT_DIR_PREFIX)
        }
    )
