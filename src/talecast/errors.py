"""
Talecast Errors

Every error raised by the pipeline carries a message that is safe to show
to the person watching the job: no stack traces, no internal identifiers.
"""


class TalecastError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(TalecastError):
    """Raised when a submission is missing required fields."""


class CapabilityUnavailable(TalecastError):
    """Raised when an external capability is missing or misconfigured."""


class StorageError(TalecastError):
    """Raised when the document store or object storage cannot serve a request."""


class DurationUnavailable(TalecastError):
    """Raised when the length of a recording cannot be determined."""


class UnrecognizedResponseShape(TalecastError):
    """Raised when a vendor response matches none of the known shapes."""


class NoTranscriptionContent(TalecastError):
    """Raised when the transcription model returns empty or malformed output."""


class ModelReportedError(TalecastError):
    """Raised when the model itself reports that it could not process the input."""


class EmptyGeneration(TalecastError):
    """Raised when a text-generation call returns nothing."""


class NoSegmentsParsed(TalecastError):
    """Raised when no dialogue lines could be parsed from a generated script."""


class ScriptTooLong(TalecastError):
    """Raised when a dialogue script exceeds the synthesis character budget."""

    def __init__(self, total_characters: int, max_characters: int):
        super().__init__(
            f"Script too long ({total_characters} chars). "
            f"Maximum is {max_characters}. Try a shorter story."
        )
        self.total_characters = total_characters
        self.max_characters = max_characters


class EmptySynthesis(TalecastError):
    """Raised when speech synthesis produces no audio."""
