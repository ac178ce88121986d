"""Exception hierarchy shared by the ingestion and query pipelines.

The API layer maps each family to an HTTP status code; pipelines raise the
most specific class so callers get an explicit, user-readable message.
"""


class ChatPyeError(Exception):
    """Base class for all service errors."""

    status_code = 500


# Input errors (4xx, never retried)


class InvalidRequestError(ChatPyeError):
    """A required field is missing or holds an unsupported value."""

    status_code = 400


class InvalidVideoUrlError(InvalidRequestError):
    """The submitted URL does not contain a recognizable YouTube video id."""


class JobNotFoundError(ChatPyeError):
    status_code = 404


class VideoNotFoundError(ChatPyeError):
    """Video metadata could not be fetched (missing, private or restricted)."""

    status_code = 404


class JobNotReadyError(ChatPyeError):
    """The job has not finished ingestion, or it failed."""

    status_code = 409


class JobStateError(ChatPyeError):
    """An illegal job status transition was requested (e.g. leaving `failed`)."""

    status_code = 409


class DirectModeUnavailableError(ChatPyeError):
    """No usable transcript and the chosen model cannot consume video directly."""

    status_code = 422


# Upstream unavailability


class TranscriptUnavailableError(ChatPyeError):
    """The transcript source has no captions for this video."""

    status_code = 404


class GenerationError(ChatPyeError):
    """The LLM call failed or produced no text."""

    status_code = 502


# Integrity violations (5xx, indicate a bug or corrupted data)


class IntegrityError(ChatPyeError):
    status_code = 500


class ChunkIntegrityError(IntegrityError):
    """Chunks overlap in time or disagree with their job's owner."""


class VideoMismatchError(IntegrityError):
    """Chunks or request refer to a different video than the job."""


class DuplicateRecordError(IntegrityError):
    """A uniqueness constraint of the store was violated."""
