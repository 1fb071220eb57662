"""Error taxonomy shared by the services, the HTTP layer and the upload client."""


class LinguaError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LinguaError):
    """A required field is missing or malformed. The caller must resend a corrected request."""

    status_code = 400


class NotFoundError(LinguaError):
    status_code = 404


class SessionClosedError(LinguaError):
    """A chunk arrived for a recording that is already being finalized or is finalized."""

    status_code = 409


class IntegrityCheckError(LinguaError):
    """The reassembled payload does not match what the client declared."""

    status_code = 422


class StorageError(LinguaError):
    """The underlying store failed. Not retried by the server."""

    status_code = 500


class DuplicateRecordingError(StorageError):
    """A recording with this identifier already exists."""


class UploadError(Exception):
    """Client-side: a chunk or finalize request failed and the upload was aborted."""

    def __init__(self, message: str, recording_id: str | None = None, chunk_index: int | None = None) -> None:
        super().__init__(message)
        self.recording_id = recording_id
        self.chunk_index = chunk_index
