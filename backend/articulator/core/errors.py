"""
Error types shared by the server gateways and the recording client.
"""

from typing import Optional


class ArticulatorError(Exception):
    """Base class for all application errors."""


class ProviderError(ArticulatorError):
    """The generative-AI provider rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FileProcessingFailed(ProviderError):
    """The provider finished ingesting an uploaded file with state FAILED."""

    kind = "failed"


class FileProcessingTimeout(ProviderError):
    """The provider never left PROCESSING within the retry policy."""

    kind = "timeout"

    def __init__(self, message: str, attempts: int, elapsed_seconds: float):
        super().__init__(message)
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class MediaAccessError(ArticulatorError):
    """Camera or microphone could not be opened (denied, busy or missing)."""


class RecorderStateError(ArticulatorError):
    """An operation was requested in a recording state that does not allow it."""


class UploadError(ArticulatorError):
    """The upload failed or the endpoint answered with an unexpected body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ChatStreamError(ArticulatorError):
    """A chat or analysis stream could not be opened or ended with an error event."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details
