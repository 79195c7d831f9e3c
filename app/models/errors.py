"""
Error taxonomy for the Affiliate Link Pipeline.

Every failure the pipeline reports carries an ErrorKind. Callers switch on
`error.kind` rather than inspecting ad hoc attributes.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of pipeline failure kinds."""
    INVALID_INPUT_URL = "invalid_input_url"
    BOT_PROTECTION = "bot_protection"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    PERSISTENCE_ERROR = "persistence_error"
    BATCH_TOO_LARGE = "batch_too_large"
    NOT_FOUND = "not_found"
    INVALID_CATEGORY = "invalid_category"


class PipelineError(Exception):
    """Base class for all classified pipeline errors."""

    kind: ErrorKind = ErrorKind.NETWORK_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def describe(self) -> str:
        """Short text stored in `Link.last_error`."""
        if self.status_code is not None:
            return f"{self.kind.value}: {self.message} (status {self.status_code})"
        return f"{self.kind.value}: {self.message}"


class InvalidInputURL(PipelineError):
    kind = ErrorKind.INVALID_INPUT_URL


class BotProtectionDetected(PipelineError):
    kind = ErrorKind.BOT_PROTECTION


class HttpError(PipelineError):
    kind = ErrorKind.HTTP_ERROR


class NetworkError(PipelineError):
    kind = ErrorKind.NETWORK_ERROR


class PersistenceError(PipelineError):
    kind = ErrorKind.PERSISTENCE_ERROR


class BatchTooLarge(PipelineError):
    kind = ErrorKind.BATCH_TOO_LARGE


class LinkNotFound(PipelineError):
    kind = ErrorKind.NOT_FOUND


class InvalidCategory(PipelineError):
    kind = ErrorKind.INVALID_CATEGORY
