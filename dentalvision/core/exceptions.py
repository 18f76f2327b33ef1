"""Custom exceptions for the analysis pipeline."""

from typing import Optional

from .result import ErrorKind


class ApplicationError(Exception):
    """Base application error."""
    pass

class ConfigError(ApplicationError):
    """Configuration-related errors."""
    pass

class ValidationError(ApplicationError):
    """Invalid submission input (image bytes, file name, threshold, patient id)."""
    kind = ErrorKind.VALIDATION

class ServiceError(ApplicationError):
    """Service operation errors."""
    pass

class AIServiceError(ServiceError):
    """Clinical insight service errors."""
    pass


class AnalysisError(ServiceError):
    """Base class for failures of the submission/poll/decode/commit pipeline.

    Every subclass pins a single ``ErrorKind`` so callers can branch on the
    failure category without isinstance chains.
    """

    kind: ErrorKind = ErrorKind.TRANSPORT


class TransportError(AnalysisError):
    """Network failure or non-2xx HTTP response."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class UpstreamExplicitError(AnalysisError):
    """The analysis service emitted an ``error`` event."""

    kind = ErrorKind.UPSTREAM


class PollTimeoutError(AnalysisError):
    """Poll attempt budget exhausted without a terminal event."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class DecodeError(AnalysisError):
    """Payload shape violates the envelope or technical-data structure."""

    kind = ErrorKind.DECODE

    def __init__(self, element: str, detail: str):
        super().__init__(f"Malformed payload at '{element}': {detail}")
        self.element = element
        self.detail = detail


class CommitError(AnalysisError):
    """The system of record rejected a registration."""

    kind = ErrorKind.COMMIT

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
