"""Core domain entities, errors and the result type."""

from .result import ErrorKind, Success, Failure, Result
from .exceptions import (
    ApplicationError, ConfigError, ValidationError, ServiceError, AIServiceError,
    AnalysisError, TransportError, UpstreamExplicitError, PollTimeoutError,
    DecodeError, CommitError
)
from .entities import (
    SubmissionRequest, EventType, GeneratingEvent, CompleteEvent, ErrorEvent, PollEvent,
    PayloadEnvelope, RawDetection, TechnicalData, DecodedPayload,
    BoundingBox, ToothDetection, Analysis, AnalysisStatus, SeverityLevel, CommitReceipt,
    RiskLevel, ClinicalInsightRequest, ClinicalInsight
)

__all__ = [
    "ErrorKind", "Success", "Failure", "Result",
    "ApplicationError", "ConfigError", "ValidationError", "ServiceError", "AIServiceError",
    "AnalysisError", "TransportError", "UpstreamExplicitError", "PollTimeoutError",
    "DecodeError", "CommitError",
    "SubmissionRequest", "EventType", "GeneratingEvent", "CompleteEvent", "ErrorEvent", "PollEvent",
    "PayloadEnvelope", "RawDetection", "TechnicalData", "DecodedPayload",
    "BoundingBox", "ToothDetection", "Analysis", "AnalysisStatus", "SeverityLevel", "CommitReceipt",
    "RiskLevel", "ClinicalInsightRequest", "ClinicalInsight"
]
