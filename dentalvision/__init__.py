"""
Client-side analysis pipeline for the Dental Vision caries detection service.
"""

__version__ = "1.0.0"

from .config.settings import Config, load_config, save_config
from .core.entities import Analysis, ToothDetection, SubmissionRequest
from .core.result import ErrorKind, Success, Failure

__all__ = [
    "Config", "load_config", "save_config",
    "Analysis", "ToothDetection", "SubmissionRequest",
    "ErrorKind", "Success", "Failure"
]
