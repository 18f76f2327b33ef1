"""Utility functions package."""

from . import fdi_notation
from .fdi_notation import describe_tooth, quadrant_of, position_of, tooth_name, quadrant_name
from .image_utils import detect_image_format, guess_mime_type, to_data_uri
from .validation import InputValidator

__all__ = [
    "fdi_notation", "describe_tooth", "quadrant_of", "position_of", "tooth_name", "quadrant_name",
    "detect_image_format", "guess_mime_type", "to_data_uri",
    "InputValidator"
]
