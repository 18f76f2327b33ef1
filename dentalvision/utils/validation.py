"""Input validation for analysis submissions.

Checks run before any network traffic so that an obviously bad submission
(empty upload, non-image file, threshold outside [0, 1]) fails fast with a
``ValidationError`` instead of a round trip to the analysis service.
"""
import io
import logging
import math
import re
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class InputValidator:
    """Submission input validation and sanitization."""

    MAX_IMAGE_SIZE = 20 * 1024 * 1024

    MAX_LENGTHS = {
        'filename': 255,
        'patient_id': 128,
    }

    RESERVED_NAMES = (
        ['CON', 'PRN', 'AUX', 'NUL']
        + [f'COM{i}' for i in range(1, 10)]
        + [f'LPT{i}' for i in range(1, 10)]
    )

    @classmethod
    def validate_filename(cls, filename: str) -> str:
        """Validate and sanitize a file name.

        Directory components are dropped, so ``../../x.png`` becomes ``x.png``.

        Args:
            filename: Raw file name

        Returns:
            str: Sanitized file name

        Raises:
            ValidationError: If the file name is invalid
        """
        if not isinstance(filename, str):
            raise ValidationError("Filename must be a string")

        if not filename.strip():
            raise ValidationError("Filename cannot be empty")

        if len(filename) > cls.MAX_LENGTHS['filename']:
            raise ValidationError(f"Filename exceeds maximum length of {cls.MAX_LENGTHS['filename']} characters")

        base_name = re.split(r'[/\\]', filename)[-1]
        sanitized = re.sub(r'[<>:"|?*\x00-\x1f]', '', base_name)
        sanitized = sanitized.strip('. ')

        if sanitized.upper().split('.')[0] in cls.RESERVED_NAMES:
            raise ValidationError(f"Filename uses reserved name: {sanitized}")

        if not sanitized:
            raise ValidationError("Filename becomes empty after sanitization")

        return sanitized

    @classmethod
    def validate_image_data(cls, image_data: bytes, max_size: int = MAX_IMAGE_SIZE) -> Tuple[bool, str]:
        """Validate image bytes for size and format.

        Args:
            image_data: Raw image bytes
            max_size: Maximum allowed size in bytes

        Returns:
            tuple: (is_valid, message)
        """
        if not isinstance(image_data, (bytes, bytearray)):
            return False, "Image data must be bytes"

        if not image_data:
            return False, "Image data cannot be empty"

        if len(image_data) > max_size:
            return False, f"Image exceeds maximum size of {max_size} bytes"

        try:
            with Image.open(io.BytesIO(image_data)) as img:
                img.verify()
                return True, f"Valid {img.format} image"
        except (UnidentifiedImageError, OSError, ValueError, SyntaxError) as e:
            logger.debug(f"Image verification failed: {e}")
            return False, "Unsupported or invalid image format"

    @staticmethod
    def validate_threshold(threshold: float) -> float:
        """Return the threshold as float, raising if it lies outside [0, 1]."""
        try:
            value = float(threshold)
        except (TypeError, ValueError):
            raise ValidationError(f"Confidence threshold must be a number, got {threshold!r}")
        if math.isnan(value) or not 0.0 <= value <= 1.0:
            raise ValidationError(f"Confidence threshold {value} outside [0.0, 1.0]")
        return value

    @classmethod
    def validate_patient_id(cls, patient_id: str) -> str:
        if not isinstance(patient_id, str) or not patient_id.strip():
            raise ValidationError("Patient id cannot be empty")
        if len(patient_id) > cls.MAX_LENGTHS['patient_id']:
            raise ValidationError("Patient id is too long")
        return patient_id.strip()
