"""Image encoding utilities."""

import base64
import io
import mimetypes
from typing import Optional

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME_TYPE = "image/png"


def detect_image_format(image_bytes: bytes) -> Optional[str]:
    """Return the Pillow format name (``PNG``, ``JPEG`` ...) or None if unreadable."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return img.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None


def guess_mime_type(image_bytes: bytes, file_name: str = "") -> str:
    """Sniff the MIME type from the bytes, falling back to the file extension."""
    image_format = detect_image_format(image_bytes)
    if image_format and image_format in Image.MIME:
        return Image.MIME[image_format]

    guessed, _ = mimetypes.guess_type(file_name)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_MIME_TYPE


def to_data_uri(image_bytes: bytes, file_name: str = "") -> str:
    """Encode image bytes as a base64 ``data:`` URI."""
    mime_type = guess_mime_type(image_bytes, file_name)
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
