"""Line scanner for the polling endpoint's pseudo event stream.

A poll response body looks like::

    event: generating
    data: null

    event: complete
    data: [...]

``scan_events`` reduces one body to a single ``PollEvent`` so the retry loop
only has to branch over three cases.
"""

import json
import logging
from typing import Optional

from ..core.entities import CompleteEvent, ErrorEvent, EventType, GeneratingEvent, PollEvent
from ..core.exceptions import DecodeError

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Upstream analysis service reported an error"

_TERMINAL = {EventType.COMPLETE.value, EventType.ERROR.value}
_PROGRESS = {EventType.GENERATING.value, "heartbeat"}


def _error_message(data: str) -> str:
    """Turn the ``data:`` payload of an error event into a message."""
    if not data:
        return DEFAULT_ERROR_MESSAGE
    try:
        decoded = json.loads(data)
    except json.JSONDecodeError:
        return data
    if decoded is None or decoded == "":
        return DEFAULT_ERROR_MESSAGE
    if isinstance(decoded, str):
        return decoded
    if isinstance(decoded, dict):
        for key in ("error", "message", "detail"):
            if decoded.get(key):
                return str(decoded[key])
    return data


def scan_events(body: str) -> Optional[PollEvent]:
    """Classify one poll response body.

    Lines are processed in order and each ``data:`` line belongs to the most
    recent ``event:`` line. The first terminal event with its data decides
    the result.

    Args:
        body: Raw response text of one poll attempt

    Returns:
        CompleteEvent or ErrorEvent for a terminal event, GeneratingEvent if
        the job only reported progress, None if nothing was recognised.

    Raises:
        DecodeError: A ``complete`` event is not followed by any ``data:`` line
    """
    pending: Optional[str] = None
    saw_progress = False

    for raw_line in body.splitlines():
        line = raw_line.strip()
        if line.startswith("event:"):
            name = line[len("event:"):].strip().lower()
            if name in _TERMINAL:
                pending = name
            else:
                pending = None
                if name in _PROGRESS:
                    saw_progress = True
                else:
                    logger.debug(f"Ignoring unknown event type '{name}'")
            continue

        if line.startswith("data:") and pending is not None:
            data = line[len("data:"):].strip()
            if pending == EventType.COMPLETE.value:
                return CompleteEvent(data=data)
            return ErrorEvent(message=_error_message(data))

    if pending == EventType.COMPLETE.value:
        raise DecodeError("complete event data", "no data line follows the complete event")
    if pending == EventType.ERROR.value:
        return ErrorEvent(message=DEFAULT_ERROR_MESSAGE)
    return GeneratingEvent() if saw_progress else None
