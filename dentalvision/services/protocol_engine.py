"""Submission & polling protocol engine.

Drives the two-phase remote protocol of the analysis service:

1. POST ``{"data": [dataUri, threshold]}`` to the submit path and read the
   correlation token (``event_id``) from the JSON response.
2. GET ``<submit path>/<token>`` up to ``max_attempts`` times, sleeping
   ``poll_interval`` seconds between attempts, until a terminal event shows up.

Attempts are strictly sequential: attempt k+1 is only sent after attempt k's
response has been scanned and the delay has elapsed. Cancelling the calling
task stops the loop at its current suspension point.
"""

import asyncio
import logging
from typing import Optional

from ..core.entities import CompleteEvent, DecodedPayload, ErrorEvent, GeneratingEvent, SubmissionRequest
from ..core.exceptions import (
    AnalysisError, DecodeError, PollTimeoutError, TransportError, UpstreamExplicitError, ValidationError,
)
from ..core.result import Failure, Result, Success
from ..utils.image_utils import to_data_uri
from ..utils.validation import InputValidator
from .event_stream import scan_events
from .payload_decoder import PayloadDecoder
from .transport import TimeoutProfile, TransportClient

logger = logging.getLogger(__name__)


class ProtocolEngine:
    """Submits one image and polls until the analysis service answers."""

    def __init__(self, transport: TransportClient, decoder: PayloadDecoder,
                 submit_path: str = "/gradio_api/call/predict_dental_image",
                 token_field: str = "event_id", max_attempts: int = 60,
                 poll_interval: float = 2.0):
        """Initialize the engine.

        Args:
            transport: Transport bound to the analysis service base URL
            decoder: Decoder for ``complete`` event payloads
            submit_path: Submission path; the poll path appends ``/<token>``
            token_field: Response field carrying the correlation token
            max_attempts: Poll attempt budget
            poll_interval: Delay between poll attempts, seconds
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.transport = transport
        self.decoder = decoder
        self.submit_path = "/" + submit_path.strip("/")
        self.token_field = token_field
        self.max_attempts = max_attempts
        self.poll_interval = poll_interval

    async def submit(self, request: SubmissionRequest) -> Result[DecodedPayload]:
        """Run the full protocol for one submission.

        Returns:
            Success(DecodedPayload), or Failure carrying a ValidationError,
            TransportError, UpstreamExplicitError, PollTimeoutError or DecodeError
        """
        try:
            return Success(await self.run(request))
        except (AnalysisError, ValidationError) as e:
            logger.warning(f"Analysis submission failed ({e.kind.value}): {e}")
            return Failure(e)

    async def run(self, request: SubmissionRequest) -> DecodedPayload:
        """Like ``submit`` but raises the typed error instead of returning it."""
        self._validate(request)
        token = await self.request_token(request)
        return await self.poll(token)

    def _validate(self, request: SubmissionRequest) -> None:
        is_valid, message = InputValidator.validate_image_data(request.image_bytes)
        if not is_valid:
            raise ValidationError(message)
        InputValidator.validate_threshold(request.confidence_threshold)

    async def request_token(self, request: SubmissionRequest) -> str:
        """Step 1: POST the image and return the correlation token.

        Raises:
            TransportError: The submission call failed
            DecodeError: The response carries no token
        """
        body = {"data": [to_data_uri(request.image_bytes, request.file_name),
                         request.confidence_threshold]}
        logger.info(
            f"Submitting '{request.file_name}' ({len(request.image_bytes)} bytes, "
            f"threshold={request.confidence_threshold})"
        )
        response = await self.transport.post_json(self.submit_path, body, TimeoutProfile.SUBMIT)

        token = response.get(self.token_field) if isinstance(response, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise DecodeError(self.token_field, "submission response carries no correlation token")
        logger.debug(f"Received correlation token {token}")
        return token.strip()

    async def poll(self, token: str) -> DecodedPayload:
        """Step 2: poll the result channel for ``token`` until a terminal event.

        Raises:
            UpstreamExplicitError: The service emitted an ``error`` event
            DecodeError: The ``complete`` payload is malformed
            PollTimeoutError: The attempt budget ran out
        """
        path = f"{self.submit_path}/{token}"
        last_transport_error: Optional[TransportError] = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self.poll_interval)

            try:
                body = await self.transport.get_text(path, TimeoutProfile.POLL)
            except TransportError as e:
                last_transport_error = e
                logger.warning(f"Poll attempt {attempt}/{self.max_attempts} failed: {e}")
                continue

            event = scan_events(body)
            if isinstance(event, CompleteEvent):
                logger.info(f"Analysis complete after {attempt} poll attempt(s)")
                return self.decoder.decode(event.data)
            if isinstance(event, ErrorEvent):
                logger.warning(f"Analysis service reported an error on attempt {attempt}: {event.message}")
                raise UpstreamExplicitError(event.message)
            if isinstance(event, GeneratingEvent):
                logger.debug(f"Poll attempt {attempt}/{self.max_attempts}: still generating")
            else:
                logger.debug(f"Poll attempt {attempt}/{self.max_attempts}: no recognised event")

        message = f"No result after {self.max_attempts} poll attempts"
        if last_transport_error is not None:
            message += f" (last transport error: {last_transport_error})"
        raise PollTimeoutError(message, attempts=self.max_attempts)
