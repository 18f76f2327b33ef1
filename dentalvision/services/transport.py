"""HTTP transport for the analysis service and the system of record.

Thin wrapper over ``httpx.AsyncClient``: fixed base URL, JSON encoding and
decoding, two timeout profiles and debug logging of every exchange. It never
retries; retry policy belongs to the protocol engine.
"""

import json
import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from ..core.exceptions import DecodeError, TransportError

logger = logging.getLogger(__name__)

MAX_ERROR_BODY = 2000


class TimeoutProfile(Enum):
    """Named timeout profiles; the handshake is quick, inference is slow."""
    SUBMIT = "submit"
    POLL = "poll"


class TransportClient:
    """Async HTTP client safe for concurrent use by independent submissions.

    The underlying connection pool is the only shared state; no request
    holds a lock.
    """

    def __init__(self, base_url: str, submit_timeout: float = 30, poll_timeout: float = 120,
                 connect_timeout: float = 15, headers: Optional[Dict[str, str]] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize the transport.

        Args:
            base_url: Scheme and host every path is resolved against
            submit_timeout: Read timeout for the submission profile, seconds
            poll_timeout: Read timeout for the polling profile, seconds
            connect_timeout: Connect timeout shared by both profiles, seconds
            headers: Extra default headers (e.g. Authorization)
            transport: Optional httpx transport, used by tests to fake the network
        """
        self.base_url = base_url.rstrip("/")
        self._timeouts = {
            TimeoutProfile.SUBMIT: httpx.Timeout(submit_timeout, connect=connect_timeout),
            TimeoutProfile.POLL: httpx.Timeout(poll_timeout, connect=connect_timeout),
        }
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json, text/event-stream", **(headers or {})},
            timeout=self._timeouts[TimeoutProfile.POLL],
            transport=transport,
        )

    async def _send(self, method: str, path: str, profile: TimeoutProfile,
                    json_body: Any = None) -> httpx.Response:
        logger.debug(f"HTTP {method} {self.base_url}{path}")
        start = time.perf_counter()
        try:
            response = await self._client.request(
                method, path, json=json_body, timeout=self._timeouts[profile]
            )
        except httpx.HTTPError as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.debug(f"HTTP {method} {path} failed after {elapsed_ms:.0f}ms: {e!r}")
            raise TransportError(f"{method} {path} failed: {e.__class__.__name__}: {e}") from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"HTTP {method} {path} -> {response.status_code} in {elapsed_ms:.0f}ms")

        if not response.is_success:
            body = response.text[:MAX_ERROR_BODY]
            raise TransportError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return response

    async def post_json(self, path: str, payload: Any,
                        profile: TimeoutProfile = TimeoutProfile.SUBMIT) -> Any:
        """POST a JSON body and return the decoded JSON response.

        Raises:
            TransportError: Network failure or non-2xx status
            DecodeError: The response body is not JSON
        """
        response = await self._send("POST", path, profile, json_body=payload)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"{path} response", f"body is not JSON ({e})") from e

    async def get_text(self, path: str, profile: TimeoutProfile = TimeoutProfile.POLL) -> str:
        """GET a path and return the body as text.

        Raises:
            TransportError: Network failure or non-2xx status
        """
        response = await self._send("GET", path, profile)
        return response.text

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
