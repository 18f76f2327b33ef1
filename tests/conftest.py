"""Pytest configuration and shared fixtures for the analysis pipeline.

HTTP traffic is faked with ``httpx.MockTransport``; ``FakeAnalysisService``
and ``FakeBackend`` script the analysis service and the system of record.
"""
import io
import json
import sys
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest
from PIL import Image

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dentalvision.config.settings import Config
from dentalvision.core.logging_config import logging_manager
from dentalvision.services.payload_decoder import PayloadDecoder
from dentalvision.services.protocol_engine import ProtocolEngine
from dentalvision.services.transport import TransportClient


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logging.getLogger('PIL').setLevel(logging.WARNING)
logging.getLogger('httpx').setLevel(logging.WARNING)


SERVICE_URL = "https://analysis.test"
BACKEND_URL = "https://backend.test"
SUBMIT_PATH = "/gradio_api/call/predict_dental_image"

GENERATING_BODY = "event: generating\ndata: null\n\n"

SCENARIO_TECHNICAL_DATA = {
    "detections": [
        {"class_name": "cavity", "confidence": 0.9, "fdi_number": "16"},
        {"class_name": "Normal tooth", "confidence": 0.8, "fdi_number": "26"},
        {"class_id": 0, "confidence": 0.4, "fdi_number": "36"},
    ]
}


def complete_body(technical: Any, image_ref: Any = "tmp/gradio/annotated.png",
                  report: Optional[str] = None) -> str:
    """Build a ``complete`` poll body carrying double-encoded technical data."""
    technical_str = technical if isinstance(technical, str) else json.dumps(technical)
    data = [image_ref, technical_str]
    if report is not None:
        data.append(report)
    return f"event: complete\ndata: {json.dumps(data)}\n\n"


def error_body(message: Optional[str] = "Model crashed") -> str:
    return f"event: error\ndata: {json.dumps(message)}\n\n"


PollItem = Union[str, httpx.Response, Exception]


class FakeAnalysisService:
    """Scripted analysis service.

    ``poll_bodies`` is consumed one item per poll attempt; the last item is
    repeated once the script runs out. An item may be a body string, a full
    ``httpx.Response`` or an exception to raise.
    """

    def __init__(self, poll_bodies: List[PollItem], token: Optional[str] = "evt-123",
                 submit_response: Optional[httpx.Response] = None):
        self.poll_bodies = list(poll_bodies)
        self.token = token
        self.submit_response = submit_response
        self.submissions: List[Dict[str, Any]] = []
        self.poll_paths: List[str] = []

    @property
    def poll_count(self) -> int:
        return len(self.poll_paths)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            self.submissions.append(json.loads(request.content))
            if self.submit_response is not None:
                return self.submit_response
            return httpx.Response(200, json={"event_id": self.token} if self.token else {})

        self.poll_paths.append(request.url.path)
        item = self.poll_bodies[min(len(self.poll_paths), len(self.poll_bodies)) - 1]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, text=item)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeBackend:
    """Scripted system of record; responses are served in order."""

    def __init__(self, responses: List[Union[httpx.Response, Exception]]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        self.headers.append(request.headers)
        item = self.responses[min(len(self.requests), len(self.responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def png_bytes() -> bytes:
    """A small valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color=(200, 180, 170)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color=(10, 20, 30)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def scenario_technical_data() -> Dict[str, Any]:
    return json.loads(json.dumps(SCENARIO_TECHNICAL_DATA))


@pytest.fixture
def decoder() -> PayloadDecoder:
    return PayloadDecoder(SERVICE_URL)


@pytest.fixture
def make_engine(decoder):
    """Factory building a ProtocolEngine wired to a FakeAnalysisService."""
    clients: List[TransportClient] = []

    def _make(service: FakeAnalysisService, max_attempts: int = 60) -> ProtocolEngine:
        client = TransportClient(SERVICE_URL, transport=service.transport())
        clients.append(client)
        return ProtocolEngine(client, decoder, submit_path=SUBMIT_PATH,
                              max_attempts=max_attempts, poll_interval=0)

    return _make


@pytest.fixture
def test_config() -> Config:
    """A real configuration pointed at the fake services with no poll delay."""
    return Config(
        analysis_service_url=SERVICE_URL,
        backend_url=BACKEND_URL,
        poll_interval_seconds=0,
        poll_max_attempts=10,
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove pipeline-related variables from the environment."""
    for key in ("DENTALVISION_ANALYSIS_URL", "DENTALVISION_BACKEND_URL", "DENTALVISION_BACKEND_TOKEN",
                "DENTALVISION_POLL_MAX_ATTEMPTS", "DENTALVISION_POLL_INTERVAL",
                "DENTALVISION_SUBMIT_TIMEOUT", "DENTALVISION_POLL_TIMEOUT",
                "DENTALVISION_CONFIDENCE_THRESHOLD", "GEMINI_API_KEY", "GEMINI_MODEL", "DEBUG_LOGGING"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def reset_logging():
    """Remove handlers installed by pipelines built during a test."""
    yield
    logging_manager.shutdown()
    logging.getLogger('dentalvision').setLevel(logging.NOTSET)
