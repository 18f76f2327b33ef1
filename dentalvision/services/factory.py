"""Wiring of the analysis pipeline from a ``Config``."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..config.settings import Config
from ..core.logging_config import configure_logging
from .clinical_insight_service import ClinicalInsightService
from .orchestrator import AnalysisWorkflowOrchestrator, WorkflowConfig
from .payload_decoder import PayloadDecoder
from .protocol_engine import ProtocolEngine
from .reconciler import DetectionReconciler
from .system_of_record import SystemOfRecordClient
from .transport import TransportClient

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """Owns the HTTP clients behind one orchestrator.

    Use as ``async with AnalysisPipeline(config) as pipeline:`` so both
    connection pools are closed on exit.
    """

    def __init__(self, config: Config,
                 analysis_transport: Optional[httpx.AsyncBaseTransport] = None,
                 backend_transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        configure_logging(
            log_level="DEBUG" if config.debug else config.log_level,
            log_dir=config.log_dir,
            structured_logging=config.structured_logging,
            enable_file_logging=config.enable_file_logging,
        )

        self.analysis_client = TransportClient(
            config.analysis_service_url,
            submit_timeout=config.submit_timeout,
            poll_timeout=config.poll_timeout,
            connect_timeout=config.connect_timeout,
            transport=analysis_transport,
        )
        headers = {"Authorization": f"Bearer {config.backend_token}"} if config.backend_token else None
        self.backend_client = TransportClient(
            config.backend_url,
            submit_timeout=config.backend_timeout,
            poll_timeout=max(config.backend_timeout, config.poll_timeout),
            connect_timeout=config.connect_timeout,
            headers=headers,
            transport=backend_transport,
        )

        engine = ProtocolEngine(
            self.analysis_client,
            PayloadDecoder(config.analysis_service_url, config.analysis_file_prefix),
            submit_path=config.analysis_submit_path,
            token_field=config.analysis_token_field,
            max_attempts=config.poll_max_attempts,
            poll_interval=config.poll_interval_seconds,
        )
        self.orchestrator = AnalysisWorkflowOrchestrator(
            engine,
            DetectionReconciler(),
            SystemOfRecordClient(self.backend_client, config.register_path),
            WorkflowConfig(confidence_threshold=config.confidence_threshold),
        )
        self.insights = ClinicalInsightService(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            temperature=config.gemini_temperature,
            max_tokens=config.gemini_max_tokens,
            timeout=config.gemini_timeout,
        )
        logger.info(
            f"Analysis pipeline ready: service={config.analysis_service_url}, "
            f"budget={config.poll_max_attempts}x{config.poll_interval_seconds}s"
        )

    async def aclose(self) -> None:
        await self.orchestrator.aclose()

    async def __aenter__(self) -> "AnalysisPipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def create_orchestrator(config: Config) -> AnalysisWorkflowOrchestrator:
    """Build an orchestrator that owns its HTTP clients.

    Close it with ``await orchestrator.aclose()`` or use it as
    ``async with create_orchestrator(config) as orchestrator:``.
    """
    return AnalysisPipeline(config).orchestrator
