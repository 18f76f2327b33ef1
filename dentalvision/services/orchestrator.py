"""Two-phase analysis workflow: preview, then explicit commit.

``preview`` runs the remote protocol, decodes and reconciles the result and
hands back an unsynced Analysis without touching the system of record.
``commit`` registers an already-reconciled Analysis and only then flips its
``synced`` flag. Commit never re-runs inference, so a failed commit can be
retried with the same Analysis.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.entities import Analysis, CommitReceipt, SubmissionRequest
from ..core.exceptions import AnalysisError, ValidationError
from ..core.logging_config import CorrelationContext
from ..core.result import Failure, Result, Success
from ..utils.validation import InputValidator
from .protocol_engine import ProtocolEngine
from .reconciler import DetectionReconciler, new_analysis_id
from .system_of_record import SystemOfRecordClient

logger = logging.getLogger(__name__)


@dataclass
class WorkflowConfig:
    """Defaults applied to previews that do not pass their own values."""
    confidence_threshold: float = 0.25


class AnalysisWorkflowOrchestrator:
    """Coordinates protocol engine, reconciler and system-of-record client.

    Holds no per-analysis state, so independent previews may run as
    concurrent tasks against the same instance.
    """

    def __init__(self, engine: ProtocolEngine, reconciler: DetectionReconciler,
                 system_of_record: SystemOfRecordClient,
                 config: Optional[WorkflowConfig] = None):
        self.engine = engine
        self.reconciler = reconciler
        self.system_of_record = system_of_record
        self.config = config or WorkflowConfig()

    async def preview(self, patient_id: str, image: bytes, name: str,
                      confidence_threshold: Optional[float] = None) -> Result[Analysis]:
        """Analyze an image without persisting anything.

        Args:
            patient_id: Patient the image belongs to
            image: Raw image bytes
            name: Original file name
            confidence_threshold: Detection threshold, defaults to the workflow config

        Returns:
            Success(Analysis) with ``synced=False``, or Failure whose ``kind``
            distinguishes validation, transport, upstream, timeout and decode errors
        """
        threshold = self.config.confidence_threshold if confidence_threshold is None else confidence_threshold
        analysis_id = new_analysis_id()

        with CorrelationContext(analysis_id):
            try:
                patient_id = InputValidator.validate_patient_id(patient_id)
                file_name = InputValidator.validate_filename(name)
                threshold = InputValidator.validate_threshold(threshold)

                # Step 1: submit and poll
                request = SubmissionRequest(image_bytes=image, file_name=file_name,
                                            confidence_threshold=threshold)
                payload = await self.engine.run(request)

                # Step 2: reconcile
                analysis = self.reconciler.reconcile(
                    payload,
                    patient_id=patient_id,
                    image_filename=file_name,
                    confidence_threshold=threshold,
                    analysis_id=analysis_id,
                )
            except (AnalysisError, ValidationError) as e:
                logger.warning(f"Preview failed ({e.kind.value}): {e}")
                return Failure(e)

        return Success(analysis)

    async def commit(self, analysis: Analysis) -> Result[CommitReceipt]:
        """Register a previewed Analysis with the system of record.

        On success ``analysis.synced`` becomes True. On failure the Analysis
        is left untouched (``synced`` stays False) so the caller can retry.
        """
        with CorrelationContext(analysis.id):
            try:
                receipt = await self.system_of_record.register(analysis)
            except AnalysisError as e:
                logger.warning(f"Commit of {analysis.id} failed ({e.kind.value}): {e}")
                return Failure(e)

        analysis.synced = True
        return Success(receipt)

    async def aclose(self) -> None:
        """Close the HTTP clients of the engine and the system-of-record client."""
        await self.engine.transport.aclose()
        await self.system_of_record.transport.aclose()

    async def __aenter__(self) -> "AnalysisWorkflowOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
