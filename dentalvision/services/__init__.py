"""Services package for the analysis pipeline."""

from .transport import TransportClient, TimeoutProfile
from .event_stream import scan_events
from .payload_decoder import PayloadDecoder, decode_technical_data, extract_recommendations, synthesize_recommendations
from .reconciler import DetectionReconciler, classify_detection
from .protocol_engine import ProtocolEngine
from .system_of_record import SystemOfRecordClient, build_registration_payload
from .orchestrator import AnalysisWorkflowOrchestrator, WorkflowConfig
from .clinical_insight_service import ClinicalInsightService
from .factory import AnalysisPipeline, create_orchestrator

__all__ = [
    "TransportClient", "TimeoutProfile", "scan_events",
    "PayloadDecoder", "decode_technical_data", "extract_recommendations", "synthesize_recommendations",
    "DetectionReconciler", "classify_detection", "ProtocolEngine",
    "SystemOfRecordClient", "build_registration_payload",
    "AnalysisWorkflowOrchestrator", "WorkflowConfig",
    "ClinicalInsightService", "AnalysisPipeline", "create_orchestrator"
]
