"""Detection reconciler: raw detection records -> Analysis aggregate.

The numeric class code sent by the detector is known to be unreliable, so
the categorical label decides whenever it is unambiguous. This precedence is
a pinned business rule; do not replace it with the numeric code.
"""

import logging
import math
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import numpy as np

from ..core.entities import (
    Analysis, AnalysisStatus, BoundingBox, DecodedPayload, RawDetection, TechnicalData,
    ToothDetection,
)
from .payload_decoder import synthesize_recommendations

logger = logging.getLogger(__name__)

CARIOUS = 0
HEALTHY = 1

HEALTHY_MARKERS = ("normal", "healthy")
CARIOUS_MARKERS = ("cavity", "caries")

PERFORMED_BY = "AI System"


def classify_detection(label: Optional[str], code: Optional[int]) -> int:
    """Resolve a detection's class from its label and numeric code.

    1. A present label other than "null" is matched case-insensitively:
       "normal"/"healthy" -> healthy, "cavity"/"caries" -> carious, anything
       else falls back to the code, else carious.
    2. No usable label -> the code.
    3. Neither -> carious.

    Returns:
        0 for carious, 1 for healthy
    """
    normalized = label.strip().lower() if label is not None else ""
    if normalized and normalized != "null":
        if any(marker in normalized for marker in HEALTHY_MARKERS):
            return HEALTHY
        if any(marker in normalized for marker in CARIOUS_MARKERS):
            return CARIOUS
    if code is None:
        return CARIOUS
    # Any code other than the healthy one is treated as disease
    return HEALTHY if code == HEALTHY else CARIOUS


def parse_fdi_number(value: Optional[str]) -> int:
    """FDI string -> int; missing or unparseable values become 0."""
    if value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning(f"Unparseable FDI number {value!r}, using 0")
        return 0


def new_analysis_id() -> str:
    return f"AN-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class DetectionReconciler:
    """Builds ``Analysis`` aggregates from decoded payloads."""

    def reconcile_detection(self, raw: RawDetection, analysis_id: str, ordinal: int) -> ToothDetection:
        has_caries = classify_detection(raw.class_name, raw.class_id) == CARIOUS
        if raw.class_name and raw.class_id is not None:
            code_says_caries = raw.class_id != HEALTHY
            if code_says_caries != has_caries:
                logger.debug(
                    f"Label '{raw.class_name}' overrides class_id={raw.class_id} "
                    f"for detection {ordinal}"
                )
        return ToothDetection(
            id=f"{analysis_id}-DET-{ordinal}",
            analysis_id=analysis_id,
            fdi_number=parse_fdi_number(raw.fdi_number),
            has_caries=has_caries,
            confidence=raw.confidence,
            bounding_box=BoundingBox.from_xyxy(raw.bbox),
        )

    def reconcile(self, payload: DecodedPayload, patient_id: str, image_filename: str = "",
                  confidence_threshold: float = 0.25,
                  analysis_id: Optional[str] = None) -> Analysis:
        """Convert a decoded payload into an unsynced, completed Analysis.

        Args:
            payload: Output of ``PayloadDecoder.decode``
            patient_id: Patient the image belongs to
            image_filename: Submitted file name, used when no processed image is returned
            confidence_threshold: Threshold the image was submitted with
            analysis_id: Local preview id; generated when omitted
        """
        analysis_id = analysis_id or new_analysis_id()
        technical = payload.technical_data

        detections = [
            self.reconcile_detection(raw, analysis_id, i)
            for i, raw in enumerate(technical.detections)
        ]
        total_teeth, total_caries = self._totals(technical, detections)
        confidence = self._confidence(technical, detections)

        recommendations = payload.recommendations or synthesize_recommendations(total_caries)

        analysis = Analysis(
            id=analysis_id,
            patient_id=patient_id,
            image_url=payload.envelope.image_reference or image_filename,
            analysis_date=datetime.now(timezone.utc),
            total_teeth_detected=total_teeth,
            total_caries_detected=total_caries,
            confidence_score=confidence,
            status=AnalysisStatus.COMPLETED,
            detections=detections,
            notes="\n".join(recommendations),
            performed_by=PERFORMED_BY,
            synced=False,
            image_filename=image_filename,
            confidence_threshold=confidence_threshold,
        )
        logger.info(f"Reconciled analysis {analysis_id}: {analysis.summary}")
        return analysis

    def _totals(self, technical: TechnicalData, detections: List[ToothDetection]) -> Tuple[int, int]:
        counted_teeth = len(detections)
        counted_caries = sum(1 for d in detections if d.has_caries)

        teeth, caries, healthy = technical.total_teeth, technical.cavity_count, technical.healthy_count
        if teeth is None and caries is None:
            return counted_teeth, counted_caries
        if teeth is None:
            teeth = caries + healthy if healthy is not None else counted_teeth
        if caries is None:
            caries = teeth - healthy if healthy is not None else counted_caries
        if teeth < 0 or caries < 0 or caries > teeth:
            logger.warning(
                f"Inconsistent upstream summary (teeth={teeth}, caries={caries}); "
                f"recomputing from {counted_teeth} detections"
            )
            return counted_teeth, counted_caries
        return teeth, caries

    def _confidence(self, technical: TechnicalData, detections: List[ToothDetection]) -> float:
        summary = technical.average_confidence
        if summary is not None and not math.isnan(summary) and summary >= 0:
            if summary > 1.0 and summary <= 100.0:
                summary = summary / 100.0
            if summary <= 1.0:
                return float(summary)
            logger.warning(f"Ignoring out-of-range summary confidence {technical.average_confidence}")

        if not detections:
            return 0.0
        mean = float(np.mean([d.confidence for d in detections]))
        return float(np.clip(mean, 0.0, 1.0))
