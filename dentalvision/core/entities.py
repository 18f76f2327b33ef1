"""Domain entities (data-only structures) used across services."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from ..utils import fdi_notation

RawBBox = Tuple[float, float, float, float]  # (x1,y1,x2,y2) as sent upstream


# --- submission / protocol -------------------------------------------------

@dataclass(frozen=True, slots=True)
class SubmissionRequest:
    image_bytes: bytes
    file_name: str
    confidence_threshold: float = 0.25


class EventType(Enum):
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class GeneratingEvent:
    """Job still running; no payload."""
    type: EventType = EventType.GENERATING


@dataclass(frozen=True, slots=True)
class CompleteEvent:
    data: str  # raw ``data:`` line content, decoded into a PayloadEnvelope
    type: EventType = EventType.COMPLETE


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    type: EventType = EventType.ERROR


PollEvent = Union[GeneratingEvent, CompleteEvent, ErrorEvent]


@dataclass(frozen=True, slots=True)
class PayloadEnvelope:
    image_reference: Optional[str]
    technical_data: str
    report: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RawDetection:
    object_id: Optional[int]
    class_id: Optional[int]
    class_name: Optional[str]
    confidence: float
    bbox: Optional[RawBBox] = None
    fdi_number: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TechnicalData:
    detections: List[RawDetection]
    total_teeth: Optional[int] = None
    healthy_count: Optional[int] = None
    cavity_count: Optional[int] = None
    average_confidence: Optional[float] = None


@dataclass(frozen=True, slots=True)
class DecodedPayload:
    """Both decode passes of one ``complete`` event."""
    envelope: PayloadEnvelope
    technical_data: TechnicalData
    recommendations: List[str] = field(default_factory=list)


# --- domain ----------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_xyxy(cls, bbox: Optional[RawBBox]) -> "BoundingBox":
        if bbox is None:
            return cls(0.0, 0.0, 0.0, 0.0)
        x1, y1, x2, y2 = bbox
        return cls(x1, y1, x2 - x1, y2 - y1)

    def to_xyxy(self) -> List[float]:
        return [self.x, self.y, self.x + self.width, self.y + self.height]


RELIABLE_CONFIDENCE = 0.70


@dataclass(frozen=True, slots=True)
class ToothDetection:
    id: str
    analysis_id: str
    fdi_number: int
    has_caries: bool
    confidence: float
    bounding_box: BoundingBox

    @property
    def quadrant(self) -> int:
        return fdi_notation.quadrant_of(self.fdi_number)

    @property
    def position_in_quadrant(self) -> int:
        return fdi_notation.position_of(self.fdi_number)

    @property
    def tooth_name(self) -> str:
        """Short tooth type (Incisor, Canine, Premolar, Molar)."""
        return fdi_notation.tooth_type(self.fdi_number)

    @property
    def description(self) -> str:
        return fdi_notation.describe_tooth(self.fdi_number)

    @property
    def status(self) -> str:
        return "Caries Detected" if self.has_caries else "Healthy"

    @property
    def confidence_percentage(self) -> str:
        return f"{int(self.confidence * 100)}%"

    @property
    def is_reliable(self) -> bool:
        return self.confidence >= RELIABLE_CONFIDENCE


class AnalysisStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class SeverityLevel(Enum):
    EXCELLENT = ("Excellent", "#4CAF50")
    GOOD = ("Good", "#8BC34A")
    MODERATE = ("Moderate", "#FFC107")
    CONCERNING = ("Concerning", "#FF9800")
    SEVERE = ("Severe", "#F44336")

    def __init__(self, display_name: str, color: str):
        self.display_name = display_name
        self.color = color

    @classmethod
    def from_percentage(cls, caries_percentage: float) -> "SeverityLevel":
        """Classify a caries percentage (0-100)."""
        if caries_percentage == 0.0:
            return cls.EXCELLENT
        if caries_percentage < 15.0:
            return cls.GOOD
        if caries_percentage < 30.0:
            return cls.MODERATE
        if caries_percentage < 50.0:
            return cls.CONCERNING
        return cls.SEVERE


@dataclass(slots=True)
class Analysis:
    """Reconciled analysis aggregate.

    Only the workflow orchestrator flips ``synced``; everything else is
    fixed once the reconciler has built the instance.
    """
    id: str
    patient_id: str
    image_url: str
    analysis_date: datetime
    total_teeth_detected: int
    total_caries_detected: int
    confidence_score: float
    status: AnalysisStatus
    detections: List[ToothDetection] = field(default_factory=list)
    notes: Optional[str] = None
    performed_by: Optional[str] = "AI System"
    synced: bool = False
    image_filename: str = ""
    confidence_threshold: float = 0.25

    @property
    def healthy_teeth_count(self) -> int:
        return self.total_teeth_detected - self.total_caries_detected

    @property
    def caries_percentage(self) -> float:
        if self.total_teeth_detected <= 0:
            return 0.0
        return self.total_caries_detected / self.total_teeth_detected * 100

    @property
    def severity_level(self) -> SeverityLevel:
        return SeverityLevel.from_percentage(self.caries_percentage)

    @property
    def summary(self) -> str:
        text = f"Detected {self.total_teeth_detected} teeth"
        if self.total_caries_detected > 0:
            percentage = int(self.caries_percentage * 10) / 10.0
            return f"{text} with {self.total_caries_detected} caries ({percentage}%)"
        return f"{text} - All healthy!"

    @property
    def detections_by_quadrant(self) -> Dict[int, List[ToothDetection]]:
        grouped: Dict[int, List[ToothDetection]] = {}
        for detection in self.detections:
            grouped.setdefault(detection.quadrant, []).append(detection)
        return grouped

    @property
    def caries_detections(self) -> List[ToothDetection]:
        return [d for d in self.detections if d.has_caries]

    @property
    def average_confidence(self) -> float:
        if not self.detections:
            return 0.0
        return sum(d.confidence for d in self.detections) / len(self.detections)

    @property
    def is_reliable(self) -> bool:
        return self.average_confidence >= RELIABLE_CONFIDENCE


@dataclass(frozen=True, slots=True)
class CommitReceipt:
    local_analysis_id: str
    server_analysis_id: str
    registered_at: datetime


# --- clinical insight side channel -----------------------------------------

class RiskLevel(Enum):
    LOW = "Low Risk"
    MODERATE = "Moderate Risk"
    HIGH = "High Risk"

    @property
    def display_name(self) -> str:
        return self.value

    @classmethod
    def from_string(cls, value: Optional[str]) -> "RiskLevel":
        """Parse a risk level name; anything unrecognised is MODERATE."""
        try:
            return cls[str(value or "").strip().upper()]
        except KeyError:
            return cls.MODERATE


@dataclass(frozen=True, slots=True)
class ClinicalInsightRequest:
    patient_name: str
    doctor_name: str
    cavity_count: int
    healthy_count: int
    confidence: float

    @classmethod
    def from_analysis(cls, analysis: Analysis, patient_name: str, doctor_name: str) -> "ClinicalInsightRequest":
        return cls(
            patient_name=patient_name,
            doctor_name=doctor_name,
            cavity_count=analysis.total_caries_detected,
            healthy_count=analysis.healthy_teeth_count,
            confidence=analysis.confidence_score,
        )


@dataclass(frozen=True, slots=True)
class ClinicalInsight:
    greeting: str
    diagnosis_summary: str
    prevention_tips: List[str]
    corrective_actions: List[str]
    risk_level: RiskLevel
