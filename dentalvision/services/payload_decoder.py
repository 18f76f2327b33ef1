"""Decoder for the ``complete`` event payload.

The analysis service double-encodes its result: the event's ``data`` line is
a JSON array whose second element is itself a JSON document serialized as a
string. Decoding therefore happens in two explicit passes:

1. ``decode_envelope`` turns the event data into a ``PayloadEnvelope``
   (image reference, technical-data string, optional markdown report).
2. ``decode_technical_data`` turns the technical-data string into a
   ``TechnicalData`` document of ``RawDetection`` records.

Any structural violation raises ``DecodeError`` naming the offending element.
Nothing is ever defaulted to an empty detection list, since an empty result
would read as "all teeth healthy".
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from ..core.entities import DecodedPayload, PayloadEnvelope, RawDetection, TechnicalData
from ..core.exceptions import DecodeError

logger = logging.getLogger(__name__)

PASS_THROUGH_SCHEMES = ("http://", "https://", "data:")

SUMMARY_ALIASES = {
    "total_teeth": ("total_teeth_detected", "total_detections", "teeth_count"),
    "cavity_count": ("cavity_count", "caries_detected", "caries_count"),
    "healthy_count": ("healthy_count", "healthy_teeth"),
    "average_confidence": ("average_confidence", "mean_confidence", "confidence"),
}

# "- item", "* item", "• item" or "1. item" at the start of a line
BULLET_PATTERN = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$", re.MULTILINE)

BASE_RECOMMENDATIONS = [
    "Analysis completed successfully",
    "Review detections marked in the image",
    "Consult with a dental professional",
]
CARIES_RECOMMENDATION = "Urgent treatment recommended for detected cavities"
HEALTHY_RECOMMENDATION = "Maintain regular brushing, flossing and dental check-ups"


class PayloadDecoder:
    """Two-pass decoder bound to one analysis service's file-serving base."""

    def __init__(self, service_base_url: str, file_prefix: str = "/file="):
        self.file_base = f"{service_base_url.rstrip('/')}{file_prefix}"

    def decode(self, event_data: str) -> DecodedPayload:
        """Run both passes over the data of a ``complete`` event.

        Raises:
            DecodeError: If the envelope or technical data is malformed
        """
        envelope = self.decode_envelope(event_data)
        technical = decode_technical_data(envelope.technical_data)
        recommendations = extract_recommendations(envelope.report)
        logger.debug(
            f"Decoded payload: {len(technical.detections)} detections, "
            f"{len(recommendations)} report recommendations"
        )
        return DecodedPayload(envelope=envelope, technical_data=technical,
                              recommendations=recommendations)

    def decode_envelope(self, event_data: str) -> PayloadEnvelope:
        """First pass: event data -> PayloadEnvelope."""
        try:
            parsed = json.loads(event_data)
        except (json.JSONDecodeError, TypeError) as e:
            raise DecodeError("data", f"event data is not JSON ({e})") from e

        # Both {"data": [...]} and a bare [...] are emitted upstream
        if isinstance(parsed, dict):
            if "data" not in parsed:
                raise DecodeError("data", "payload object has no 'data' field")
            items = parsed["data"]
        else:
            items = parsed

        if not isinstance(items, list):
            raise DecodeError("data", f"expected an array, got {type(items).__name__}")
        if len(items) < 2:
            raise DecodeError("data", f"expected at least 2 elements, got {len(items)}")

        technical = items[1]
        if technical is None:
            raise DecodeError("data[1]", "technical data is null")
        if isinstance(technical, dict):
            technical = json.dumps(technical)
        elif not isinstance(technical, str):
            raise DecodeError("data[1]", f"expected a JSON string, got {type(technical).__name__}")

        report = items[2] if len(items) > 2 and isinstance(items[2], str) else None

        return PayloadEnvelope(
            image_reference=self.resolve_image_reference(items[0]),
            technical_data=technical,
            report=report,
        )

    def resolve_image_reference(self, reference: Any) -> Optional[str]:
        """Normalize element 0 into an absolute URL or data URI."""
        if reference is None:
            return None
        if isinstance(reference, dict):
            url = reference.get("url")
            if isinstance(url, str) and url:
                return self.resolve_image_reference(url)
            path = reference.get("path")
            if isinstance(path, str) and path:
                return self.resolve_image_reference(path)
            return None
        if isinstance(reference, str):
            if not reference:
                return None
            if reference.startswith(PASS_THROUGH_SCHEMES):
                return reference
            return f"{self.file_base}{reference}"
        if isinstance(reference, list):
            # Gallery outputs wrap the image in a one-element list
            return self.resolve_image_reference(reference[0]) if reference else None
        logger.warning(f"Ignoring image reference of unsupported type {type(reference).__name__}")
        return None


def decode_technical_data(document: str) -> TechnicalData:
    """Second pass: technical-data string -> TechnicalData."""
    try:
        parsed = json.loads(document)
    except json.JSONDecodeError as e:
        raise DecodeError("data[1]", f"technical data is not valid JSON ({e})") from e

    if not isinstance(parsed, dict):
        raise DecodeError("data[1]", f"technical data must be an object, got {type(parsed).__name__}")

    if "detections" not in parsed:
        raise DecodeError("detections", "field is missing")
    raw_detections = parsed["detections"]
    if not isinstance(raw_detections, list):
        raise DecodeError("detections", f"expected a list, got {type(raw_detections).__name__}")

    detections = [_decode_detection(item, i) for i, item in enumerate(raw_detections)]

    summary = parsed.get("summary")
    if not isinstance(summary, dict):
        summary = parsed

    return TechnicalData(
        detections=detections,
        total_teeth=_summary_value(summary, "total_teeth", _coerce_int),
        healthy_count=_summary_value(summary, "healthy_count", _coerce_int),
        cavity_count=_summary_value(summary, "cavity_count", _coerce_int),
        average_confidence=_summary_value(summary, "average_confidence", _coerce_float),
    )


def _decode_detection(item: Any, index: int) -> RawDetection:
    where = f"detections[{index}]"
    if not isinstance(item, dict):
        raise DecodeError(where, f"expected an object, got {type(item).__name__}")

    confidence = _field(item, "confidence", where, _coerce_float)
    if confidence is None:
        raise DecodeError(f"{where}.confidence", "field is missing")
    if math.isnan(confidence):
        raise DecodeError(f"{where}.confidence", "value is NaN")

    class_name = item.get("class_name")
    if class_name is not None and not isinstance(class_name, str):
        class_name = str(class_name)

    fdi = item.get("fdi_number")
    if fdi is not None:
        fdi = str(fdi).strip() or None

    return RawDetection(
        object_id=_field(item, "object_id", where, _coerce_int),
        class_id=_field(item, "class_id", where, _coerce_int),
        class_name=class_name,
        confidence=min(max(confidence, 0.0), 1.0),
        bbox=_decode_bbox(item.get("bbox"), f"{where}.bbox"),
        fdi_number=fdi,
    )


def _decode_bbox(value: Any, where: str):
    if value is None:
        return None
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        raise DecodeError(where, "expected 4 coordinates [x1, y1, x2, y2]")
    try:
        return tuple(float(v) for v in value)
    except (TypeError, ValueError) as e:
        raise DecodeError(where, f"non-numeric coordinate ({e})") from e


def _field(item: Dict[str, Any], key: str, where: str, coerce):
    value = item.get(key)
    if value is None:
        return None
    try:
        return coerce(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"{where}.{key}", f"cannot read {value!r} ({e})") from e


def _summary_value(summary: Dict[str, Any], name: str, coerce):
    for key in SUMMARY_ALIASES[name]:
        if summary.get(key) is not None:
            return _field(summary, key, "summary", coerce)
    return None


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, str):
        value = value.strip()
        return int(float(value)) if "." in value else int(value)
    if isinstance(value, float):
        return int(value)
    return int(value)


def _coerce_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    return float(value.strip() if isinstance(value, str) else value)


def extract_recommendations(report: Optional[str]) -> List[str]:
    """Pull bullet-style lines out of the markdown report fragment."""
    if not report:
        return []
    recommendations = []
    for match in BULLET_PATTERN.finditer(report):
        text = match.group(1).strip().strip("*_ ").strip()
        if text:
            recommendations.append(text)
    return recommendations


def synthesize_recommendations(cavity_count: int) -> List[str]:
    """Fallback recommendations when the report yields none."""
    if cavity_count > 0:
        return BASE_RECOMMENDATIONS + [CARIES_RECOMMENDATION]
    return BASE_RECOMMENDATIONS + [HEALTHY_RECOMMENDATION]
