"""Client for the system of record's analysis registration endpoint."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from ..core.entities import Analysis, CommitReceipt
from ..core.exceptions import CommitError, DecodeError, TransportError
from .transport import TimeoutProfile, TransportClient

logger = logging.getLogger(__name__)


def build_registration_payload(analysis: Analysis) -> Dict[str, Any]:
    """Serialize a reconciled Analysis into the registration request body."""
    return {
        "patient_id": analysis.patient_id,
        "image_filename": analysis.image_filename or analysis.image_url,
        "confidence_threshold": analysis.confidence_threshold,
        "detections": [
            {
                "fdi_number": d.fdi_number,
                "has_caries": d.has_caries,
                "confidence": d.confidence,
                "bbox": d.bounding_box.to_xyxy(),
            }
            for d in analysis.detections
        ],
        "summary": {
            "total_teeth_detected": analysis.total_teeth_detected,
            "cavity_count": analysis.total_caries_detected,
            "healthy_count": analysis.healthy_teeth_count,
            "average_confidence": analysis.confidence_score,
        },
        "notes": analysis.notes,
        "local_analysis_id": analysis.id,
    }


class SystemOfRecordClient:
    """Registers committed analyses with the backend."""

    def __init__(self, transport: TransportClient, register_path: str = "/api/v1/analysis/register"):
        self.transport = transport
        self.register_path = "/" + register_path.strip("/")

    async def register(self, analysis: Analysis) -> CommitReceipt:
        """POST the analysis and return the server-assigned id.

        Raises:
            CommitError: The backend rejected the registration
            TransportError: The backend could not be reached
        """
        payload = build_registration_payload(analysis)
        try:
            response = await self.transport.post_json(self.register_path, payload, TimeoutProfile.SUBMIT)
        except TransportError as e:
            if e.status_code is not None:
                raise CommitError(
                    f"Registration rejected with HTTP {e.status_code}: {e.body[:200]}",
                    status_code=e.status_code,
                ) from e
            raise
        except DecodeError as e:
            raise CommitError(f"Registration response is unreadable: {e.detail}") from e

        if not isinstance(response, dict):
            raise CommitError("Registration response is not a JSON object")
        if response.get("success") is False:
            raise CommitError(f"Registration rejected: {response.get('message') or 'no reason given'}")

        data = response.get("data") if isinstance(response.get("data"), dict) else {}
        server_id = data.get("analysis_id") or response.get("analysis_id") or data.get("id")
        if not server_id:
            raise CommitError("Registration response carries no analysis_id")

        logger.info(f"Analysis {analysis.id} registered as {server_id}")
        return CommitReceipt(
            local_analysis_id=analysis.id,
            server_analysis_id=str(server_id),
            registered_at=datetime.now(timezone.utc),
        )
