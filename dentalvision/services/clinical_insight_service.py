"""Gemini-backed clinical insight generation.

A side channel next to the analysis pipeline: given the counts of a finished
Analysis it asks Gemini for a short, structured clinical note (greeting,
diagnosis summary, prevention tips, corrective actions, risk level). Its
output never feeds back into an Analysis.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from ..core.entities import ClinicalInsight, ClinicalInsightRequest, RiskLevel
from ..core.exceptions import AIServiceError
from ..core.result import Failure, Result, Success

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """You are Dental Vision IA, an expert assistant in preventive and corrective dentistry.

Context: Dr. {doctor} is treating patient {patient}. The analysis detected {cavities} cavities and {healthy} healthy teeth. The model confidence is {confidence}%.

INSTRUCTIONS:
1. Return ONLY valid JSON (no markdown code blocks, no extra text)
2. Use the exact structure provided below
3. Determine riskLevel: "LOW" if cavityCount = 0, "HIGH" if cavityCount > 0, "MODERATE" if uncertain
4. Write in professional English
5. Keep greeting concise and professional
6. Provide 3 prevention tips and 2-3 corrective actions

Required JSON structure:
{{
  "greeting": "Hello Dr. {doctor}, this is Dental Vision IA. Based on the analysis of {patient}...",
  "diagnosisSummary": "Brief professional clinical summary...",
  "preventionTips": ["Tip 1", "Tip 2", "Tip 3"],
  "correctiveActions": ["Suggested action 1", "Suggested action 2"],
  "riskLevel": "LOW"
}}"""


def build_prompt(request: ClinicalInsightRequest) -> str:
    confidence = round(request.confidence * 100, 1)
    return PROMPT_TEMPLATE.format(
        doctor=request.doctor_name,
        patient=request.patient_name,
        cavities=request.cavity_count,
        healthy=request.healthy_count,
        confidence=confidence,
    )


def clean_json_response(text: str) -> str:
    """Strip markdown fences and surrounding prose from a JSON reply."""
    cleaned = text.strip().replace("```json", "").replace("```", "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]
    return cleaned.strip()


def parse_insight(text: str) -> ClinicalInsight:
    """Parse Gemini's reply into a ClinicalInsight.

    Raises:
        AIServiceError: If the reply is not the expected JSON object
    """
    try:
        data = json.loads(clean_json_response(text))
    except json.JSONDecodeError as e:
        raise AIServiceError(f"Clinical insight reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AIServiceError("Clinical insight reply is not a JSON object")

    return ClinicalInsight(
        greeting=str(data.get("greeting", "")),
        diagnosis_summary=str(data.get("diagnosisSummary", "")),
        prevention_tips=_string_list(data.get("preventionTips")),
        corrective_actions=_string_list(data.get("correctiveActions")),
        risk_level=RiskLevel.from_string(data.get("riskLevel")),
    )


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


class ClinicalInsightService:
    """Service for generating clinical insights with Google Gemini."""

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash",
                 temperature: float = 0.2, max_tokens: int = 2048, timeout: int = 30):
        """Initialize the service.

        Args:
            api_key: Google AI API key
            model: Gemini model name
            temperature: Response temperature (0-1)
            max_tokens: Maximum response tokens
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client: Optional[genai.Client] = None
        self._last_error: Optional[str] = None
        self._connection_status: str = "not_configured"  # not_configured, ready, error

    def initialize(self) -> bool:
        """Create the Gemini client.

        Returns:
            True if initialized successfully, False otherwise
        """
        if not self.api_key or not self.api_key.strip():
            self._last_error = "API key is empty"
            self._connection_status = "not_configured"
            logger.info("Clinical insight service not configured (no API key)")
            return False

        try:
            self._client = genai.Client(api_key=self.api_key)
        except Exception as e:
            self._last_error = str(e)
            self._connection_status = "error"
            logger.error(f"Error initializing Gemini client: {e}")
            return False

        self._last_error = None
        self._connection_status = "ready"
        logger.info(f"Clinical insight service initialized with model: {self.model}")
        return True

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _generation_config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            response_mime_type="application/json",
            thinking_config=types.ThinkingConfig(thinking_budget=0),
        )

    async def get_clinical_insight(self, request: ClinicalInsightRequest) -> Result[ClinicalInsight]:
        """Ask Gemini for a clinical note on an analysis.

        Returns:
            Success(ClinicalInsight) or Failure(AIServiceError)
        """
        if self._client is None and not self.initialize():
            return Failure(AIServiceError(f"Clinical insight service not configured: {self._last_error}"))

        prompt = build_prompt(request)
        logger.debug(f"Requesting clinical insight ({len(prompt)} prompt characters)")

        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt,
                    config=self._generation_config(),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            self._last_error = f"Gemini request timed out after {self.timeout}s"
            logger.warning(self._last_error)
            return Failure(AIServiceError(self._last_error))
        except Exception as e:
            self._last_error = str(e)
            logger.error(f"Gemini request failed: {e}")
            return Failure(AIServiceError(f"Gemini request failed: {e}"))

        text = getattr(response, "text", None)
        if not text:
            return Failure(AIServiceError("Empty response from Gemini"))

        try:
            insight = parse_insight(text)
        except AIServiceError as e:
            logger.warning(f"Could not parse clinical insight: {e}")
            return Failure(e)

        logger.info(f"Generated clinical insight with risk level: {insight.risk_level.name}")
        return Success(insight)

    def get_connection_status(self) -> Dict[str, Any]:
        return {
            "status": self._connection_status,
            "model": self.model,
            "last_error": self._last_error,
        }
