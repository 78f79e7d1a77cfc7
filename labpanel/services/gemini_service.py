"""
Gemini service for structured biomarker extraction from OCR text
"""
import json
import logging
import re
from typing import Any, Dict, Optional, Sequence

from google import genai
from google.genai.types import GenerateContentConfig
from pydantic import ValidationError

from labpanel.exceptions import PrimaryExtractionError
from labpanel.models.schemas import ExtractionMethod, ExtractionResult, PatientInfo
from labpanel.services.normalizer import build_biomarker

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ('gemini-2.5-flash', 'gemini-2.0-flash', 'gemini-1.5-pro')

EXTRACTION_PROMPT = """You are a medical lab report parser. Extract patient info and ALL biomarker test results.
Do not skip any tests. Return ONLY valid JSON with NO markdown and NO explanations:
{
  "patient": {
    "firstName": "first name only",
    "lastName": "last name only",
    "dateOfBirth": "YYYY-MM-DD format",
    "gender": "male or female or other"
  },
  "biomarkers": [
    {
      "name": "test name",
      "value": numeric_value,
      "unit": "unit",
      "referenceMin": number or null,
      "referenceMax": number or null,
      "category": "CBC or Lipid or Thyroid or Vitamin or Biochemistry",
      "status": "normal or high or low or critical"
    }
  ]
}"""

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code fence, or the text unchanged"""
    match = _FENCE_RE.search(text)
    return match.group(1) if match else text.strip()


def extract_json_object(text: str) -> Dict[str, Any]:
    """Decode the outermost JSON object, ignoring any prose around it"""
    start = text.find("{")
    if start == -1:
        raise ValueError("Gemini response doesn't contain a JSON object")

    payload, _ = json.JSONDecoder().raw_decode(text, start)
    if not isinstance(payload, dict):
        raise ValueError("Gemini response JSON is not an object")
    return payload


def parse_extraction_payload(payload: Dict[str, Any]) -> ExtractionResult:
    """Validate a decoded Gemini payload and build the extraction result.

    Entries without a name or a numeric value are dropped; the payload is
    rejected when no biomarker survives.
    """
    raw_biomarkers = payload.get("biomarkers")
    if not isinstance(raw_biomarkers, list) or not raw_biomarkers:
        raise ValueError("Gemini returned 0 biomarkers")

    biomarkers = []
    for raw in raw_biomarkers:
        biomarker = build_biomarker(raw) if isinstance(raw, dict) else None
        if biomarker is None:
            logger.warning(f"Skipping invalid biomarker entry: {raw!r}")
            continue
        biomarkers.append(biomarker)

    if not biomarkers:
        raise ValueError("Gemini returned no valid biomarkers")

    raw_patient = payload.get("patient")
    try:
        patient = PatientInfo.model_validate(raw_patient) if isinstance(raw_patient, dict) else PatientInfo()
    except ValidationError as e:
        logger.warning(f"Ignoring malformed patient info: {str(e)}")
        patient = PatientInfo()

    return ExtractionResult(patient=patient, biomarkers=biomarkers, method=ExtractionMethod.AI)


class GeminiService:
    def __init__(self, api_key: Optional[str] = None, models: Sequence[str] = DEFAULT_MODELS,
                 max_prompt_chars: int = 15000, client=None):
        self.client = client or genai.Client(api_key=api_key)
        self.models = list(models)
        self.max_prompt_chars = max_prompt_chars

    def build_prompt(self, text: str) -> str:
        return f"{EXTRACTION_PROMPT}\n\nLab Report Text:\n{text[:self.max_prompt_chars]}"

    def extract(self, text: str) -> ExtractionResult:
        """Extract biomarkers with the first model that returns a usable answer"""
        prompt = self.build_prompt(text)
        last_error = None

        for model in self.models:
            try:
                logger.info(f"Trying Gemini model: {model}")
                result = self._extract_with_model(model, prompt)
                logger.info(f"Success with {model}: found {len(result.biomarkers)} biomarkers")
                return result
            except Exception as e:
                logger.warning(f"{model} failed: {str(e)}")
                last_error = e

        raise PrimaryExtractionError("Gemini could not extract biomarkers from the text", cause=last_error)

    def _extract_with_model(self, model: str, prompt: str) -> ExtractionResult:
        response = self.client.models.generate_content(
            model=model,
            contents=[prompt],
            config=GenerateContentConfig(
                temperature=0.1,
                max_output_tokens=8192,
            )
        )

        ai_text = response.text
        if not ai_text:
            raise ValueError("Gemini returned empty response")

        payload = extract_json_object(strip_code_fences(ai_text))
        return parse_extraction_payload(payload)
