# openai_service.py
# OpenAI API integration for reading photographed ward worksheets

import base64
import json
import logging
import time
from typing import Any, Dict, List

from openai import OpenAI

from core.config import DISEASE_LIST
from services.worksheet import COUNT_FIELDS, METADATA_COUNT_FIELDS, METADATA_TEXT_FIELDS, coerce_count

logger = logging.getLogger(__name__)

# Keys a model may answer with when it follows the paper form's headings
_METADATA_ALIASES = {
    "wardName": "ward_name",
    "compiledBy": "compiled_by",
    "checkedBy": "checked_by",
    "totalInpatientDays": "total_inpatient_days",
    "referralsFromHC": "referrals_from_hc",
    "referralsToHospital": "referrals_to_hospital",
    "wardRounds": "ward_rounds",
}


class ExtractionError(Exception):
    """The worksheet image could not be turned into data"""


class WorksheetExtractor:
    """Extract morbidity worksheet data from a photo using an OpenAI vision model"""

    def __init__(self, api_key: str, model: str = "gpt-4o"):
        """Initialize the OpenAI client"""
        self.client = OpenAI(api_key=api_key)
        self.model = model
        self.temperature = 0  # Transcription, not generation

    def extract_worksheet_data(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> Dict[str, Any]:
        """
        Read a photographed worksheet

        Returns:
            Dict with optional keys "metadata" (dict of worksheet fields) and
            "entries" (list of dicts with name and the four counts)

        Raises:
            ExtractionError: on API failure or an unreadable response
        """
        if not image_bytes:
            raise ExtractionError("Empty image")

        encoded = base64.b64encode(image_bytes).decode("ascii")
        response_text = self._call_openai_with_retry(self._build_prompt(), encoded, mime_type)

        try:
            payload = self._parse_json(response_text)
        except ValueError as e:
            logger.error("Unreadable extraction response: %s", response_text[:500])
            raise ExtractionError(f"Could not parse extraction response: {e}") from e

        result = self._normalize(payload)
        logger.info("Extracted %d entries and %d metadata fields",
                    len(result.get("entries", [])), len(result.get("metadata", {})))
        return result

    def _build_prompt(self) -> str:
        """Build the transcription prompt"""
        disease_lines = "\n".join(f"- {name}" for name in DISEASE_LIST)

        return f"""Analyze this hospital ward worksheet image. Extract all data into a JSON object.

The worksheet contains rows of diseases with columns for Admissions (<5, >5, Total) and Deaths (<5, >5, Total).
Also extract the summary fields: ward name, month, year, compiled by, checked by, total in-patient days,
referrals from health centres, referrals to hospital, ward rounds and abscondees.

Return the numeric values accurately. If a cell is empty or zero, record it as 0.
Do not invent rows that are not on the sheet. Use the disease names as written on the sheet;
the ward normally reports on these conditions:
{disease_lines}

Return ONLY a JSON object with this shape:
{{
  "metadata": {{
    "ward_name": "string",
    "month": "full month name",
    "year": "YYYY",
    "compiled_by": "string",
    "checked_by": "string",
    "total_inpatient_days": 0,
    "referrals_from_hc": 0,
    "referrals_to_hospital": 0,
    "ward_rounds": 0,
    "abscondees": 0
  }},
  "entries": [
    {{"name": "string", "admissions_u5": 0, "admissions_o5": 0, "deaths_u5": 0, "deaths_o5": 0}}
  ]
}}"""

    def _call_openai_with_retry(self, prompt: str, encoded_image: str, mime_type: str, max_retries: int = 2) -> str:
        """Call OpenAI API with automatic retry on failure"""

        for attempt in range(max_retries + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {
                            "role": "system",
                            "content": "You transcribe handwritten hospital ward registers into structured data. Answer with JSON only."
                        },
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": prompt},
                                {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded_image}"}},
                            ]
                        }
                    ],
                    response_format={"type": "json_object"},
                    temperature=self.temperature,
                    max_tokens=4000
                )

                return response.choices[0].message.content or "{}"

            except Exception as e:
                if attempt < max_retries:
                    # Exponential backoff
                    wait_time = (2 ** attempt) * 2  # 2s, 4s
                    logger.warning("Extraction call failed (attempt %d/%d), retrying in %ds: %s",
                                   attempt + 1, max_retries + 1, wait_time, e)
                    time.sleep(wait_time)
                else:
                    raise ExtractionError(f"OpenAI API call failed after {max_retries + 1} attempts: {e}") from e

    def _parse_json(self, response_text: str) -> Dict[str, Any]:
        """Parse the model answer, tolerating Markdown code fences"""
        if "```json" in response_text:
            json_start = response_text.find("```json") + 7
            json_end = response_text.find("```", json_start)
            json_text = response_text[json_start:json_end].strip()
        elif "```" in response_text:
            json_start = response_text.find("```") + 3
            json_end = response_text.find("```", json_start)
            json_text = response_text[json_start:json_end].strip()
        else:
            json_text = response_text.strip()

        payload = json.loads(json_text)
        if not isinstance(payload, dict):
            raise ValueError("Expected a JSON object")
        return payload

    def _normalize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Keep known metadata keys and named entries; coerce counts"""
        result: Dict[str, Any] = {}

        raw_metadata = payload.get("metadata")
        if isinstance(raw_metadata, dict):
            metadata = {}
            for key, value in raw_metadata.items():
                key = _METADATA_ALIASES.get(key, key)
                if value is None:
                    continue
                if key in METADATA_COUNT_FIELDS:
                    metadata[key] = coerce_count(value)
                elif key in METADATA_TEXT_FIELDS:
                    metadata[key] = str(value).strip()
            result["metadata"] = metadata

        raw_entries = payload.get("entries")
        if isinstance(raw_entries, list):
            entries: List[Dict[str, Any]] = []
            for item in raw_entries:
                if not isinstance(item, dict) or not str(item.get("name") or "").strip():
                    continue
                entry = {"name": str(item["name"]).strip()}
                for count_field in COUNT_FIELDS:
                    if count_field in item:
                        entry[count_field] = coerce_count(item[count_field])
                entries.append(entry)
            result["entries"] = entries

        return result
