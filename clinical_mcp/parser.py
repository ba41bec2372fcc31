"""
Turn a model's free-text reply into a recommendation payload.

Degradation happens in two tiers:

1. Structural: the reply holds no JSON object, or the ``{...}`` slice does
   not parse. The parser returns a synthetic object carrying the raw text
   so a clinician can still read it (confidence 0.5 without braces, 0.7
   with braces).
2. Semantic: the object parsed but is unusable for its recommendation type
   (a prescription with no usable medication entries). ``validate_prescription``
   raises and the caller switches to the type-specific fallback instead.
   Individual entries with gaps are kept and logged, not rejected.
"""

import json
from typing import Any, Dict, List, Optional

from loguru import logger

from clinical_mcp.errors import ParseFailure, SemanticValidationFailure
from clinical_mcp.schemas import Medication, RecommendationType

DEFAULT_CONFIDENCE = 0.8
NO_JSON_CONFIDENCE = 0.5
MALFORMED_JSON_CONFIDENCE = 0.7
PERCENT_THRESHOLD = 2.0

REQUIRED_MEDICATION_FIELDS = ("name", "dosage", "frequency", "duration")


def extract_json_object(text: str) -> Dict[str, Any]:
    """Strictly parse the span between the first ``{`` and the last ``}``."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise ParseFailure("No JSON object found in AI response")
    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Invalid JSON in AI response: {e}") from e
    if not isinstance(parsed, dict):
        raise ParseFailure("AI response JSON is not an object")
    return parsed


def _structural_fallback(text: str, confidence: float, reasoning: str, priority: str) -> Dict[str, Any]:
    return {
        "analysis": text,
        "confidence": confidence,
        "clinical_reasoning": reasoning,
        "recommendations": [
            {
                "category": "clinical_review",
                "action": "Manual review of AI response required",
                "priority": priority,
            }
        ],
        "manual_review": True,
        "parse_fallback": True,
    }


def parse_ai_response(text: str) -> Dict[str, Any]:
    has_braces = "{" in text and "}" in text[text.find("{"):]
    try:
        return extract_json_object(text)
    except ParseFailure as e:
        logger.warning(f"AI response parsing fallback: {e}")

    if not has_braces:
        return _structural_fallback(
            text,
            NO_JSON_CONFIDENCE,
            "Automatic parsing failed: no structured content in AI response - manual review and clinical interpretation required",
            "high",
        )
    return _structural_fallback(
        text,
        MALFORMED_JSON_CONFIDENCE,
        "Automatic parsing failed: malformed structured response - manual review recommended",
        "medium",
    )


def normalize_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """Accept 0-1 or percentage values and clamp into [0, 1].

    Values of 2 and above are read as percentages; anything between 1 and 2
    is an overconfident fraction and clamps to 1.
    """
    if isinstance(value, bool) or value is None:
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    if confidence != confidence:  # NaN
        return default
    if PERCENT_THRESHOLD <= confidence <= 100.0:
        confidence = confidence / 100.0
    return min(max(confidence, 0.0), 1.0)


def content_confidence(content: Dict[str, Any], default: float = DEFAULT_CONFIDENCE) -> float:
    value = content.get("confidence")
    if value is None:
        value = content.get("confidence_score")
    return normalize_confidence(value, default)


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item if isinstance(item, str) else json.dumps(item) for item in value]
    return [str(value)]


def extract_reasoning(content: Dict[str, Any]) -> Optional[str]:
    reasoning = content.get("clinical_reasoning") or content.get("reasoning")
    return reasoning if isinstance(reasoning, str) else None


def extract_warnings(content: Dict[str, Any], rec_type: RecommendationType) -> List[str]:
    if rec_type == RecommendationType.PRESCRIPTION:
        return _string_list(content.get("drug_interactions"))
    if rec_type == RecommendationType.DRUG_INTERACTION:
        return _string_list(content.get("red_flags")) + _string_list(content.get("contraindications"))
    return _string_list(content.get("red_flags"))


def validate_prescription(content: Dict[str, Any]) -> Dict[str, Any]:
    medications = content.get("medications")
    if not isinstance(medications, list) or len(medications) == 0:
        raise SemanticValidationFailure("Invalid medications data in AI response")

    normalized = []
    for med in medications:
        if not isinstance(med, dict):
            logger.warning(f"Dropping non-object medication entry: {med!r}")
            continue
        missing = [f for f in REQUIRED_MEDICATION_FIELDS if not med.get(f)]
        if missing:
            logger.warning(f"Medication {med.get('name')!r} missing fields: {', '.join(missing)}")
        med = dict(med)
        med["warnings"] = _string_list(med.get("warnings"))
        med["interactions"] = _string_list(med.get("interactions"))
        normalized.append(Medication.model_validate(_stringify_fields(med)).model_dump())

    if not normalized:
        raise SemanticValidationFailure("No usable medication entries in AI response")
    return {**content, "medications": normalized}


def _stringify_fields(med: Dict[str, Any]) -> Dict[str, Any]:
    # Models occasionally emit numbers ("dosage": 500); keep the text form.
    out = {}
    for key, value in med.items():
        if key in ("warnings", "interactions") or value is None or key not in Medication.model_fields:
            out[key] = value
        elif isinstance(value, str):
            out[key] = value
        else:
            out[key] = str(value)
    return out
