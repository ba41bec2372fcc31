import pytest

from clinical_mcp.errors import ParseFailure, SemanticValidationFailure
from clinical_mcp.fallbacks import (
    diagnosis_validation_fallback,
    drug_interaction_fallback,
    prescription_fallback,
    symptom_analysis_fallback,
)
from clinical_mcp.parser import (
    MALFORMED_JSON_CONFIDENCE,
    NO_JSON_CONFIDENCE,
    content_confidence,
    extract_json_object,
    extract_warnings,
    normalize_confidence,
    parse_ai_response,
    validate_prescription,
)
from clinical_mcp.schemas import RecommendationType


def test_extracts_object_embedded_in_prose():
    text = 'Sure! ```json\n{"analysis": "viral", "confidence": 0.6}\n``` Let me know.'
    assert parse_ai_response(text) == {"analysis": "viral", "confidence": 0.6}


def test_uses_first_open_and_last_close_brace():
    text = 'prefix {"a": {"b": 1}} suffix'
    assert extract_json_object(text) == {"a": {"b": 1}}


def test_no_braces_gives_text_fallback():
    result = parse_ai_response("Consider influenza.")
    assert result["analysis"] == "Consider influenza."
    assert result["confidence"] == NO_JSON_CONFIDENCE
    assert result["manual_review"] is True
    assert "parsing failed" in result["clinical_reasoning"]


def test_malformed_json_gives_text_fallback():
    text = '{"analysis": "viral", confidence: high}'
    result = parse_ai_response(text)
    assert result["analysis"] == text
    assert result["confidence"] == MALFORMED_JSON_CONFIDENCE
    assert result["parse_fallback"] is True


def test_no_braces_is_less_confident_than_braces_present():
    no_braces = parse_ai_response("free text only")
    broken = parse_ai_response("{not json}")
    assert no_braces["confidence"] < broken["confidence"]


def test_extract_json_object_raises_without_object():
    with pytest.raises(ParseFailure):
        extract_json_object("} backwards {")


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.42, 0.42), (85, 0.85), (1, 1.0), (-3, 0.0), (250, 1.0), ("0.3", 0.3), ("high", 0.8), (None, 0.8), (True, 0.8),
        (1.2, 1.0), (1.5, 1.0), (1.99, 1.0), (2, 0.02), (100, 1.0),
    ],
)
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value) == pytest.approx(expected)


def test_content_confidence_reads_percentage_score():
    assert content_confidence({"confidence_score": 85}) == pytest.approx(0.85)
    assert content_confidence({}, default=0.9) == pytest.approx(0.9)


def test_validate_prescription_rejects_missing_or_empty_medications():
    with pytest.raises(SemanticValidationFailure):
        validate_prescription({"analysis": "text only"})
    with pytest.raises(SemanticValidationFailure):
        validate_prescription({"medications": []})
    with pytest.raises(SemanticValidationFailure):
        validate_prescription({"medications": ["Amoxicillin 500mg", None]})


def test_validate_prescription_keeps_entries_without_name():
    content = validate_prescription({
        "medications": [
            {"name": "Oseltamivir", "dosage": "75mg", "frequency": "twice daily", "duration": "5 days"},
            {"drug": "Paracetamol", "dosage": "500mg"},
            "see notes",
        ],
    })
    meds = content["medications"]
    assert [m["name"] for m in meds] == ["Oseltamivir", None]
    assert meds[1]["dosage"] == "500mg"
    assert "drug" not in meds[1]


def test_validate_prescription_normalizes_entries():
    content = validate_prescription({
        "medications": [{"name": "Ibuprofen", "dosage": 400, "warnings": "Take with food"}],
        "confidence": 0.7,
    })
    med = content["medications"][0]
    assert med["dosage"] == "400"
    assert med["warnings"] == ["Take with food"]
    assert med["interactions"] == []
    assert med["cost_estimate"] is None
    assert content["confidence"] == 0.7


def test_warnings_depend_on_recommendation_type():
    content = {"red_flags": ["sepsis"], "drug_interactions": ["warfarin"], "contraindications": ["CKD"]}
    assert extract_warnings(content, RecommendationType.SYMPTOM_ANALYSIS) == ["sepsis"]
    assert extract_warnings(content, RecommendationType.PRESCRIPTION) == ["warfarin"]
    assert extract_warnings(content, RecommendationType.DRUG_INTERACTION) == ["sepsis", "CKD"]


@pytest.mark.parametrize(
    "fallback",
    [
        symptom_analysis_fallback(["fever"]),
        diagnosis_validation_fallback("Flu"),
        prescription_fallback(),
        drug_interaction_fallback(["Amoxicillin"]),
    ],
)
def test_fallbacks_are_low_confidence_manual_review(fallback):
    assert fallback["confidence"] <= 0.3
    assert fallback["manual_review"] is True
    assert "manual review" in fallback["clinical_reasoning"].lower()


def test_upstream_fallback_below_parse_fallbacks():
    assert symptom_analysis_fallback(["fever"])["confidence"] < NO_JSON_CONFIDENCE < MALFORMED_JSON_CONFIDENCE
