from typing import Any, Dict, List

# Confidence of the fixed-shape substitutes used when a completion call fails
# or its reply is semantically unusable. All are kept at or below 0.3.
SYMPTOM_FALLBACK_CONFIDENCE = 0.3
DIAGNOSIS_FALLBACK_CONFIDENCE = 0.3
PRESCRIPTION_FALLBACK_CONFIDENCE = 0.1
INTERACTION_FALLBACK_CONFIDENCE = 0.2

MANUAL_REVIEW_WARNING = "AI analysis failed - manual review required"


def symptom_analysis_fallback(symptoms: List[str]) -> Dict[str, Any]:
    return {
        "analysis": f"Clinical analysis required for symptoms: {', '.join(symptoms)}",
        "differential_diagnoses": [
            {
                "condition": "Manual clinical evaluation needed",
                "probability": 0.5,
                "reasoning": "AI analysis unavailable - clinical assessment required",
                "urgency": "medium",
            }
        ],
        "recommendations": [
            {"category": "diagnostic", "action": "Comprehensive clinical evaluation", "priority": "high"},
            {"category": "monitoring", "action": "Monitor symptom progression", "priority": "medium"},
        ],
        "red_flags": [MANUAL_REVIEW_WARNING],
        "confidence": SYMPTOM_FALLBACK_CONFIDENCE,
        "clinical_reasoning": "AI system unavailable - manual review and clinical judgment required",
        "next_steps": ["Manual symptom assessment", "Clinical examination", "Consider diagnostic workup"],
        "manual_review": True,
    }


def diagnosis_validation_fallback(diagnosis: str) -> Dict[str, Any]:
    return {
        "analysis": f"Manual validation required for diagnosis: {diagnosis}",
        "validation": "Clinical confirmation needed",
        "supporting_evidence": ["AI validation unavailable"],
        "recommendations": [
            {"category": "diagnostic", "action": "Clinical confirmation of diagnosis", "priority": "high"},
        ],
        "red_flags": ["AI validation failed - manual review required"],
        "confidence": DIAGNOSIS_FALLBACK_CONFIDENCE,
        "clinical_reasoning": "AI validation failed - manual review by clinician required",
        "manual_review": True,
    }


def prescription_fallback() -> Dict[str, Any]:
    return {
        "medications": [
            {
                "name": "Clinical prescription required",
                "dosage": "To be determined by physician",
                "route": None,
                "frequency": "As clinically indicated",
                "duration": "As clinically indicated",
                "instructions": "AI prescription generation failed - manual prescribing required",
                "monitoring": "Standard clinical monitoring",
                "warnings": [],
                "interactions": [],
                "cost_estimate": None,
            }
        ],
        "drug_interactions": ["Manual drug interaction check required"],
        "contraindications": ["Review patient allergies and contraindications manually"],
        "recommendations": [
            {"category": "prescription", "action": "Manual prescription generation required", "priority": "high"},
        ],
        "confidence": PRESCRIPTION_FALLBACK_CONFIDENCE,
        "clinical_reasoning": "AI prescription generation failed - manual review and clinical prescribing required",
        "manual_review": True,
    }


def drug_interaction_fallback(medications: List[str]) -> Dict[str, Any]:
    return {
        "analysis": f"Manual interaction check required for: {', '.join(medications) or 'no medications'}",
        "interactions": [],
        "contraindications": ["Review patient allergies and contraindications manually"],
        "red_flags": ["AI interaction check failed - manual review required"],
        "confidence": INTERACTION_FALLBACK_CONFIDENCE,
        "clinical_reasoning": "AI interaction check unavailable - manual review against a drug reference required",
        "manual_review": True,
    }
