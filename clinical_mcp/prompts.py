from typing import List

from clinical_mcp.schemas import PatientContext

PLACEHOLDER_DIAGNOSIS = "Working diagnosis based on symptoms"


def _join(items: List[str], empty: str) -> str:
    return ", ".join(items) if items else empty


def _or_unknown(value) -> str:
    return "Not recorded" if value is None or value == "" else str(value)


def build_system_prompt(context: PatientContext) -> str:
    vitals = context.vitals
    return f"""You are an advanced medical AI assistant integrated with an MCP (Model Context Protocol) server providing clinical decision support.

PATIENT CONTEXT:
- Name: {context.name}
- Age: {_or_unknown(context.age)}
- Gender: {_or_unknown(context.gender)}
- Medical History: {_join(context.medical_history, "None reported")}
- Current Medications: {_join(context.current_medications, "None")}
- Known Allergies: {_join(context.allergies, "None reported")}
- Current Vitals:
  * Blood Pressure: {_or_unknown(vitals.blood_pressure)}
  * Heart Rate: {_or_unknown(vitals.heart_rate)} bpm
  * Temperature: {_or_unknown(vitals.temperature)}°F
  * Oxygen Saturation: {_or_unknown(vitals.oxygen_saturation)}%

CLINICAL GUIDELINES:
1. Analyze symptoms in context of patient's complete medical history
2. Provide evidence-based differential diagnoses with confidence levels
3. Suggest appropriate diagnostic tests and procedures
4. Recommend treatment plans considering current medications and allergies
5. Flag critical warnings, drug interactions, and contraindications
6. Prioritize patient safety and evidence-based medicine
7. Provide clear clinical reasoning for all recommendations
8. Consider age-appropriate treatments and dosing

RESPONSE FORMAT:
Always respond with structured JSON containing:
{{
  "analysis": "comprehensive symptom analysis",
  "differential_diagnoses": [
    {{"condition": "condition name", "probability": 0.85, "reasoning": "clinical reasoning", "urgency": "low|medium|high|critical"}}
  ],
  "recommendations": [
    {{"category": "diagnostic|therapeutic|monitoring", "action": "specific recommendation", "priority": "low|medium|high|urgent"}}
  ],
  "drug_interactions": ["interaction warnings if applicable"],
  "contraindications": ["contraindication warnings if applicable"],
  "red_flags": ["critical warnings requiring immediate attention"],
  "confidence": 0.85,
  "clinical_reasoning": "detailed explanation of analysis",
  "next_steps": ["prioritized next actions"]
}}

IMPORTANT: You are assisting licensed healthcare professionals. Always emphasize that AI recommendations supplement but never replace clinical judgment."""


def initial_assessment_prompt() -> str:
    return "Patient session initialized. Provide initial assessment and recommendations."


def symptom_analysis_prompt(new_symptoms: List[str], all_symptoms: List[str]) -> str:
    return f"""SYMPTOM ANALYSIS REQUEST

New symptoms reported: {_join(new_symptoms, "None")}
All current symptoms: {_join(all_symptoms, "None")}

Please provide a comprehensive analysis including:
1. Symptom correlation and clustering
2. Differential diagnoses with probabilities
3. Clinical urgency assessment
4. Recommended diagnostic workup
5. Any red flags requiring immediate attention

Consider the patient's medical history, current medications, and vital signs in your analysis."""


def diagnosis_validation_prompt(diagnosis: str, symptoms: List[str]) -> str:
    return f"""DIAGNOSIS VALIDATION REQUEST

Proposed diagnosis: {diagnosis}
Patient symptoms: {_join(symptoms, "None reported")}

Please validate this diagnosis by providing:
1. Diagnostic accuracy assessment based on symptoms
2. Supporting evidence from patient history and presentation
3. Alternative diagnoses to consider
4. Recommended confirmatory tests
5. Treatment plan recommendations
6. Prognosis and complications to monitor
7. Patient counseling points

Provide a thorough clinical evaluation of this diagnostic decision."""


def prescription_prompt(diagnosis: str, symptoms: List[str], context: PatientContext) -> str:
    return f"""PRESCRIPTION GENERATION REQUEST

Clinical Context:
- Diagnosis: {diagnosis}
- Symptoms: {_join(symptoms, "None reported")}
- Current medications: {_join(context.current_medications, "None")}
- Known allergies: {_join(context.allergies, "None")}
- Patient age: {_or_unknown(context.age)}
- Patient gender: {_or_unknown(context.gender)}

Generate a comprehensive prescription plan including:
1. Primary medications with specific dosages, routes, and frequencies
2. Alternative medications for allergies/contraindications
3. Detailed drug interaction analysis
4. Contraindication warnings
5. Patient education and counseling points
6. Monitoring parameters and follow-up schedule
7. Duration of treatment and tapering instructions if applicable

Return ONLY valid JSON with this structure:
{{
  "medications": [
    {{
      "name": "Medication name",
      "generic_name": "Generic name",
      "dosage": "Dosage",
      "route": "Route of administration",
      "frequency": "How often to take",
      "duration": "How long to take",
      "instructions": "Special instructions",
      "warnings": ["Warning"],
      "interactions": ["Interaction"],
      "cost_estimate": "Cost estimate range"
    }}
  ],
  "drug_interactions": ["Drug interaction"],
  "contraindications": ["Contraindication"],
  "patient_education": ["Counseling point"],
  "follow_up": "Follow-up plan",
  "red_flags": ["Red flag"],
  "confidence": 0.85,
  "clinical_reasoning": "Medical reasoning for the recommendation"
}}"""


def drug_interaction_prompt(medications: List[str], context: PatientContext) -> str:
    return f"""DRUG INTERACTION CHECK REQUEST

Proposed medications: {_join(medications, "None")}
Current medications: {_join(context.current_medications, "None")}
Known allergies: {_join(context.allergies, "None reported")}
Medical history: {_join(context.medical_history, "None reported")}

Identify for each proposed medication:
1. Interactions with current medications (severity and mechanism)
2. Allergy cross-reactivity
3. Contraindications given the medical history
4. Required monitoring or dose adjustments

Return JSON with "interactions" (list of {{"drugs", "severity", "description"}}),
"contraindications", "red_flags", "confidence" and "clinical_reasoning"."""
