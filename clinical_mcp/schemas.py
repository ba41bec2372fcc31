import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class AIProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


class RecommendationType(str, Enum):
    SYMPTOM_ANALYSIS = "symptom_analysis"
    DIAGNOSIS_VALIDATION = "diagnosis_validation"
    PRESCRIPTION = "prescription"
    DRUG_INTERACTION = "drug_interaction"
    CLINICAL_GUIDELINE = "clinical_guideline"


class VitalSigns(BaseModel):
    model_config = ConfigDict(frozen=True)

    blood_pressure: Optional[str] = None  # e.g. "120/80"
    heart_rate: Optional[int] = None  # bpm
    temperature: Optional[float] = None  # °F
    oxygen_saturation: Optional[float] = None  # %


class PatientContext(BaseModel):
    """Snapshot of the patient record taken when a session starts."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    age: Optional[int] = None
    gender: Optional[str] = None
    medical_history: List[str] = []
    current_medications: List[str] = []
    allergies: List[str] = []
    vitals: VitalSigns = VitalSigns()


class Medication(BaseModel):
    name: Optional[str] = None
    generic_name: Optional[str] = None
    dosage: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None
    monitoring: Optional[str] = None
    warnings: List[str] = []
    interactions: List[str] = []
    cost_estimate: Optional[str] = None


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    type: RecommendationType
    content: Dict[str, Any]
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utcnow)
    ai_provider: str
    reasoning: Optional[str] = None
    warnings: List[str] = []
    fallback: bool = False  # content is a fixed-shape substitute


class ClinicalSession(BaseModel):
    id: str = Field(default_factory=new_id)
    patient_id: str
    doctor_id: str
    context: PatientContext
    ai_provider: AIProvider
    symptoms: List[str] = []
    current_diagnosis: Optional[str] = None
    diagnosis_history: List[str] = []
    recommendations: List[Recommendation] = []
    confidence: float = 0.0
    is_active: bool = True
    start_time: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None

    def touch(self) -> None:
        self.last_activity = utcnow()

    def add_recommendation(self, recommendation: Recommendation) -> None:
        self.recommendations.append(recommendation)
        self.confidence = self.calculate_confidence()
        self.touch()

    def calculate_confidence(self) -> float:
        # Always recomputed from the full list, never cached incrementally.
        if not self.recommendations:
            return 0.0
        return sum(r.confidence for r in self.recommendations) / len(self.recommendations)

    def duration_seconds(self) -> float:
        end = self.end_time or utcnow()
        return (end - self.start_time).total_seconds()


class StepResult(BaseModel):
    """Outcome of one AI-assisted clinical step."""

    success: bool
    data: Dict[str, Any]
    confidence: float
    reasoning: Optional[str] = None
    warnings: List[str] = []
    recommendation_id: Optional[str] = None
    fallback: bool = False
    error: Optional[str] = None


class SessionStats(BaseModel):
    id: str
    patient_id: str
    duration_seconds: float
    symptoms_analyzed: int
    recommendations_generated: int
    confidence: float
    ai_provider: AIProvider
    is_active: bool


class SessionSummary(SessionStats):
    symptoms: List[str]
    current_diagnosis: Optional[str] = None
    diagnosis_history: List[str] = []
    fallback_recommendations: int = 0
    started_at: datetime
    ended_at: Optional[datetime] = None


# ---- HTTP request bodies ----

class CreateSessionRequest(BaseModel):
    patient: PatientContext
    ai_provider: str = AIProvider.OPENAI.value
    doctor_id: Optional[str] = None


class CreateSessionResponse(BaseModel):
    session_id: str


class SymptomsRequest(BaseModel):
    symptoms: List[str] = Field(min_length=1)


class DiagnosisRequest(BaseModel):
    diagnosis: str = Field(min_length=1)


class DrugInteractionRequest(BaseModel):
    medications: Optional[List[str]] = None
