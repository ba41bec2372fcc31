"""
Clinical session manager.

Tracks one consultation per session: symptoms accumulate, a working
diagnosis is set, prescriptions are generated. Every step sends the
accumulated context to the session's AI provider and stores the parsed
reply as a typed recommendation.

A failing or stalled model never raises out of a clinical step. The step
records a low-confidence "manual review" recommendation instead, so the
clinician's workflow is never blocked. Only references to unknown or closed
sessions (and misuse such as closing twice) raise.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from clinical_mcp import events as ev
from clinical_mcp.config import Settings
from clinical_mcp.errors import (
    InvalidState,
    NoNewSymptoms,
    SemanticValidationFailure,
    SessionNotFound,
    UnsupportedProvider,
    UpstreamCompletionFailure,
)
from clinical_mcp.events import EventBus
from clinical_mcp.fallbacks import (
    diagnosis_validation_fallback,
    drug_interaction_fallback,
    prescription_fallback,
    symptom_analysis_fallback,
)
from clinical_mcp.parser import (
    content_confidence,
    extract_reasoning,
    extract_warnings,
    parse_ai_response,
    validate_prescription,
)
from clinical_mcp.prompts import (
    PLACEHOLDER_DIAGNOSIS,
    build_system_prompt,
    diagnosis_validation_prompt,
    drug_interaction_prompt,
    initial_assessment_prompt,
    prescription_prompt,
    symptom_analysis_prompt,
)
from clinical_mcp.providers import Completion, CompletionProvider, build_providers
from clinical_mcp.schemas import (
    AIProvider,
    ClinicalSession,
    PatientContext,
    Recommendation,
    RecommendationType,
    SessionStats,
    SessionSummary,
    StepResult,
    utcnow,
)
from clinical_mcp.store import SessionStore

INITIAL_ASSESSMENT_CONFIDENCE = 0.9
DEFAULT_DOCTOR_ID = "current-doctor"


class SessionManager:
    def __init__(
        self,
        providers: Dict[str, CompletionProvider],
        store: Optional[SessionStore] = None,
        events: Optional[EventBus] = None,
        completion_timeout: float = 30.0,
        require_diagnosis_for_prescription: bool = True,
        session_idle_timeout: Optional[float] = None,
    ):
        self.providers = providers
        self.store = store if store is not None else SessionStore()
        self.events = events if events is not None else EventBus()
        self.completion_timeout = completion_timeout
        self.require_diagnosis_for_prescription = require_diagnosis_for_prescription
        self.session_idle_timeout = session_idle_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionManager":
        return cls(
            providers=build_providers(settings),
            store=SessionStore(max_sessions=settings.max_sessions),
            completion_timeout=settings.completion_timeout,
            require_diagnosis_for_prescription=settings.require_diagnosis_for_prescription,
            session_idle_timeout=settings.session_idle_timeout,
        )

    # ---- lifecycle ----

    async def create_session(
        self,
        patient_context: Union[PatientContext, Dict[str, Any]],
        ai_provider: Union[AIProvider, str] = AIProvider.OPENAI,
        doctor_id: str = DEFAULT_DOCTOR_ID,
    ) -> str:
        provider_tag = self._provider_tag(ai_provider)
        if not isinstance(patient_context, PatientContext):
            patient_context = PatientContext.model_validate(patient_context)
        # The session owns its own snapshot; it is never re-fetched.
        context = patient_context.model_copy(deep=True)

        if self.session_idle_timeout:
            self.store.sweep_idle(self.session_idle_timeout)

        session = ClinicalSession(
            patient_id=context.id,
            doctor_id=doctor_id,
            context=context,
            ai_provider=provider_tag,
        )
        self.store.add(session)
        logger.info(f"Created session {session.id} for patient {context.id} via {provider_tag.value}")

        async with self.store.lock(session.id):
            await self._initialize_session(session)

        await self.events.emit(ev.SESSION_CREATED, {"session_id": session.id, "patient_id": context.id})
        return session.id

    async def _initialize_session(self, session: ClinicalSession) -> None:
        # Best effort: a failure here only skips the initial recommendation.
        try:
            completion = await self._complete(session, initial_assessment_prompt())
        except UpstreamCompletionFailure as e:
            await self.events.emit(ev.SESSION_ERROR, {"session_id": session.id, "error": str(e)})
            return

        content = parse_ai_response(completion.text)
        recommendation = Recommendation(
            type=RecommendationType.CLINICAL_GUIDELINE,
            content=content,
            confidence=content_confidence(content, INITIAL_ASSESSMENT_CONFIDENCE),
            ai_provider=session.ai_provider.value,
            reasoning=extract_reasoning(content) or "Initial AI assessment based on patient context",
            warnings=extract_warnings(content, RecommendationType.CLINICAL_GUIDELINE),
            fallback=bool(content.get("parse_fallback")),
        )
        session.add_recommendation(recommendation)
        await self.events.emit(ev.SESSION_INITIALIZED, {"session_id": session.id, "content": content})

    async def end_session(self, session_id: str) -> SessionSummary:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        async with self.store.lock(session_id):
            if not session.is_active:
                raise InvalidState(f"Session already closed: {session_id}")
            session.is_active = False
            session.end_time = utcnow()
            session.touch()

        summary = self._summary(session)
        logger.info(
            f"Closed session {session_id} after {summary.duration_seconds:.0f}s "
            f"({summary.recommendations_generated} recommendations, confidence {summary.confidence:.2f})"
        )
        await self.events.emit(ev.SESSION_CLOSED, {
            "session_id": session_id,
            "duration_seconds": summary.duration_seconds,
            "summary": summary.model_dump(mode="json"),
        })
        return summary

    # ---- clinical steps ----

    async def add_symptoms(self, session_id: str, symptoms: List[str], skip_recorded: bool = False) -> StepResult:
        """Append symptoms and analyze the accumulated list.

        With ``skip_recorded`` the symptoms already on the session (or repeated
        in ``symptoms``) are dropped first; the check runs under the session
        lock so concurrent callers cannot both add the same symptom.
        """
        session = self._require_active(session_id)
        async with self.store.lock(session_id):
            session = self._require_active(session_id)
            if skip_recorded:
                fresh = []
                for symptom in symptoms:
                    if symptom not in session.symptoms and symptom not in fresh:
                        fresh.append(symptom)
                if not fresh:
                    raise NoNewSymptoms(f"No new symptoms for session {session_id}")
                symptoms = fresh
            session.symptoms.extend(symptoms)
            session.touch()

            result = await self._run_step(
                session,
                RecommendationType.SYMPTOM_ANALYSIS,
                symptom_analysis_prompt(symptoms, session.symptoms),
                fallback=lambda: symptom_analysis_fallback(symptoms),
            )

        await self._emit_step(ev.SYMPTOMS_ADDED, session, result, symptoms=list(symptoms))
        return result

    async def set_diagnosis(self, session_id: str, diagnosis: str) -> StepResult:
        session = self._require_active(session_id)
        async with self.store.lock(session_id):
            session = self._require_active(session_id)
            session.current_diagnosis = diagnosis
            session.diagnosis_history.append(diagnosis)
            session.touch()

            result = await self._run_step(
                session,
                RecommendationType.DIAGNOSIS_VALIDATION,
                diagnosis_validation_prompt(diagnosis, session.symptoms),
                fallback=lambda: diagnosis_validation_fallback(diagnosis),
            )

        await self._emit_step(ev.DIAGNOSIS_SET, session, result, diagnosis=diagnosis)
        return result

    async def generate_prescription(self, session_id: str) -> StepResult:
        session = self._require_active(session_id)
        async with self.store.lock(session_id):
            session = self._require_active(session_id)
            diagnosis = session.current_diagnosis
            if self.require_diagnosis_for_prescription:
                if not diagnosis:
                    raise InvalidState(f"Set a diagnosis before generating a prescription: {session_id}")
                if not session.symptoms:
                    raise InvalidState(f"Add symptoms before generating a prescription: {session_id}")
            elif not diagnosis:
                logger.warning(f"Session {session_id} has no diagnosis; prescribing against a placeholder")
                diagnosis = PLACEHOLDER_DIAGNOSIS

            result = await self._run_step(
                session,
                RecommendationType.PRESCRIPTION,
                prescription_prompt(diagnosis, session.symptoms, session.context),
                fallback=prescription_fallback,
                validate=validate_prescription,
            )

        await self._emit_step(ev.PRESCRIPTION_GENERATED, session, result)
        return result

    async def check_drug_interactions(self, session_id: str, medications: Optional[List[str]] = None) -> StepResult:
        session = self._require_active(session_id)
        async with self.store.lock(session_id):
            session = self._require_active(session_id)
            to_check = list(medications) if medications else self._latest_prescribed(session)
            if not to_check:
                raise InvalidState(f"No medications to check for session {session_id}")

            result = await self._run_step(
                session,
                RecommendationType.DRUG_INTERACTION,
                drug_interaction_prompt(to_check, session.context),
                fallback=lambda: drug_interaction_fallback(to_check),
            )

        await self._emit_step(ev.DRUG_INTERACTIONS_CHECKED, session, result, medications=to_check)
        return result

    # ---- read side ----

    def get_session(self, session_id: str) -> ClinicalSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def get_sessions(self) -> List[ClinicalSession]:
        return self.store.all()

    def get_active_sessions(self) -> List[ClinicalSession]:
        return self.store.active()

    def active_session_count(self) -> int:
        return len(self.store.active())

    def get_session_stats(self, session_id: str) -> SessionStats:
        session = self.get_session(session_id)
        return SessionStats(
            id=session.id,
            patient_id=session.patient_id,
            duration_seconds=session.duration_seconds(),
            symptoms_analyzed=len(session.symptoms),
            recommendations_generated=len(session.recommendations),
            confidence=session.confidence,
            ai_provider=session.ai_provider,
            is_active=session.is_active,
        )

    def provider_status(self) -> Dict[str, bool]:
        return {name: provider.available for name, provider in self.providers.items()}

    def sweep_idle_sessions(self) -> int:
        if not self.session_idle_timeout:
            return 0
        return self.store.sweep_idle(self.session_idle_timeout)

    # ---- internals ----

    def _provider_tag(self, ai_provider: Union[AIProvider, str]) -> AIProvider:
        try:
            tag = AIProvider(ai_provider)
        except ValueError:
            raise UnsupportedProvider(str(ai_provider)) from None
        if tag.value not in self.providers:
            raise UnsupportedProvider(tag.value)
        return tag

    def _require_active(self, session_id: str) -> ClinicalSession:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if not session.is_active:
            raise SessionNotFound(session_id, "Session is not active")
        return session

    async def _complete(self, session: ClinicalSession, prompt: str) -> Completion:
        provider = self.providers[session.ai_provider.value]
        messages = [{"role": "user", "content": prompt}]
        try:
            completion = await asyncio.wait_for(
                provider.complete(build_system_prompt(session.context), messages),
                timeout=self.completion_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.exception(f"Completion timed out after {self.completion_timeout}s for session {session.id}")
            raise UpstreamCompletionFailure(
                f"{provider.name} completion timed out after {self.completion_timeout}s"
            ) from e
        except UpstreamCompletionFailure:
            logger.exception(f"Completion unavailable for session {session.id}")
            raise
        except Exception as e:
            logger.exception(f"Completion call failed for session {session.id}")
            raise UpstreamCompletionFailure(f"{provider.name} completion failed: {e}") from e

        if completion.usage:
            logger.debug(f"Session {session.id} completion usage ({completion.model}): {completion.usage}")
        return completion

    async def _run_step(
        self,
        session: ClinicalSession,
        rec_type: RecommendationType,
        prompt: str,
        fallback: Callable[[], Dict[str, Any]],
        validate: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
    ) -> StepResult:
        error = None
        try:
            completion = await self._complete(session, prompt)
            content = parse_ai_response(completion.text)
            if validate is not None:
                content = validate(content)
            is_fallback = bool(content.get("parse_fallback"))
        except SemanticValidationFailure as e:
            logger.warning(f"Unusable {rec_type.value} for session {session.id}: {e}")
            content, error, is_fallback = fallback(), str(e), True
        except UpstreamCompletionFailure as e:
            content, error, is_fallback = fallback(), str(e), True

        recommendation = Recommendation(
            type=rec_type,
            content=content,
            confidence=content_confidence(content),
            ai_provider=session.ai_provider.value,
            reasoning=extract_reasoning(content),
            warnings=extract_warnings(content, rec_type),
            fallback=is_fallback,
        )
        session.add_recommendation(recommendation)

        return StepResult(
            success=error is None,
            data=content,
            confidence=recommendation.confidence,
            reasoning=recommendation.reasoning,
            warnings=recommendation.warnings,
            recommendation_id=recommendation.id,
            fallback=is_fallback,
            error=f"Failed to complete {rec_type.value} with AI: {error}" if error else None,
        )

    async def _emit_step(self, event: str, session: ClinicalSession, result: StepResult, **extra: Any) -> None:
        if result.error:
            await self.events.emit(ev.SESSION_ERROR, {"session_id": session.id, "error": result.error})
        await self.events.emit(event, {"session_id": session.id, "result": result.model_dump(), **extra})

    @staticmethod
    def _latest_prescribed(session: ClinicalSession) -> List[str]:
        for rec in reversed(session.recommendations):
            if rec.type == RecommendationType.PRESCRIPTION and not rec.fallback:
                return [m["name"] for m in rec.content.get("medications", []) if m.get("name")]
        return []

    def _summary(self, session: ClinicalSession) -> SessionSummary:
        stats = self.get_session_stats(session.id)
        return SessionSummary(
            **stats.model_dump(),
            symptoms=list(session.symptoms),
            current_diagnosis=session.current_diagnosis,
            diagnosis_history=list(session.diagnosis_history),
            fallback_recommendations=sum(1 for r in session.recommendations if r.fallback),
            started_at=session.start_time,
            ended_at=session.end_time,
        )
