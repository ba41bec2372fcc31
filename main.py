import asyncio
from contextlib import asynccontextmanager, suppress
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from clinical_mcp.config import Settings, configure_logging
from clinical_mcp.errors import ClinicalSessionError
from clinical_mcp.manager import DEFAULT_DOCTOR_ID, SessionManager
from clinical_mcp.schemas import (
    ClinicalSession,
    CreateSessionRequest,
    CreateSessionResponse,
    DiagnosisRequest,
    DrugInteractionRequest,
    SessionStats,
    SessionSummary,
    StepResult,
    SymptomsRequest,
)

settings = Settings()
configure_logging(settings.log_level)

SWEEP_INTERVAL_SECONDS = 300


async def sweep_idle_sessions_forever(manager: SessionManager, interval: float = SWEEP_INTERVAL_SECONDS):
    while True:
        await asyncio.sleep(interval)
        try:
            manager.sweep_idle_sessions()
        except Exception:
            logger.exception("Idle session sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "manager", None) is None:
        app.state.manager = SessionManager.from_settings(settings)
    sweeper = asyncio.create_task(sweep_idle_sessions_forever(app.state.manager))
    logger.info("Clinical MCP session service started")
    try:
        yield
    finally:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(title="Clinical MCP Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],  # relax for demo
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ClinicalSessionError)
async def clinical_session_error_handler(request: Request, exc: ClinicalSessionError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def get_manager(request: Request) -> SessionManager:
    return request.app.state.manager


@app.get("/health")
def health(manager: SessionManager = Depends(get_manager)):
    return {
        "ok": True,
        "providers": manager.provider_status(),
        "active_sessions": manager.active_session_count(),
    }


@app.post("/api/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session(req: CreateSessionRequest, manager: SessionManager = Depends(get_manager)):
    session_id = await manager.create_session(
        req.patient, req.ai_provider, doctor_id=req.doctor_id or DEFAULT_DOCTOR_ID
    )
    return CreateSessionResponse(session_id=session_id)


@app.get("/api/sessions", response_model=List[ClinicalSession])
def list_sessions(active: Optional[bool] = None, manager: SessionManager = Depends(get_manager)):
    if active:
        return manager.get_active_sessions()
    return manager.get_sessions()


@app.get("/api/sessions/{session_id}", response_model=ClinicalSession)
def get_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    return manager.get_session(session_id)


@app.get("/api/sessions/{session_id}/stats", response_model=SessionStats)
def get_session_stats(session_id: str, manager: SessionManager = Depends(get_manager)):
    return manager.get_session_stats(session_id)


@app.post("/api/sessions/{session_id}/symptoms", response_model=StepResult)
async def add_symptoms(session_id: str, req: SymptomsRequest, manager: SessionManager = Depends(get_manager)):
    symptoms = [s.strip() for s in req.symptoms if s.strip()]
    if not symptoms:
        raise HTTPException(status_code=400, detail="Empty symptoms")
    return await manager.add_symptoms(session_id, symptoms, skip_recorded=True)


@app.post("/api/sessions/{session_id}/diagnosis", response_model=StepResult)
async def set_diagnosis(session_id: str, req: DiagnosisRequest, manager: SessionManager = Depends(get_manager)):
    diagnosis = req.diagnosis.strip()
    if not diagnosis:
        raise HTTPException(status_code=400, detail="Empty diagnosis")
    return await manager.set_diagnosis(session_id, diagnosis)


@app.post("/api/sessions/{session_id}/prescription", response_model=StepResult)
async def generate_prescription(session_id: str, manager: SessionManager = Depends(get_manager)):
    return await manager.generate_prescription(session_id)


@app.post("/api/sessions/{session_id}/drug-interactions", response_model=StepResult)
async def check_drug_interactions(
    session_id: str,
    req: Optional[DrugInteractionRequest] = None,
    manager: SessionManager = Depends(get_manager),
):
    medications = req.medications if req else None
    return await manager.check_drug_interactions(session_id, medications)


@app.post("/api/sessions/{session_id}/end", response_model=SessionSummary)
async def end_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    return await manager.end_session(session_id)
