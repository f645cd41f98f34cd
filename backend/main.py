"""
FastAPI Backend for the GCSE Revision Tutor

Provides REST API endpoints with:
- Supabase JWT authentication
- Controlled revision turns, streamed as plain text with decision headers
- Session state inspection
- Subject-level progress summaries
"""

import logging
import os
import signal
import sys
import time
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from backend.lib.auth import get_current_user
from backend.lib.logger import get_logger, setup_logging
from backend.lib.session_locks import SessionLocks
from backend.lib.supabase_client import get_supabase_client, is_supabase_configured
from gcse_revision_tutor.config import TutorConfig
from gcse_revision_tutor.diagnostic_questions import default_bank
from gcse_revision_tutor.errors import (
    PersistenceError,
    SessionOwnershipError,
    TutoringUnavailableError,
)
from gcse_revision_tutor.models import LearningStyle
from gcse_revision_tutor.progress_evidence import aggregate_by_subject
from gcse_revision_tutor.record_store import InMemoryRecordStore, SupabaseRecordStore
from gcse_revision_tutor.session_manager import SessionManager
from gcse_revision_tutor.tutor_agent import CombinedTutorAgent
from gcse_revision_tutor.turn_orchestrator import RevisionTurnOrchestrator, TurnInput

setup_logging(level=logging.INFO, use_colors=True)
logger = get_logger("backend.main")

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:3001,http://127.0.0.1:3000"

# Singletons, created on first use
_config: Optional[TutorConfig] = None
_session_manager: Optional[SessionManager] = None
_tutor_agent: Optional[CombinedTutorAgent] = None
session_locks = SessionLocks()


def get_config() -> TutorConfig:
    global _config
    if _config is None:
        _config = TutorConfig.from_env()
    return _config


def get_session_manager() -> SessionManager:
    """Supabase-backed when configured, otherwise in-memory."""
    global _session_manager
    if _session_manager is None:
        if is_supabase_configured():
            _session_manager = SessionManager(SupabaseRecordStore(get_supabase_client()))
            logger.info("💾 Session storage: Supabase")
        else:
            _session_manager = SessionManager(InMemoryRecordStore())
            logger.warning("Supabase not configured, session storage is in-memory")
    return _session_manager


def get_tutor_agent(config: TutorConfig = Depends(get_config)) -> CombinedTutorAgent:
    global _tutor_agent
    if _tutor_agent is None:
        try:
            _tutor_agent = CombinedTutorAgent(config=config)
        except ValueError as e:
            logger.error("Tutor agent could not be created", error=e)
            raise HTTPException(status_code=503, detail=TutoringUnavailableError.user_message)
    return _tutor_agent


def get_orchestrator(
    sessions: SessionManager = Depends(get_session_manager),
    agent=Depends(get_tutor_agent),
    config: TutorConfig = Depends(get_config),
) -> RevisionTurnOrchestrator:
    return RevisionTurnOrchestrator(sessions, agent, config=config)


app = FastAPI(
    title="GCSE Revision Tutor API",
    description="Controlled revision tutoring sessions with progress tracking",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Action", "X-Phase", "X-Evaluation", "X-Confidence", "X-Error-Type", "X-Delivery-Modes"],
)

# ==================== Pydantic Models ====================

class HistoryMessage(BaseModel):
    role: str
    content: str


class RevisionRequest(BaseModel):
    message: str
    session_id: str
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    subject_id: Optional[str] = None
    subject_code: Optional[str] = None
    subject_name: Optional[str] = None
    learning_style: Optional[Dict[str, Any]] = None
    message_history: List[HistoryMessage] = Field(default_factory=list)
    mark_scheme: Optional[str] = None


class SubjectProgressResponse(BaseModel):
    subject_id: str
    secure_count: int
    strengthening_count: int
    building_count: int
    total_topics: int
    progress_percentage: int
    understanding_level: str
    last_interaction_at: Optional[str] = None


class SubjectProgressList(BaseModel):
    subjects: List[SubjectProgressResponse]


# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "GCSE Revision Tutor API",
        "version": "1.0.0",
        "supabase_configured": is_supabase_configured(),
    }


@app.post("/api/revision")
async def revision_turn(
    request: RevisionRequest,
    user: dict = Depends(get_current_user),
    orchestrator: RevisionTurnOrchestrator = Depends(get_orchestrator),
):
    """
    Run one revision turn and stream the tutor's reply as plain text.

    Decision metadata is returned in X-* headers. Session state is saved
    before the first byte is streamed.
    """
    start_time = time.time()
    logger.request("POST", "/api/revision", user_id=user["id"], data={
        "session_id": request.session_id,
        "topic": request.topic_name,
        "message_length": len(request.message),
    })

    turn = TurnInput(
        message=request.message,
        session_id=request.session_id,
        student_id=user["id"],
        topic_id=request.topic_id,
        topic_name=request.topic_name,
        subject_id=request.subject_id,
        subject_code=request.subject_code,
        subject_name=request.subject_name,
        learning_style=LearningStyle.from_dict(request.learning_style),
        message_history=[{"role": m.role, "content": m.content} for m in request.message_history],
        mark_scheme=request.mark_scheme,
    )

    async with session_locks.hold(request.session_id):
        try:
            result = await orchestrator.handle_turn(turn)
        except TutoringUnavailableError as e:
            logger.error("Tutoring unavailable", error=e)
            raise HTTPException(status_code=503, detail=TutoringUnavailableError.user_message)
        except SessionOwnershipError:
            raise HTTPException(status_code=403, detail="Session belongs to another student")

    logger.debug("Session lock released", data={"session_id": request.session_id, "turns_in_flight": len(session_locks)})

    logger.subsection(f"Turn decided (intent={result.intent.value})", result.metadata.to_dict())
    headers = result.metadata.to_headers()

    async def generate():
        async for chunk in result.stream():
            yield chunk
        logger.response(200, "/api/revision", duration=time.time() - start_time)

    return StreamingResponse(generate(), media_type="text/plain; charset=utf-8", headers=headers)


@app.get("/api/revision/{session_id}/state")
async def get_revision_state(
    session_id: str,
    user: dict = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Current session state. 404 if the session does not exist or is not the caller's."""
    try:
        state = await sessions.load_state(session_id)
    except PersistenceError as e:
        logger.error("Could not load session state", error=e)
        raise HTTPException(status_code=503, detail="Session state is unavailable right now")

    if state is None or state.student_id != user["id"]:
        raise HTTPException(status_code=404, detail="Session not found")

    return state.to_record()


@app.get("/api/progress/subjects", response_model=SubjectProgressList)
async def get_subject_progress(
    user: dict = Depends(get_current_user),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Per-subject mastery summary over all of the caller's revision sessions."""
    try:
        rows = await sessions.list_progress(user["id"])
    except PersistenceError as e:
        logger.error("Could not load progress", error=e)
        raise HTTPException(status_code=503, detail="Progress is unavailable right now")

    summaries = aggregate_by_subject(rows)
    return {"subjects": [summary.to_dict() for summary in summaries]}


@app.on_event("startup")
async def startup_event():
    """Load the diagnostic bank once so the first turn does not pay for it."""
    bank = default_bank()
    logger.success("Diagnostic bank ready", data={"subjects": list(bank.subject_codes)})


if __name__ == "__main__":
    import uvicorn

    def handle_exit(*args):
        """Handle graceful shutdown."""
        logger.section("SERVER SHUTDOWN", {"reason": "signal received"})
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_exit)
    signal.signal(signal.SIGTERM, handle_exit)

    try:
        uvicorn.run("backend.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=True)
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
