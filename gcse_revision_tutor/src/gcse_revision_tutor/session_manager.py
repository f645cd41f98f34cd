"""
Session Manager for State Persistence

Reads and writes revision records through a RecordStore:
- revision_session_state: one SessionState row per session
- revision_progress: one evidence row per (student, session, topic)
- evaluation_log: append-only audit of judged answers

Store failures are raised as PersistenceError; callers decide what is fatal.
"""

import logging
from typing import Any, Dict, List, Optional

from gcse_revision_tutor.errors import PersistenceError
from gcse_revision_tutor.models import EvaluationLogEntry, ProgressEvidence
from gcse_revision_tutor.record_store import InMemoryRecordStore, RecordStore
from gcse_revision_tutor.session_state import SessionState

logger = logging.getLogger(__name__)

STATE_TABLE = "revision_session_state"
PROGRESS_TABLE = "revision_progress"
EVALUATION_LOG_TABLE = "evaluation_log"

STATE_CONFLICT_KEY = "session_id"
PROGRESS_CONFLICT_KEY = "student_id,session_id,topic_id"


class SessionManager:
    """
    Manages revision session persistence.

    Without a store it falls back to an in-memory store, so the engine also
    runs without Supabase configured.
    """

    def __init__(self, store: Optional[RecordStore] = None):
        """
        Initialize SessionManager.

        Args:
            store: Record store (optional, defaults to in-memory)
        """
        self.store = store if store is not None else InMemoryRecordStore()

    async def load_state(self, session_id: str) -> Optional[SessionState]:
        """
        Load session state.

        Returns:
            SessionState or None if the session has no row yet
        """
        try:
            row = await self.store.get(STATE_TABLE, {"session_id": session_id})
        except Exception as e:
            raise PersistenceError("get", STATE_TABLE, e) from e

        if row is None:
            return None
        return SessionState.from_record(row)

    async def save_state(self, state: SessionState) -> None:
        """Upsert the session row (last writer wins)."""
        try:
            await self.store.upsert(STATE_TABLE, state.to_record(), STATE_CONFLICT_KEY)
        except Exception as e:
            raise PersistenceError("upsert", STATE_TABLE, e) from e
        logger.debug(f"💾 [SessionManager] Saved state for session {state.session_id} (phase={state.phase.value})")

    async def load_evidence(self, student_id: str, session_id: str, topic_id: str) -> Optional[ProgressEvidence]:
        key = {"student_id": student_id, "session_id": session_id, "topic_id": topic_id}
        try:
            row = await self.store.get(PROGRESS_TABLE, key)
        except Exception as e:
            raise PersistenceError("get", PROGRESS_TABLE, e) from e

        return ProgressEvidence.from_record(row) if row else None

    async def save_evidence(self, evidence: ProgressEvidence) -> None:
        try:
            await self.store.upsert(PROGRESS_TABLE, evidence.to_record(), PROGRESS_CONFLICT_KEY)
        except Exception as e:
            raise PersistenceError("upsert", PROGRESS_TABLE, e) from e
        logger.debug(
            f"📈 [SessionManager] Evidence for topic {evidence.topic_id}: "
            f"{evidence.understanding_state.value} after {evidence.attempts} attempts"
        )

    async def append_evaluation_log(self, entry: EvaluationLogEntry) -> None:
        try:
            await self.store.insert(EVALUATION_LOG_TABLE, entry.to_record())
        except Exception as e:
            raise PersistenceError("insert", EVALUATION_LOG_TABLE, e) from e

    async def list_progress(self, student_id: str) -> List[Dict[str, Any]]:
        """Raw revision_progress rows for a student (all sessions and subjects)."""
        try:
            return await self.store.select(PROGRESS_TABLE, {"student_id": student_id})
        except Exception as e:
            raise PersistenceError("select", PROGRESS_TABLE, e) from e
