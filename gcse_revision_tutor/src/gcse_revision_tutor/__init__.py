"""GCSE revision tutoring session engine"""
from .errors import PersistenceError, RevisionEngineError, SessionOwnershipError, TutoringUnavailableError
from .session_manager import SessionManager
from .session_state import SessionState
from .turn_orchestrator import RevisionTurnOrchestrator, TurnInput, TurnResult

__all__ = [
    "PersistenceError",
    "RevisionEngineError",
    "SessionOwnershipError",
    "TutoringUnavailableError",
    "SessionManager",
    "SessionState",
    "RevisionTurnOrchestrator",
    "TurnInput",
    "TurnResult",
]
