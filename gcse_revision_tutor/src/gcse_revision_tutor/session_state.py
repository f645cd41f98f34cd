"""
Session State Data Model

Defines the SessionState dataclass for a revision tutoring session.
One record per session, stored in the revision_session_state table.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from gcse_revision_tutor.models import ActionType, EvaluationResult, Phase


@dataclass(frozen=True)
class SessionState:
    """Per-session tutoring state. Transitions return new instances."""
    session_id: str
    student_id: str
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    # Outcome counters for the current topic
    attempts: int = 0
    correct_streak: int = 0
    last_evaluation: Optional[EvaluationResult] = None
    last_action: Optional[ActionType] = None
    phase: Phase = Phase.DIAGNOSTIC
    # Question currently awaiting an answer
    current_question: Optional[str] = None
    expected_answer_hint: Optional[str] = None
    # Curriculum diagnostic
    curriculum_position_confirmed: bool = False
    diagnostic_questions_asked: int = 0

    def to_record(self) -> Dict[str, Any]:
        """
        Convert SessionState to a row for storage.

        Returns:
            Dictionary representation with enum values flattened to strings
        """
        return {
            "session_id": self.session_id,
            "student_id": self.student_id,
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "attempts": self.attempts,
            "correct_streak": self.correct_streak,
            "last_evaluation": self.last_evaluation.value if self.last_evaluation else None,
            "last_action": self.last_action.value if self.last_action else None,
            "phase": self.phase.value,
            "current_question": self.current_question,
            "expected_answer_hint": self.expected_answer_hint,
            "curriculum_position_confirmed": self.curriculum_position_confirmed,
            "diagnostic_questions_asked": self.diagnostic_questions_asked,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "SessionState":
        """
        Convert a stored row to a SessionState.

        Columns added after a row was written are tolerated as missing.
        """
        return cls(
            session_id=data["session_id"],
            student_id=data["student_id"],
            topic_id=data.get("topic_id"),
            topic_name=data.get("topic_name"),
            attempts=data.get("attempts") or 0,
            correct_streak=data.get("correct_streak") or 0,
            last_evaluation=EvaluationResult(data["last_evaluation"]) if data.get("last_evaluation") else None,
            last_action=ActionType(data["last_action"]) if data.get("last_action") else None,
            phase=Phase(data["phase"]) if data.get("phase") else Phase.DIAGNOSTIC,
            current_question=data.get("current_question"),
            expected_answer_hint=data.get("expected_answer_hint"),
            curriculum_position_confirmed=bool(data.get("curriculum_position_confirmed", False)),
            diagnostic_questions_asked=data.get("diagnostic_questions_asked") or 0,
        )
