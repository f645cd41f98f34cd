"""
Revision Engine Data Model

Enums and record types shared by the revision session engine.
The controller decides WHAT happens next; the model decides HOW it is said.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class EvaluationResult(str, Enum):
    """Outcome of judging a student answer."""
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"
    UNKNOWN = "unknown"  # Correctness was not (or could not be) judged


class EvaluationConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ErrorType(str, Enum):
    RECALL_GAP = "recall_gap"          # Missing facts or definitions
    CONCEPT_GAP = "concept_gap"        # Misunderstanding the idea
    CONFUSION = "confusion"            # Mixing concepts
    EXAM_TECHNIQUE = "exam_technique"  # Poor structure, vague wording
    GUESSING = "guessing"              # Clearly uncertain or speculative


class ActionType(str, Enum):
    """What the tutor does next."""
    DIAGNOSTIC_QUESTION = "DIAGNOSTIC_QUESTION"
    INITIAL_QUESTION = "INITIAL_QUESTION"
    RETRY_WITH_HINT = "RETRY_WITH_HINT"
    REPHRASE_SIMPLER = "REPHRASE_SIMPLER"
    EXTEND_DIFFICULTY = "EXTEND_DIFFICULTY"
    CONFIRM_MASTERY = "CONFIRM_MASTERY"
    ADVANCE_TOPIC = "ADVANCE_TOPIC"
    RECOVER_CONFIDENCE = "RECOVER_CONFIDENCE"
    AWAIT_RESPONSE = "AWAIT_RESPONSE"


class Phase(str, Enum):
    """Session phases. The diagnostic phase positions the student before tutoring."""
    DIAGNOSTIC = "diagnostic"
    TEACHING = "teaching"
    PRACTICE = "practice"
    CONSOLIDATION = "consolidation"


class UnderstandingState(str, Enum):
    BUILDING = "building"
    STRENGTHENING = "strengthening"
    SECURE = "secure"


class Difficulty(str, Enum):
    FOUNDATION = "foundation"
    CORE = "core"
    HIGHER = "higher"


@dataclass(frozen=True)
class Evaluation:
    """Structured judgement of one student answer."""
    evaluation: EvaluationResult
    confidence: EvaluationConfidence = EvaluationConfidence.LOW
    error_type: Optional[ErrorType] = None

    @property
    def is_real(self) -> bool:
        """True when correctness was actually judged."""
        return self.evaluation != EvaluationResult.UNKNOWN

    @classmethod
    def unknown(
        cls,
        confidence: EvaluationConfidence = EvaluationConfidence.LOW,
        error_type: Optional[ErrorType] = None,
    ) -> "Evaluation":
        return cls(EvaluationResult.UNKNOWN, confidence, error_type)


@dataclass(frozen=True)
class DiagnosticQuestion:
    """A curriculum-positioning probe. No hints, no teaching."""
    id: str
    question_text: str
    topic_area: str
    difficulty: Difficulty


@dataclass
class LearningStyle:
    """Pre-scored VARK profile (percentages)."""
    visual: float = 0.0
    auditory: float = 0.0
    read_write: float = 0.0
    kinesthetic: float = 0.0
    primary_styles: List[str] = field(default_factory=list)
    is_multimodal: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["LearningStyle"]:
        """Accepts both snake_case and the camelCase keys the web client sends."""
        if not data:
            return None
        return cls(
            visual=float(data.get("visual", 0) or 0),
            auditory=float(data.get("auditory", 0) or 0),
            read_write=float(data.get("read_write", data.get("readWrite", 0)) or 0),
            kinesthetic=float(data.get("kinesthetic", 0) or 0),
            primary_styles=list(data.get("primary_styles", data.get("primaryStyles", [])) or []),
            is_multimodal=bool(data.get("is_multimodal", data.get("isMultimodal", False))),
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProgressEvidence:
    """Durable tally of outcomes for one (student, session, topic)."""
    student_id: str
    session_id: str
    topic_id: str
    subject_id: Optional[str] = None
    attempts: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    partial_count: int = 0
    last_evaluation: Optional[EvaluationResult] = None
    understanding_state: UnderstandingState = UnderstandingState.BUILDING
    delivery_modes_used: Set[str] = field(default_factory=set)
    last_interaction_at: datetime = field(default_factory=utc_now)

    def to_record(self) -> Dict[str, Any]:
        return {
            "student_id": self.student_id,
            "session_id": self.session_id,
            "topic_id": self.topic_id,
            "subject_id": self.subject_id,
            "attempts": self.attempts,
            "correct_count": self.correct_count,
            "incorrect_count": self.incorrect_count,
            "partial_count": self.partial_count,
            "last_evaluation": self.last_evaluation.value if self.last_evaluation else None,
            "understanding_state": self.understanding_state.value,
            # Stored as a sorted list so rows are stable across writes
            "delivery_modes_used": sorted(self.delivery_modes_used),
            "last_interaction_at": self.last_interaction_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "ProgressEvidence":
        last_interaction = data.get("last_interaction_at")
        if isinstance(last_interaction, str):
            last_interaction = datetime.fromisoformat(last_interaction.replace("Z", "+00:00"))
        return cls(
            student_id=data["student_id"],
            session_id=data["session_id"],
            topic_id=data["topic_id"],
            subject_id=data.get("subject_id"),
            attempts=data.get("attempts") or 0,
            correct_count=data.get("correct_count") or 0,
            incorrect_count=data.get("incorrect_count") or 0,
            partial_count=data.get("partial_count") or 0,
            last_evaluation=EvaluationResult(data["last_evaluation"]) if data.get("last_evaluation") else None,
            understanding_state=UnderstandingState(data.get("understanding_state") or "building"),
            delivery_modes_used=set(data.get("delivery_modes_used") or []),
            last_interaction_at=last_interaction or utc_now(),
        )


@dataclass(frozen=True)
class EvaluationLogEntry:
    """Append-only audit row, written once per judged turn."""
    session_id: str
    evaluation: EvaluationResult
    confidence: EvaluationConfidence
    error_type: Optional[ErrorType]
    question: Optional[str]
    answer: str
    action_taken: ActionType
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "evaluation": self.evaluation.value,
            "confidence": self.confidence.value,
            "error_type": self.error_type.value if self.error_type else None,
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "question_asked": self.question,
            "student_answer": self.answer,
            "action_taken": self.action_taken.value,
        }
