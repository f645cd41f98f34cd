"""
Session State Transitions

Pure functions over SessionState. Each takes a state and returns a new one;
nothing here touches storage. The orchestrator reads state once, applies
these in a fixed order, and writes once.
"""

import re
from dataclasses import replace
from types import MappingProxyType
from typing import Mapping, Optional

from gcse_revision_tutor.diagnostic_questions import DEFAULT_SET_SIZE
from gcse_revision_tutor.models import ActionType, EvaluationResult, Phase
from gcse_revision_tutor.session_state import SessionState

# Action -> phase. Actions not listed keep the current phase.
ACTION_PHASES: Mapping[ActionType, Phase] = MappingProxyType({
    ActionType.DIAGNOSTIC_QUESTION: Phase.DIAGNOSTIC,
    # These regress to teaching whatever the current phase
    ActionType.INITIAL_QUESTION: Phase.TEACHING,
    ActionType.ADVANCE_TOPIC: Phase.TEACHING,
    ActionType.RECOVER_CONFIDENCE: Phase.TEACHING,
    ActionType.RETRY_WITH_HINT: Phase.PRACTICE,
    ActionType.REPHRASE_SIMPLER: Phase.PRACTICE,
    ActionType.EXTEND_DIFFICULTY: Phase.PRACTICE,
    ActionType.CONFIRM_MASTERY: Phase.CONSOLIDATION,
})

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def initialize(
    session_id: str,
    student_id: str,
    topic_id: Optional[str] = None,
    topic_name: Optional[str] = None,
    position_confirmed: bool = False,
) -> SessionState:
    """Fresh state for a new session. Diagnostic first unless the position is already known."""
    return SessionState(
        session_id=session_id,
        student_id=student_id,
        topic_id=topic_id,
        topic_name=topic_name,
        attempts=0,
        correct_streak=0,
        phase=Phase.TEACHING if position_confirmed else Phase.DIAGNOSTIC,
        curriculum_position_confirmed=position_confirmed,
        diagnostic_questions_asked=0,
    )


def requires_diagnostic(state: SessionState) -> bool:
    return not state.curriculum_position_confirmed


def is_diagnostic_complete(state: SessionState, set_size: int = DEFAULT_SET_SIZE) -> bool:
    return state.curriculum_position_confirmed or state.diagnostic_questions_asked >= set_size


def increment_diagnostic_count(state: SessionState) -> SessionState:
    """Count one more probe. Frozen once the curriculum position is confirmed."""
    if state.curriculum_position_confirmed:
        return state
    return replace(state, diagnostic_questions_asked=state.diagnostic_questions_asked + 1)


def confirm_curriculum_position(state: SessionState) -> SessionState:
    """Mark the diagnostic as done. Idempotent."""
    if state.curriculum_position_confirmed:
        return state
    phase = Phase.TEACHING if state.phase == Phase.DIAGNOSTIC else state.phase
    return replace(state, curriculum_position_confirmed=True, phase=phase)


def update_state_from_evaluation(state: SessionState, evaluation: EvaluationResult) -> SessionState:
    """
    Apply one judged answer.

    This is the only transition that touches attempts and the streak.
    An unknown evaluation leaves the state unchanged.
    """
    evaluation = EvaluationResult(evaluation)
    if evaluation == EvaluationResult.UNKNOWN:
        return state

    return replace(
        state,
        attempts=state.attempts + 1,
        correct_streak=state.correct_streak + 1 if evaluation == EvaluationResult.CORRECT else 0,
        last_evaluation=evaluation,
    )


def next_phase(
    action: ActionType,
    current_phase: Phase,
    table: Mapping[ActionType, Phase] = ACTION_PHASES,
) -> Phase:
    """Phase after taking `action`. The model cannot choose the phase directly."""
    return table.get(ActionType(action), current_phase)


def update_state_with_action(
    state: SessionState,
    action: ActionType,
    phase: Optional[Phase] = None,
) -> SessionState:
    if phase is None:
        phase = next_phase(action, state.phase)
    return replace(state, last_action=ActionType(action), phase=Phase(phase))


def update_state_with_question(
    state: SessionState,
    question: str,
    expected_answer_hint: Optional[str] = None,
) -> SessionState:
    return replace(state, current_question=question, expected_answer_hint=expected_answer_hint)


def update_state_with_topic(state: SessionState, topic_id: str, topic_name: Optional[str]) -> SessionState:
    """Switch topic. Per-topic counters and the pending question start over."""
    return replace(
        state,
        topic_id=topic_id,
        topic_name=topic_name,
        attempts=0,
        correct_streak=0,
        last_evaluation=None,
        current_question=None,
        expected_answer_hint=None,
    )


def reset_question_state(state: SessionState) -> SessionState:
    """
    Drop the pending question and its attempt count (used when the student skips).

    The correct streak and diagnostic progress belong to the session and are kept.
    """
    return replace(state, current_question=None, expected_answer_hint=None, attempts=0)


def extract_next_question(tutor_message: Optional[str]) -> Optional[str]:
    """
    The question the student is now expected to answer.

    Splits the message into sentences ending in '.', '!' or '?' and returns
    the last one that ends with '?', or None.
    """
    if not tutor_message:
        return None

    sentences = [s.strip() for s in _SENTENCE_BOUNDARY.split(tutor_message.strip())]
    questions = [s for s in sentences if s.endswith("?")]
    return questions[-1] if questions else None
