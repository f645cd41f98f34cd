"""
Revision Turn Orchestrator

Runs one conversational turn in a fixed order:

1. Load the session state (or start a fresh one in memory)
2. Ask the tutor agent to judge the answer and write the reply
3. Count the judgement (only if it is real)
4. Apply the action, its phase and the diagnostic bookkeeping
5. Pick up the question the reply asks
6. Persist the state
7. Persist progress evidence and the audit row (only on real judgements)
8. Hand back the reply for streaming, with decision metadata

Progress is therefore counted at most once per turn. A failure in step 2
aborts the turn before anything is written; failures in 6-7 are logged and
the turn still completes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Mapping, Optional

from gcse_revision_tutor.config import TutorConfig
from gcse_revision_tutor.diagnostic_questions import DiagnosticBank, next_question
from gcse_revision_tutor.errors import (
    PersistenceError,
    SessionOwnershipError,
    TutoringUnavailableError,
)
from gcse_revision_tutor.intent_classifier import Intent, classify, intent_guidance
from gcse_revision_tutor.models import (
    ActionType,
    Evaluation,
    EvaluationLogEntry,
    LearningStyle,
    Phase,
)
from gcse_revision_tutor.progress_evidence import record_evidence
from gcse_revision_tutor.session_manager import SessionManager
from gcse_revision_tutor.session_state import SessionState
from gcse_revision_tutor.state_transitions import (
    ACTION_PHASES,
    confirm_curriculum_position,
    extract_next_question,
    increment_diagnostic_count,
    initialize,
    is_diagnostic_complete,
    next_phase,
    requires_diagnostic,
    reset_question_state,
    update_state_from_evaluation,
    update_state_with_action,
    update_state_with_question,
    update_state_with_topic,
)
from gcse_revision_tutor.tutor_agent import TutorContext, TutorResult

logger = logging.getLogger(__name__)


@dataclass
class TurnInput:
    message: str
    session_id: str
    student_id: str
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None
    subject_id: Optional[str] = None
    subject_code: Optional[str] = None
    subject_name: Optional[str] = None
    learning_style: Optional[LearningStyle] = None
    message_history: List[Dict[str, str]] = field(default_factory=list)
    mark_scheme: Optional[str] = None


@dataclass(frozen=True)
class TurnMetadata:
    """Decision data sent alongside the streamed reply."""
    action: ActionType
    phase: Phase
    evaluation: Evaluation
    delivery_modes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Optional[str]]:
        error_type = self.evaluation.error_type
        return {
            "action": self.action.value,
            "phase": self.phase.value,
            "evaluation": self.evaluation.evaluation.value,
            "confidence": self.evaluation.confidence.value,
            "error_type": error_type.value if error_type else None,
            "delivery_modes": ",".join(self.delivery_modes),
        }

    def to_headers(self) -> Dict[str, str]:
        data = self.to_dict()
        return {
            "X-Action": data["action"],
            "X-Phase": data["phase"],
            "X-Evaluation": data["evaluation"],
            "X-Confidence": data["confidence"],
            "X-Error-Type": data["error_type"] or "none",
            "X-Delivery-Modes": data["delivery_modes"],
        }


@dataclass
class TurnResult:
    tutor_message: str
    metadata: TurnMetadata
    state: SessionState
    intent: Intent
    chunk_size: int = 24

    async def stream(self) -> AsyncIterator[str]:
        """The tutor reply in chunks. State is already persisted when this runs."""
        text = self.tutor_message
        for start in range(0, len(text), self.chunk_size):
            yield text[start:start + self.chunk_size]
            await asyncio.sleep(0)


class RevisionTurnOrchestrator:
    """
    Deterministic turn pipeline around a tutor agent.

    The agent only needs an async `evaluate_and_tutor(TutorContext) -> TutorResult`.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        agent,
        config: Optional[TutorConfig] = None,
        bank: Optional[DiagnosticBank] = None,
        action_phases: Mapping[ActionType, Phase] = ACTION_PHASES,
    ):
        self.sessions = session_manager
        self.agent = agent
        self.config = config or TutorConfig()
        self.bank = bank
        self.action_phases = action_phases

    async def load_or_initialize(self, turn: TurnInput) -> SessionState:
        """Step 1. A missing or unreadable session becomes a fresh in-memory state."""
        try:
            state = await self.sessions.load_state(turn.session_id)
        except PersistenceError as e:
            logger.warning(f"⚠️ [RevisionTurn] Could not load session {turn.session_id}, starting fresh: {e}")
            state = None

        if state is None:
            logger.info(f"🆕 [RevisionTurn] New session {turn.session_id} (topic={turn.topic_name})")
            return initialize(turn.session_id, turn.student_id, turn.topic_id, turn.topic_name)

        if state.student_id != turn.student_id:
            raise SessionOwnershipError(f"Session {turn.session_id} belongs to another student")

        if turn.topic_id and turn.topic_id != state.topic_id:
            logger.info(f"🔀 [RevisionTurn] Topic changed to {turn.topic_name or turn.topic_id}")
            state = update_state_with_topic(state, turn.topic_id, turn.topic_name)

        return state

    def diagnostic_probe(self, state: SessionState, turn: TurnInput) -> Optional[str]:
        """Next probe while the curriculum diagnostic is still running, else None."""
        set_size = self.config.diagnostic_set_size
        if not requires_diagnostic(state) or is_diagnostic_complete(state, set_size):
            return None
        return next_question(
            turn.subject_code,
            state.diagnostic_questions_asked,
            seed=state.session_id,
            count=set_size,
            bank=self.bank,
        )

    def build_context(self, state: SessionState, turn: TurnInput, intent: Intent) -> TutorContext:
        window = self.config.history_window
        return TutorContext(
            student_message=turn.message,
            intent=intent,
            current_question=state.current_question,
            topic_name=state.topic_name or turn.topic_name,
            subject_name=turn.subject_name,
            learning_style=turn.learning_style,
            attempts=state.attempts,
            correct_streak=state.correct_streak,
            phase=state.phase,
            message_history=list(turn.message_history[-window:]) if window > 0 else [],
            mark_scheme=turn.mark_scheme,
            diagnostic_probe=self.diagnostic_probe(state, turn),
        )

    async def call_agent(self, context: TutorContext) -> TutorResult:
        """Step 2. Any failure here is fatal for the turn."""
        try:
            return await self.agent.evaluate_and_tutor(context)
        except TutoringUnavailableError:
            raise
        except Exception as e:
            logger.error(f"❌ [RevisionTurn] Tutor agent failed: {e}")
            raise TutoringUnavailableError(str(e)) from e

    def apply_turn(
        self,
        state: SessionState,
        intent: Intent,
        evaluation: Evaluation,
        action: ActionType,
        tutor_message: str,
    ) -> SessionState:
        """Steps 3-5. Pure."""
        if evaluation.is_real:
            state = update_state_from_evaluation(state, evaluation.evaluation)

        phase = next_phase(action, state.phase, self.action_phases)
        if phase == Phase.DIAGNOSTIC and not requires_diagnostic(state):
            phase = Phase.TEACHING
        state = update_state_with_action(state, action, phase)

        if action == ActionType.DIAGNOSTIC_QUESTION:
            state = increment_diagnostic_count(state)
        elif requires_diagnostic(state) and is_diagnostic_complete(state, self.config.diagnostic_set_size):
            state = confirm_curriculum_position(state)
            logger.info(f"🎯 [RevisionTurn] Curriculum position confirmed for session {state.session_id}")

        if intent == Intent.SKIP:
            state = reset_question_state(state)

        question = extract_next_question(tutor_message)
        if question:
            state = update_state_with_question(state, question)

        return state

    async def handle_turn(self, turn: TurnInput) -> TurnResult:
        """
        Process one student message.

        Raises:
            TutoringUnavailableError: The tutor agent failed; nothing was persisted
            SessionOwnershipError: The session belongs to another student
        """
        state = await self.load_or_initialize(turn)
        asked_question = state.current_question

        intent = classify(turn.message)
        result = await self.call_agent(self.build_context(state, turn, intent))

        evaluation = result.evaluation
        if evaluation.is_real and not (intent_guidance(intent).should_validate and asked_question):
            logger.warning(
                f"⚠️ [RevisionTurn] Ignoring '{evaluation.evaluation.value}' judgement "
                f"for a {intent.value} message"
            )
            evaluation = Evaluation.unknown(evaluation.confidence)

        action = result.determined_action
        state = self.apply_turn(state, intent, evaluation, action, result.tutor_message)

        await self.persist_state(state)

        if evaluation.is_real:
            await asyncio.gather(
                self.persist_evidence(state, turn, evaluation, result.used_techniques),
                self.persist_log(state, turn, evaluation, action, asked_question),
            )

        metadata = TurnMetadata(
            action=action,
            phase=state.phase,
            evaluation=evaluation,
            delivery_modes=sorted(set(result.used_techniques)),
        )
        logger.info(
            f"✅ [RevisionTurn] session={state.session_id} intent={intent.value} "
            f"evaluation={evaluation.evaluation.value} action={action.value} phase={state.phase.value}"
        )
        return TurnResult(
            tutor_message=result.tutor_message,
            metadata=metadata,
            state=state,
            intent=intent,
            chunk_size=self.config.stream_chunk_size,
        )

    async def persist_state(self, state: SessionState) -> None:
        try:
            await self.sessions.save_state(state)
        except Exception as e:
            logger.error(f"❌ [RevisionTurn] Failed to save session state: {e}")

    async def persist_evidence(
        self,
        state: SessionState,
        turn: TurnInput,
        evaluation: Evaluation,
        techniques: List[str],
    ) -> None:
        topic_key = state.topic_id or state.topic_name
        if not topic_key:
            logger.warning(f"⚠️ [RevisionTurn] No topic for session {state.session_id}, progress not recorded")
            return

        try:
            existing = await self.sessions.load_evidence(state.student_id, state.session_id, topic_key)
            evidence = record_evidence(
                existing,
                evaluation.evaluation,
                techniques,
                student_id=state.student_id,
                session_id=state.session_id,
                topic_id=topic_key,
                subject_id=turn.subject_id,
            )
            await self.sessions.save_evidence(evidence)
        except Exception as e:
            logger.error(f"❌ [RevisionTurn] Failed to record progress evidence: {e}")

    async def persist_log(
        self,
        state: SessionState,
        turn: TurnInput,
        evaluation: Evaluation,
        action: ActionType,
        asked_question: Optional[str],
    ) -> None:
        entry = EvaluationLogEntry(
            session_id=state.session_id,
            evaluation=evaluation.evaluation,
            confidence=evaluation.confidence,
            error_type=evaluation.error_type,
            question=asked_question,
            answer=turn.message,
            action_taken=action,
            topic_id=state.topic_id,
            topic_name=state.topic_name,
        )
        try:
            await self.sessions.append_evaluation_log(entry)
        except Exception as e:
            logger.error(f"❌ [RevisionTurn] Failed to append evaluation log: {e}")
