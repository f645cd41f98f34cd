"""
Combined Evaluation + Tutor Agent

One chat completion does both jobs:
1. Judge the student's answer (machine-readable <EVALUATION> JSON)
2. Write the tutor's next message (student-facing <TUTOR> text)

The agent never picks the session phase. It reports the action it took;
the orchestrator maps that action to a phase.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from gcse_revision_tutor.config import TutorConfig
from gcse_revision_tutor.delivery_techniques import (
    allowed_techniques,
    build_technique_instructions,
    detect_used_techniques,
)
from gcse_revision_tutor.errors import TutoringUnavailableError
from gcse_revision_tutor.intent_classifier import Intent, intent_guidance, needs_final_answer
from gcse_revision_tutor.models import (
    ActionType,
    ErrorType,
    Evaluation,
    EvaluationConfidence,
    EvaluationResult,
    LearningStyle,
    Phase,
)

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Let's try that again. Can you give it another go?"

_EVALUATION_BLOCK = re.compile(r"<EVALUATION>\s*(.*?)\s*</EVALUATION>", re.DOTALL)
_TUTOR_BLOCK = re.compile(r"<TUTOR>\s*(.*?)\s*</TUTOR>", re.DOTALL)


@dataclass
class TutorContext:
    """Everything the model sees for one turn."""
    student_message: str
    intent: Intent = Intent.SOLUTION
    current_question: Optional[str] = None
    topic_name: Optional[str] = None
    subject_name: Optional[str] = None
    learning_style: Optional[LearningStyle] = None
    attempts: int = 0
    correct_streak: int = 0
    phase: Optional[Phase] = None
    message_history: List[Dict[str, str]] = field(default_factory=list)
    mark_scheme: Optional[str] = None
    # Set while the curriculum diagnostic is still running
    diagnostic_probe: Optional[str] = None


@dataclass
class TutorResult:
    evaluation: Evaluation
    determined_action: ActionType
    tutor_message: str
    used_techniques: List[str] = field(default_factory=list)


def build_style_guidance(learning_style: Optional[LearningStyle]) -> str:
    if not learning_style:
        return "Use clear, simple language appropriate for GCSE level."

    guidance = ["LEARNING STYLE ADAPTATION:"]
    styles = learning_style.primary_styles
    if "visual" in styles:
        guidance.append("- Use spatial language: picture this, imagine, visualise")
    if "auditory" in styles:
        guidance.append("- Use conversational, rhythmic language with memorable phrases")
    if "read_write" in styles:
        guidance.append("- Use precise wording and include definitions where helpful")
    if "kinesthetic" in styles:
        guidance.append("- Focus on practical application and real-world examples")
    if len(guidance) == 1:
        guidance.append("- Use clear, simple language appropriate for GCSE level")
    return "\n".join(guidance)


def build_system_prompt(learning_style: Optional[LearningStyle]) -> str:
    techniques = build_technique_instructions(allowed_techniques(learning_style))
    style = build_style_guidance(learning_style)

    return f"""You are two strictly separated sub-agents inside a GCSE revision system:
1. Answer Evaluation Agent
2. Revision Tutor Agent

Do both tasks, in this order, and keep the roles separate.

PART 1: ANSWER EVALUATION (FIRST)
You only evaluate. You do not explain or encourage.
Classify the student's response:
- correct: shows understanding, minor phrasing issues are fine
- partial: some understanding but incomplete or with minor errors
- incorrect: wrong, or a fundamental misunderstanding
Confidence from the student's wording: high (direct), medium (some hedging), low (speculative).
If not fully correct, give the PRIMARY error type:
recall_gap, concept_gap, confusion, exam_technique or guessing. If correct, error_type is null.
GCSE mark-scheme logic: missing key terms is partial; incorrect definitions are incorrect;
a correct idea with a weak explanation is partial; if unsure between two grades, choose the lower.

<EVALUATION>
{{"evaluation": "correct | partial | incorrect", "confidence": "high | medium | low", "error_type": "recall_gap | concept_gap | confusion | exam_technique | guessing | null"}}
</EVALUATION>

PART 2: REVISION TUTOR (SECOND)
Follow the REQUIRED ACTION given in the session context:
- DIAGNOSTIC_QUESTION: ask the diagnostic question exactly as given. No hints, no teaching.
- INITIAL_QUESTION: ask a foundational GCSE question about the topic.
- RETRY_WITH_HINT: ask the same question again with ONE small hint. Do not give the answer.
- REPHRASE_SIMPLER: rephrase in simpler language or with an analogy, then ask a short follow-up.
- EXTEND_DIFFICULTY: acknowledge the correct answer in one sentence, then ask a harder version.
- CONFIRM_MASTERY: acknowledge progress briefly and ask one quick recall or application question.
- RECOVER_CONFIDENCE: reassure ("this is a common sticking point"), explain from basics, ask an easy question.
- ADVANCE_TOPIC: congratulate in one sentence, introduce the next topic briefly and ask an opening question on it.
- AWAIT_RESPONSE: respond helpfully without giving the answer, then restate the question.

Tutor rules:
- Every response ends with a question
- Do not advance the topic unless the action is ADVANCE_TOPIC
- Do not explain fully unless the action is RECOVER_CONFIDENCE

{style}

{techniques}

<TUTOR>
[Student-facing message. No emojis, no markdown, no meta language.]
</TUTOR>

Output BOTH sections every time: <EVALUATION> first, <TUTOR> second."""


def build_user_prompt(context: TutorContext, fixed_action: Optional[ActionType] = None) -> str:
    lines = ["REVISION SESSION CONTEXT:", ""]
    if context.subject_name:
        lines.append(f"Subject: {context.subject_name}")
    if context.topic_name:
        lines.append(f"Topic: {context.topic_name}")
    lines.append(f"Attempts on current question: {context.attempts}")
    lines.append(f"Correct streak: {context.correct_streak}")
    if context.phase:
        lines.append(f"Phase: {context.phase.value}")
    lines.append(f"Student intent: {context.intent.value}")
    lines.append("")

    if context.current_question:
        lines += ["QUESTION ASKED:", context.current_question, ""]
    else:
        lines += ["QUESTION ASKED: None yet (start of the session)", ""]

    if context.mark_scheme:
        lines += ["MARK SCHEME / SUCCESS CRITERIA:", context.mark_scheme, ""]

    lines += ["STUDENT'S RESPONSE:", context.student_message, ""]

    if context.diagnostic_probe:
        lines += ["DIAGNOSTIC QUESTION TO ASK NEXT:", context.diagnostic_probe, ""]

    if fixed_action is not None:
        lines.append(f"REQUIRED ACTION: {fixed_action.value}")
    else:
        lines.append(
            "REQUIRED ACTION: decide from your evaluation, counting this answer. "
            "correct: EXTEND_DIFFICULTY (CONFIRM_MASTERY at 2 in a row, ADVANCE_TOPIC if the phase is "
            "already consolidation); partial: REPHRASE_SIMPLER (RETRY_WITH_HINT for exam_technique); "
            "incorrect: RECOVER_CONFIDENCE from the 3rd attempt (2nd if guessing), otherwise "
            "REPHRASE_SIMPLER for concept_gap, confusion or guessing and RETRY_WITH_HINT for the rest"
        )
    lines.append("Now produce your <EVALUATION> and <TUTOR> sections.")
    return "\n".join(lines)


def parse_evaluation(response: str) -> Optional[Evaluation]:
    """The <EVALUATION> JSON, or None if it is missing or invalid."""
    match = _EVALUATION_BLOCK.search(response or "")
    if not match:
        return None

    try:
        parsed = json.loads(match.group(1).strip())
        if not isinstance(parsed, dict):
            return None
        evaluation = EvaluationResult(parsed.get("evaluation"))
        confidence = EvaluationConfidence(parsed.get("confidence"))
        raw_error = parsed.get("error_type")
        error_type = ErrorType(raw_error) if raw_error not in (None, "null", "") else None
    except (json.JSONDecodeError, ValueError):
        return None

    if evaluation == EvaluationResult.UNKNOWN:
        return None
    if evaluation == EvaluationResult.CORRECT:
        error_type = None
    return Evaluation(evaluation, confidence, error_type)


def parse_tutor_message(response: str) -> Optional[str]:
    match = _TUTOR_BLOCK.search(response or "")
    if not match:
        return None
    return match.group(1).strip() or None


def determine_action(
    evaluation: Evaluation,
    attempts: int,
    correct_streak: int,
    has_question: bool,
    phase: Optional[Phase] = None,
) -> ActionType:
    """
    Next action from a judgement.

    `attempts` and `correct_streak` are the values before this answer is
    counted; the thresholds below apply once it has been.
    """
    if not has_question:
        return ActionType.INITIAL_QUESTION

    result = evaluation.evaluation
    if result == EvaluationResult.UNKNOWN:
        return ActionType.AWAIT_RESPONSE

    attempts += 1

    if result == EvaluationResult.CORRECT:
        if correct_streak + 1 >= 2:
            # Mastery was confirmed on an earlier turn
            if phase == Phase.CONSOLIDATION:
                return ActionType.ADVANCE_TOPIC
            return ActionType.CONFIRM_MASTERY
        return ActionType.EXTEND_DIFFICULTY

    error_type = evaluation.error_type

    if result == EvaluationResult.PARTIAL:
        if error_type == ErrorType.EXAM_TECHNIQUE:
            return ActionType.RETRY_WITH_HINT
        return ActionType.REPHRASE_SIMPLER

    # incorrect
    if attempts >= 3:
        return ActionType.RECOVER_CONFIDENCE
    if error_type == ErrorType.GUESSING:
        return ActionType.RECOVER_CONFIDENCE if attempts >= 2 else ActionType.REPHRASE_SIMPLER
    if error_type in (ErrorType.CONCEPT_GAP, ErrorType.CONFUSION):
        return ActionType.REPHRASE_SIMPLER
    return ActionType.RETRY_WITH_HINT


def intent_action(intent: Intent, has_question: bool, diagnostic_probe: Optional[str]) -> Optional[ActionType]:
    """
    Action fixed by the turn itself, before any judgement.

    Returns None when the action depends on the evaluation.
    """
    if diagnostic_probe:
        return ActionType.DIAGNOSTIC_QUESTION
    if not has_question or intent == Intent.SKIP:
        return ActionType.INITIAL_QUESTION
    if intent == Intent.UNCERTAINTY:
        return ActionType.REPHRASE_SIMPLER
    if needs_final_answer(intent):
        return ActionType.AWAIT_RESPONSE
    return None


class CombinedTutorAgent:
    """
    Evaluation + tutoring over OpenAI chat completions.

    Only a solution attempt against a pending question can produce a real
    evaluation; everything else is reported as unknown.
    """

    def __init__(self, config: Optional[TutorConfig] = None, client: Optional[Any] = None):
        self.config = config or TutorConfig.from_env()

        if client is None:
            if not self.config.openai_api_key:
                raise ValueError("OPENAI_API_KEY not found in environment variables")
            kwargs: Dict[str, Any] = {"api_key": self.config.openai_api_key}
            if self.config.timeout_seconds is not None:
                kwargs["timeout"] = self.config.timeout_seconds
            client = AsyncOpenAI(**kwargs)

        self.llm_client = client
        self.model = self.config.model

    def build_messages(self, context: TutorContext, fixed_action: Optional[ActionType] = None) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": build_system_prompt(context.learning_style)}]

        window = self.config.history_window
        history = context.message_history[-window:] if window > 0 else []
        for message in history:
            if message.get("role") in ("user", "assistant") and message.get("content"):
                messages.append({"role": message["role"], "content": message["content"]})

        messages.append({"role": "user", "content": build_user_prompt(context, fixed_action)})
        return messages

    async def evaluate_and_tutor(self, context: TutorContext) -> TutorResult:
        """
        Judge the answer and write the next tutor message.

        Raises:
            TutoringUnavailableError: If the completion call fails
        """
        has_question = bool(context.current_question)
        fixed_action = intent_action(context.intent, has_question, context.diagnostic_probe)

        try:
            response = await self.llm_client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(context, fixed_action),
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except Exception as e:
            logger.error(f"❌ [TutorAgent] Completion failed: {e}")
            raise TutoringUnavailableError(str(e)) from e

        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""

        evaluation = parse_evaluation(content)
        if evaluation is None:
            logger.warning("⚠️ [TutorAgent] No valid <EVALUATION> block, treating as unknown")
            evaluation = Evaluation.unknown()

        if not (intent_guidance(context.intent).should_validate and has_question):
            evaluation = Evaluation.unknown()

        tutor_message = parse_tutor_message(content)
        if tutor_message is None:
            logger.warning("⚠️ [TutorAgent] No <TUTOR> block, using retry prompt")
            tutor_message = RETRY_MESSAGE

        action = fixed_action or determine_action(
            evaluation, context.attempts, context.correct_streak, has_question, context.phase
        )

        logger.info(
            f"🤖 [TutorAgent] intent={context.intent.value} "
            f"evaluation={evaluation.evaluation.value} action={action.value}"
        )

        return TutorResult(
            evaluation=evaluation,
            determined_action=action,
            tutor_message=tutor_message,
            used_techniques=detect_used_techniques(tutor_message),
        )
