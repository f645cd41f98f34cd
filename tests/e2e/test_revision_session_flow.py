"""
End-to-End Tests for a Revision Session

Runs the real agent, orchestrator and session manager together. Only the
chat completion client is replaced, with scripted model output.

Tests:
- Uncertainty leaves progress untouched
- A correct answer is counted once, in state and in evidence
- The diagnostic hands over to teaching
- Subject progress reflects the session
- Repeated wrong answers switch to confidence recovery
"""

import pytest
import sys
import os
from types import SimpleNamespace
from typing import List

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "gcse_revision_tutor", "src"))

from gcse_revision_tutor.config import TutorConfig
from gcse_revision_tutor.models import Phase
from gcse_revision_tutor.progress_evidence import aggregate_by_subject
from gcse_revision_tutor.session_manager import EVALUATION_LOG_TABLE, PROGRESS_TABLE, SessionManager
from gcse_revision_tutor.tutor_agent import CombinedTutorAgent
from gcse_revision_tutor.turn_orchestrator import RevisionTurnOrchestrator, TurnInput


def model_output(evaluation: str, tutor: str, confidence: str = "high", error_type: str = "null") -> str:
    return (
        "<EVALUATION>\n"
        f'{{"evaluation": "{evaluation}", "confidence": "{confidence}", "error_type": {error_type}}}\n'
        "</EVALUATION>\n"
        f"<TUTOR>\n{tutor}\n</TUTOR>"
    )


class ScriptedCompletions:
    """Chat completions stand-in that replays model outputs in order."""

    def __init__(self, outputs: List[str]):
        self.outputs = list(outputs)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        content = self.outputs.pop(0)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class RevisionSession:
    """Drives turns for one student and session, like the web client would."""

    def __init__(self, outputs: List[str], set_size: int = 3):
        self.completions = ScriptedCompletions(outputs)
        client = SimpleNamespace(chat=SimpleNamespace(completions=self.completions))
        config = TutorConfig(openai_api_key="test-key", diagnostic_set_size=set_size)
        self.sessions = SessionManager()
        self.engine = RevisionTurnOrchestrator(
            self.sessions,
            CombinedTutorAgent(config=config, client=client),
            config=config,
        )
        self.history = []

    async def send(self, message: str):
        result = await self.engine.handle_turn(TurnInput(
            message=message,
            session_id="s1",
            student_id="student-1",
            topic_id="quadratics",
            topic_name="Quadratics",
            subject_id="maths",
            subject_code="MATHS",
            subject_name="Maths",
            message_history=list(self.history),
        ))
        reply = "".join([chunk async for chunk in result.stream()])
        self.history += [{"role": "user", "content": message}, {"role": "assistant", "content": reply}]
        return result, reply

    def rows(self, table):
        return self.sessions.store.rows(table)


class TestRevisionSessionFlow:

    @pytest.mark.asyncio
    async def test_uncertainty_then_correct_answer(self):
        session = RevisionSession([
            model_output("incorrect", "No problem. Let's find your level. Solve x^2 - 5x + 6 = 0, what are the roots?",
                         confidence="low", error_type='"guessing"'),
            model_output("correct", "Great. Next one: what is 15% of 80?"),
        ])

        first, reply = await session.send("I don't know")

        assert reply.endswith("what are the roots?")
        assert first.metadata.evaluation.evaluation.value == "unknown"
        assert first.state.attempts == 0
        assert session.rows(PROGRESS_TABLE) == []
        assert session.rows(EVALUATION_LOG_TABLE) == []

        second, _ = await session.send("x = 2 or x = 3")

        assert second.metadata.evaluation.evaluation.value == "correct"
        assert second.state.attempts == 1
        assert second.state.correct_streak == 1

        [progress] = session.rows(PROGRESS_TABLE)
        assert progress["topic_id"] == "quadratics"
        assert progress["understanding_state"] == "strengthening"
        assert progress["attempts"] == 1

        [log] = session.rows(EVALUATION_LOG_TABLE)
        assert log["question_asked"] == "Solve x^2 - 5x + 6 = 0, what are the roots?"

        # Prior turns reach the model as chat history
        messages = session.completions.requests[1]["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_diagnostic_hands_over_to_teaching(self):
        session = RevisionSession([
            model_output("correct", "Welcome. What is 15% of 80?"),
            model_output("correct", "Thanks. Expand (x + 2)(x + 3). What do you get?"),
            model_output("partial", "Nearly. Think about the middle term. What is 2x + 3x?", confidence="medium",
                         error_type='"recall_gap"'),
        ], set_size=2)

        first, _ = await session.send("hello")
        assert first.metadata.action.value == "DIAGNOSTIC_QUESTION"
        assert first.state.phase == Phase.DIAGNOSTIC

        second, _ = await session.send("12")
        assert second.metadata.action.value == "DIAGNOSTIC_QUESTION"
        assert second.state.diagnostic_questions_asked == 2

        third, _ = await session.send("x^2 + 6x + 6")
        assert third.state.curriculum_position_confirmed
        assert third.metadata.action.value == "REPHRASE_SIMPLER"
        assert third.state.phase == Phase.PRACTICE
        assert third.metadata.to_headers()["X-Error-Type"] == "recall_gap"

    @pytest.mark.asyncio
    async def test_two_correct_answers_secure_the_topic(self):
        session = RevisionSession([
            model_output("correct", "Let's begin. What is 15% of 80?"),
            model_output("correct", "Good. What is 3 squared?"),
            model_output("correct", "Excellent. What is 4 squared?"),
        ], set_size=1)

        await session.send("hi")
        await session.send("12")
        third, _ = await session.send("9")

        assert third.metadata.action.value == "CONFIRM_MASTERY"
        assert third.state.phase == Phase.CONSOLIDATION

        rows = await session.sessions.list_progress("student-1")
        [maths] = aggregate_by_subject(rows)
        assert maths.subject_id == "maths"
        assert maths.secure_count == 1
        assert maths.progress_percentage == 100
        assert maths.understanding_level == "secure"

    @pytest.mark.asyncio
    async def test_third_wrong_answer_recovers_confidence(self):
        wrong = model_output("incorrect", "Not quite. Which two numbers multiply to 6 and add to 5?",
                             confidence="medium", error_type='"concept_gap"')
        session = RevisionSession([
            model_output("correct", "Let's begin. Solve x^2 - 5x + 6 = 0, what are the roots?"),
            wrong, wrong, wrong,
        ], set_size=1)

        await session.send("hi")
        turns = [await session.send("5") for _ in range(3)]

        assert [(r.state.attempts, r.metadata.action.value) for r, _ in turns] == [
            (1, "REPHRASE_SIMPLER"),
            (2, "REPHRASE_SIMPLER"),
            (3, "RECOVER_CONFIDENCE"),
        ]
        assert turns[-1][0].state.phase == Phase.TEACHING
        assert len(session.rows(EVALUATION_LOG_TABLE)) == 3
