"""
Progress Evidence

Write side: fold one judged answer into the per-(student, session, topic)
evidence row. Read side: fold raw rows into subject-level summaries for the
progress dashboard.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from gcse_revision_tutor.models import (
    EvaluationResult,
    ProgressEvidence,
    UnderstandingState,
    utc_now,
)

SECURE_THRESHOLD = 2
STRENGTHENING_THRESHOLD = 1

_COUNTER_FOR = {
    EvaluationResult.CORRECT: "correct_count",
    EvaluationResult.INCORRECT: "incorrect_count",
    EvaluationResult.PARTIAL: "partial_count",
}


def understanding_state_for(correct_count: int) -> UnderstandingState:
    """Mastery label from accumulated correct answers: 0 building, 1 strengthening, 2+ secure."""
    if correct_count >= SECURE_THRESHOLD:
        return UnderstandingState.SECURE
    if correct_count >= STRENGTHENING_THRESHOLD:
        return UnderstandingState.STRENGTHENING
    return UnderstandingState.BUILDING


def record_evidence(
    existing: Optional[ProgressEvidence],
    evaluation: EvaluationResult,
    techniques_used: Iterable[str],
    *,
    student_id: str,
    session_id: str,
    topic_id: str,
    subject_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ProgressEvidence:
    """
    Evidence row after one judged answer.

    Args:
        existing: Current row for the key, or None on the first judged answer
        evaluation: correct, partial or incorrect
        techniques_used: Delivery techniques used this turn
        student_id, session_id, topic_id: The row key
        subject_id: Subject the topic belongs to (kept from the first write if omitted)
        now: Interaction timestamp

    Returns:
        The new row. `existing` is not modified.

    Raises:
        ValueError: If evaluation is unknown (nothing was judged)
    """
    evaluation = EvaluationResult(evaluation)
    if evaluation == EvaluationResult.UNKNOWN:
        raise ValueError("Progress evidence is only recorded for judged answers")

    now = now or utc_now()
    techniques: Set[str] = set(techniques_used or ())
    counter = _COUNTER_FOR[evaluation]

    if existing is None:
        row = ProgressEvidence(
            student_id=student_id,
            session_id=session_id,
            topic_id=topic_id,
            subject_id=subject_id,
            attempts=1,
            last_evaluation=evaluation,
            delivery_modes_used=techniques,
            last_interaction_at=now,
        )
        row = replace(row, **{counter: 1})
        return replace(row, understanding_state=understanding_state_for(row.correct_count))

    row = replace(
        existing,
        subject_id=existing.subject_id or subject_id,
        attempts=existing.attempts + 1,
        last_evaluation=evaluation,
        delivery_modes_used=set(existing.delivery_modes_used) | techniques,
        last_interaction_at=now,
    )
    row = replace(row, **{counter: getattr(existing, counter) + 1})
    return replace(row, understanding_state=understanding_state_for(row.correct_count))


@dataclass
class SubjectProgress:
    """Subject-level summary (computed, never persisted)."""
    subject_id: str
    secure_count: int = 0
    strengthening_count: int = 0
    building_count: int = 0
    total_topics: int = 0
    progress_percentage: int = 0
    understanding_level: str = "not_started"
    last_interaction_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "secure_count": self.secure_count,
            "strengthening_count": self.strengthening_count,
            "building_count": self.building_count,
            "total_topics": self.total_topics,
            "progress_percentage": self.progress_percentage,
            "understanding_level": self.understanding_level,
            "last_interaction_at": self.last_interaction_at,
        }


@dataclass
class _SubjectTally:
    topics: Set[str] = field(default_factory=set)
    secure: int = 0
    strengthening: int = 0
    building: int = 0
    last_interaction: Optional[datetime] = None
    last_interaction_raw: Optional[str] = None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def subject_label(secure: int, strengthening: int, building: int) -> str:
    """Majority rule, ties resolved towards the weaker label."""
    if secure + strengthening + building == 0:
        return "not_started"
    if secure > strengthening and secure > building:
        return UnderstandingState.SECURE.value
    if strengthening >= building:
        return UnderstandingState.STRENGTHENING.value
    return UnderstandingState.BUILDING.value


def aggregate_by_subject(rows: Iterable[Dict[str, Any]]) -> List[SubjectProgress]:
    """
    Fold raw revision_progress rows into one summary per subject.

    Rows without a subject are skipped. Topics are deduplicated by topic_id
    (the first row seen for a topic decides its state); a missing topic id
    counts as a single "unknown" topic.
    """
    tallies: Dict[str, _SubjectTally] = {}

    for row in rows:
        subject_id = row.get("subject_id")
        if not subject_id:
            continue

        tally = tallies.setdefault(subject_id, _SubjectTally())

        topic_key = row.get("topic_id") or "unknown"
        if topic_key not in tally.topics:
            tally.topics.add(topic_key)
            state = row.get("understanding_state")
            if state == UnderstandingState.SECURE.value:
                tally.secure += 1
            elif state == UnderstandingState.STRENGTHENING.value:
                tally.strengthening += 1
            else:
                tally.building += 1

        seen_at = _parse_timestamp(row.get("last_interaction_at"))
        if seen_at and (tally.last_interaction is None or seen_at > tally.last_interaction):
            tally.last_interaction = seen_at
            raw = row.get("last_interaction_at")
            tally.last_interaction_raw = raw.isoformat() if isinstance(raw, datetime) else str(raw)

    summaries = []
    for subject_id, tally in tallies.items():
        total = len(tally.topics)
        summaries.append(SubjectProgress(
            subject_id=subject_id,
            secure_count=tally.secure,
            strengthening_count=tally.strengthening,
            building_count=tally.building,
            total_topics=total,
            progress_percentage=round(tally.secure / total * 100) if total else 0,
            understanding_level=subject_label(tally.secure, tally.strengthening, tally.building),
            last_interaction_at=tally.last_interaction_raw,
        ))
    return summaries
