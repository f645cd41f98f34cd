"""
Curriculum Diagnostic Questions

Probes that position a student in the GCSE curriculum before tutoring begins.
Not revision, not hints: clean questions tagged by difficulty tier.

The bank is static data loaded once from data/diagnostic_questions.json and
exposed read-only. Selection never raises; unknown subjects and out-of-range
indices resolve to fallback data.
"""

import json
import logging
import random
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gcse_revision_tutor.models import DiagnosticQuestion, Difficulty

logger = logging.getLogger(__name__)

DEFAULT_BANK_PATH = Path(__file__).resolve().parent / "data" / "diagnostic_questions.json"
DEFAULT_SET_SIZE = 3
TIER_ORDER = (Difficulty.FOUNDATION, Difficulty.CORE, Difficulty.HIGHER)


class DiagnosticBank:
    """Read-only mapping of subject code -> ordered diagnostic questions."""

    def __init__(
        self,
        subjects: Mapping[str, List[DiagnosticQuestion]],
        fallback: List[DiagnosticQuestion],
        fallback_prompt: str,
    ):
        self._subjects: Mapping[str, Tuple[DiagnosticQuestion, ...]] = MappingProxyType(
            {code.upper(): tuple(questions) for code, questions in subjects.items()}
        )
        self._fallback: Tuple[DiagnosticQuestion, ...] = tuple(fallback)
        self.fallback_prompt = fallback_prompt

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagnosticBank":
        def parse(items: List[Dict[str, str]]) -> List[DiagnosticQuestion]:
            return [
                DiagnosticQuestion(
                    id=item["id"],
                    question_text=item["question_text"],
                    topic_area=item["topic_area"],
                    difficulty=Difficulty(item["difficulty"]),
                )
                for item in items
            ]

        return cls(
            subjects={code: parse(items) for code, items in data["subjects"].items()},
            fallback=parse(data["fallback"]),
            fallback_prompt=data["fallback_prompt"],
        )

    @classmethod
    def load(cls, path: Path = DEFAULT_BANK_PATH) -> "DiagnosticBank":
        with open(path, encoding="utf-8") as f:
            bank = cls.from_dict(json.load(f))
        logger.info(f"📚 [DiagnosticBank] Loaded {len(bank.subject_codes)} subjects from {path.name}")
        return bank

    @property
    def subject_codes(self) -> Tuple[str, ...]:
        return tuple(self._subjects.keys())

    @property
    def fallback(self) -> Tuple[DiagnosticQuestion, ...]:
        return self._fallback

    def has_subject(self, subject_code: Optional[str]) -> bool:
        return bool(subject_code) and subject_code.upper() in self._subjects

    def questions_for(self, subject_code: Optional[str]) -> Tuple[DiagnosticQuestion, ...]:
        """Questions for a subject, or the generic self-assessment set."""
        if self.has_subject(subject_code):
            return self._subjects[subject_code.upper()]
        return self._fallback


@lru_cache(maxsize=1)
def default_bank() -> DiagnosticBank:
    """The packaged bank, loaded once per process."""
    return DiagnosticBank.load()


def select_diagnostic_set(
    subject_code: Optional[str],
    count: int = DEFAULT_SET_SIZE,
    rng: Optional[random.Random] = None,
    bank: Optional[DiagnosticBank] = None,
) -> List[DiagnosticQuestion]:
    """
    Select diagnostic probes covering curriculum breadth.

    One question per available tier (foundation, core, higher) first, then
    uniform-random unused questions until `count` is reached. No question id
    appears twice in one selection.

    Args:
        subject_code: Subject code such as "MATHS" (case-insensitive)
        count: Number of probes wanted
        rng: Random source; pass a seeded instance for reproducible sets
        bank: Question bank (defaults to the packaged bank)

    Returns:
        Ordered list of at most `count` questions
    """
    if count <= 0:
        return []
    rng = rng or random.Random()
    questions = (bank or default_bank()).questions_for(subject_code)

    selected: List[DiagnosticQuestion] = []
    used_ids = set()

    for tier in TIER_ORDER:
        tier_questions = [q for q in questions if q.difficulty == tier and q.id not in used_ids]
        if tier_questions:
            choice = rng.choice(tier_questions)
            selected.append(choice)
            used_ids.add(choice.id)

    while len(selected) < count:
        remaining = [q for q in questions if q.id not in used_ids]
        if not remaining:
            break
        choice = rng.choice(remaining)
        selected.append(choice)
        used_ids.add(choice.id)

    return selected[:count]


def next_question(
    subject_code: Optional[str],
    asked_index: int,
    seed: Optional[str] = None,
    count: int = DEFAULT_SET_SIZE,
    bank: Optional[DiagnosticBank] = None,
) -> str:
    """
    Text of the probe at `asked_index` in the session's diagnostic set.

    The same seed always yields the same set, so a session walks one set
    across turns. Out-of-range indices return the fallback prompt.
    """
    bank = bank or default_bank()
    rng = random.Random(seed) if seed is not None else None
    questions = select_diagnostic_set(subject_code, count, rng=rng, bank=bank)

    if asked_index < 0 or asked_index >= len(questions):
        return bank.fallback_prompt

    return questions[asked_index].question_text
