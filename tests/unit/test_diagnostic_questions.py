"""
Unit Tests for Diagnostic Question Selection

Tests tiered selection, fallbacks and seeded reproducibility.
"""

import pytest
import random
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "gcse_revision_tutor", "src"))

from gcse_revision_tutor.diagnostic_questions import (
    DiagnosticBank,
    default_bank,
    next_question,
    select_diagnostic_set,
)
from gcse_revision_tutor.models import Difficulty

EXPECTED_SUBJECTS = {
    "MATHS", "BIOLOGY", "CHEMISTRY", "PHYSICS", "COMBINED_SCI",
    "ENG_LANG", "ENG_LIT", "HISTORY", "GEOGRAPHY", "CS",
}


@pytest.fixture
def small_bank():
    """Two-tier subject plus the generic fallback."""
    return DiagnosticBank.from_dict({
        "fallback_prompt": "What would you like to focus on?",
        "fallback": [
            {"id": "d1", "question_text": "Fallback one?", "topic_area": "self", "difficulty": "foundation"},
            {"id": "d2", "question_text": "Fallback two?", "topic_area": "self", "difficulty": "foundation"},
        ],
        "subjects": {
            "art": [
                {"id": "a1", "question_text": "Name a primary colour.", "topic_area": "colour", "difficulty": "foundation"},
                {"id": "a2", "question_text": "What is chiaroscuro?", "topic_area": "technique", "difficulty": "core"},
                {"id": "a3", "question_text": "What is a complementary colour?", "topic_area": "colour", "difficulty": "core"},
                {"id": "a4", "question_text": "Define perspective.", "topic_area": "technique", "difficulty": "foundation"},
            ],
        },
    })


class TestDefaultBank:

    def test_all_subjects_loaded(self):
        assert set(default_bank().subject_codes) == EXPECTED_SUBJECTS

    def test_every_subject_has_ten_questions(self):
        bank = default_bank()
        for code in EXPECTED_SUBJECTS:
            assert len(bank.questions_for(code)) == 10, code

    def test_question_ids_unique(self):
        bank = default_bank()
        ids = [q.id for code in bank.subject_codes for q in bank.questions_for(code)]
        assert len(ids) == len(set(ids))

    def test_bank_is_read_only(self):
        bank = default_bank()
        with pytest.raises(TypeError):
            bank._subjects["NEW"] = ()
        assert isinstance(bank.questions_for("MATHS"), tuple)

    def test_has_subject(self):
        bank = default_bank()
        assert bank.has_subject("MATHS")
        assert bank.has_subject("maths")
        assert not bank.has_subject("ASTROLOGY")
        assert not bank.has_subject(None)


class TestSelectDiagnosticSet:

    def test_maths_spans_all_tiers(self):
        selected = select_diagnostic_set("MATHS", 3, rng=random.Random(7))

        assert len(selected) == 3
        assert len({q.id for q in selected}) == 3
        assert [q.difficulty for q in selected] == [Difficulty.FOUNDATION, Difficulty.CORE, Difficulty.HIGHER]

    @pytest.mark.parametrize("seed", range(20))
    def test_maths_spans_all_tiers_for_any_seed(self, seed):
        selected = select_diagnostic_set("MATHS", 3, rng=random.Random(seed))
        assert {q.difficulty for q in selected} == set(Difficulty)

    def test_fills_beyond_tiers_without_repeats(self):
        selected = select_diagnostic_set("MATHS", 8, rng=random.Random(1))
        assert len(selected) == 8
        assert len({q.id for q in selected}) == 8

    def test_count_larger_than_bank(self, small_bank):
        selected = select_diagnostic_set("art", 10, rng=random.Random(0), bank=small_bank)
        assert len(selected) == 4
        assert len({q.id for q in selected}) == 4

    def test_missing_tier_is_skipped(self, small_bank):
        selected = select_diagnostic_set("ART", 2, rng=random.Random(3), bank=small_bank)
        assert [q.difficulty for q in selected] == [Difficulty.FOUNDATION, Difficulty.CORE]

    def test_subject_code_is_case_insensitive(self):
        lower = select_diagnostic_set("maths", 3, rng=random.Random(5))
        upper = select_diagnostic_set("MATHS", 3, rng=random.Random(5))
        assert [q.id for q in lower] == [q.id for q in upper]

    @pytest.mark.parametrize("subject", [None, "", "ASTROLOGY"])
    def test_unknown_subject_uses_fallback(self, subject):
        selected = select_diagnostic_set(subject, 3)
        assert {q.id for q in selected} == {"d1", "d2", "d3"}

    @pytest.mark.parametrize("count", [0, -1])
    def test_non_positive_count(self, count):
        assert select_diagnostic_set("MATHS", count) == []


class TestNextQuestion:

    def test_same_seed_walks_same_set(self):
        texts = [next_question("MATHS", i, seed="session-abc") for i in range(3)]
        again = [next_question("MATHS", i, seed="session-abc") for i in range(3)]

        assert texts == again
        assert len(set(texts)) == 3

    def test_seeded_set_matches_selection(self):
        expected = select_diagnostic_set("MATHS", 3, rng=random.Random("s1"))
        assert next_question("MATHS", 1, seed="s1") == expected[1].question_text

    @pytest.mark.parametrize("index", [-1, 3, 50])
    def test_out_of_range_returns_fallback_prompt(self, index):
        assert next_question("MATHS", index, seed="s1") == default_bank().fallback_prompt

    def test_unknown_subject_returns_self_assessment(self, small_bank):
        assert next_question("history", 0, seed="x", bank=small_bank).startswith("Fallback")

    def test_custom_bank_prompt(self, small_bank):
        assert next_question("ART", 9, bank=small_bank) == "What would you like to focus on?"
