"""
Unit Tests for Delivery Techniques
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "gcse_revision_tutor", "src"))

from gcse_revision_tutor.delivery_techniques import (
    DEFAULT_TECHNIQUES,
    TECHNIQUE_BEHAVIOR,
    TECHNIQUES_BY_STYLE,
    allowed_techniques,
    build_technique_instructions,
    detect_used_techniques,
)
from gcse_revision_tutor.models import LearningStyle


class TestAllowedTechniques:

    def test_no_style_uses_defaults(self):
        assert allowed_techniques(None) == list(DEFAULT_TECHNIQUES)

    def test_single_style(self):
        style = LearningStyle(visual=70, primary_styles=["visual"])
        assert allowed_techniques(style) == ["imagery", "diagram_description", "flashcard"]

    def test_multimodal_deduplicates(self):
        style = LearningStyle(primary_styles=["visual", "read_write"], is_multimodal=True)
        techniques = allowed_techniques(style)
        assert techniques.count("flashcard") == 1
        assert set(techniques) == {"imagery", "diagram_description", "flashcard", "definition", "exam_style"}

    def test_unknown_style_falls_back(self):
        assert allowed_techniques(LearningStyle(primary_styles=["telepathic"])) == list(DEFAULT_TECHNIQUES)

    def test_every_mapped_technique_has_behaviour(self):
        for techniques in TECHNIQUES_BY_STYLE.values():
            for technique in techniques:
                assert technique in TECHNIQUE_BEHAVIOR


class TestLearningStyleFromDict:

    def test_camel_case_keys(self):
        style = LearningStyle.from_dict({"visual": 40, "readWrite": 35, "primaryStyles": ["visual"], "isMultimodal": True})
        assert style.read_write == 35
        assert style.primary_styles == ["visual"]
        assert style.is_multimodal is True

    def test_empty_is_none(self):
        assert LearningStyle.from_dict(None) is None
        assert LearningStyle.from_dict({}) is None


class TestInstructions:

    def test_lists_only_allowed(self):
        text = build_technique_instructions(["imagery", "step_sequence"])
        assert "IMAGERY:" in text
        assert "STEP_SEQUENCE:" in text
        assert "FLASHCARD:" not in text

    def test_unknown_technique_ignored(self):
        text = build_technique_instructions(["juggling"])
        assert "JUGGLING" not in text


class TestDetectUsedTechniques:

    @pytest.mark.parametrize("response,technique", [
        ("Picture a ball rolling down a hill. Which way does it go?", "imagery"),
        ("Step 1: expand the brackets. What do you get?", "step_sequence"),
        ("First square it, then add 3, finally halve it.", "step_sequence"),
        ("In the exam, this is worth 2 marks.", "exam_style"),
        ("Osmosis is defined as the movement of water.", "definition"),
        ("Think about this in real life: a cup of tea cooling.", "real_world_action"),
        ('{"type": "flashcard", "front": "Q", "back": "A"}', "flashcard"),
        ("Say it out loud.", "audio_explanation"),
    ])
    def test_keyword_detection(self, response, technique):
        assert technique in detect_used_techniques(response)

    def test_plain_response(self):
        assert detect_used_techniques("What is 7 times 8?") == []

    def test_empty(self):
        assert detect_used_techniques("") == []

    def test_sorted_and_unique(self):
        used = detect_used_techniques("Imagine the picture. Step 1 then step 2.")
        assert used == sorted(set(used))
