"""
Delivery Techniques

Maps learning styles to the teaching techniques the tutor is allowed to use.
The mapping lives in code rather than in the prompt so it can be enforced
and recorded as progress evidence.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from gcse_revision_tutor.models import LearningStyle

TECHNIQUES_BY_STYLE: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "visual": ("imagery", "diagram_description", "flashcard"),
    "read_write": ("flashcard", "definition", "exam_style"),
    "auditory": ("audio_explanation", "spoken_prompt"),
    "kinesthetic": ("step_sequence", "real_world_action"),
})

# Used when no learning style is known, or none of its styles map to anything
DEFAULT_TECHNIQUES: Tuple[str, ...] = ("definition", "flashcard", "step_sequence")


@dataclass(frozen=True)
class TechniqueBehavior:
    description: str
    allowed: Tuple[str, ...]
    forbidden: Tuple[str, ...]


TECHNIQUE_BEHAVIOR: Mapping[str, TechniqueBehavior] = MappingProxyType({
    "imagery": TechniqueBehavior(
        "Describe visual scenarios and mental pictures",
        (
            "Use phrases like 'picture this', 'imagine', 'visualise'",
            "Describe what things look like spatially",
        ),
        ("Suggest listening tasks",),
    ),
    "diagram_description": TechniqueBehavior(
        "Describe diagrams in text",
        (
            "Describe layouts with spatial language (left, right, above, flows to)",
            "Sketch a simple text diagram if it helps",
        ),
        ("Assume the student can see an actual image",),
    ),
    "flashcard": TechniqueBehavior(
        "Question and answer flashcards",
        (
            'Output flashcards as JSON: {"type": "flashcard", "front": "...", "back": "..."}',
            "Keep each card short and testable",
        ),
        ("Write long essay-style content",),
    ),
    "definition": TechniqueBehavior(
        "Precise textbook definitions",
        (
            "Use bullet point definitions",
            "Explain technical terms",
        ),
        ("Use vague wording",),
    ),
    "exam_style": TechniqueBehavior(
        "Mark scheme language and exam technique",
        (
            "Say how marks are awarded",
            "Use command words (describe, explain, evaluate)",
        ),
        ("Be casual",),
    ),
    "audio_explanation": TechniqueBehavior(
        "Spoken, listenable language",
        (
            "Keep sentences short",
            "Write the way you would say it out loud",
        ),
        ("Reference diagrams or visuals", "Use bullet points"),
    ),
    "spoken_prompt": TechniqueBehavior(
        "Conversational prompts",
        (
            "Use memorable phrases",
            "Ask questions conversationally",
        ),
        ("Lecture",),
    ),
    "step_sequence": TechniqueBehavior(
        "Numbered steps",
        (
            "Number each step (Step 1, Step 2, ...)",
            "Lead each step with a verb",
        ),
        ("Dump information without structure",),
    ),
    "real_world_action": TechniqueBehavior(
        "Practical, real-world application",
        (
            "Connect the idea to something the student could do in real life",
        ),
        ("Stay abstract",),
    ),
})

_STEP_NUMBER = re.compile(r"step\s*\d", re.IGNORECASE)
_FIRST_THEN_FINALLY = re.compile(r"first.*then.*finally", re.IGNORECASE | re.DOTALL)

# technique -> lowercase keywords that show it was used
_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "imagery": ("picture", "imagine", "visualise", "visualize"),
    "flashcard": ("flashcard",),
    "audio_explanation": ("listen", "audio", "out loud"),
    "real_world_action": ("in real life", "real world", "hands-on"),
    "exam_style": ("mark scheme", "marks", "exam"),
    "definition": ("definition", "defined as", "means that"),
})


def allowed_techniques(learning_style: Optional[LearningStyle]) -> List[str]:
    """Techniques allowed for a learning style, in style order without duplicates."""
    if not learning_style:
        return list(DEFAULT_TECHNIQUES)

    techniques: List[str] = []
    for style in learning_style.primary_styles:
        for technique in TECHNIQUES_BY_STYLE.get(style, ()):
            if technique not in techniques:
                techniques.append(technique)

    return techniques or list(DEFAULT_TECHNIQUES)


def build_technique_instructions(techniques: List[str]) -> str:
    """Prompt block describing what each allowed technique may and may not do."""
    lines = ["ALLOWED DELIVERY TECHNIQUES:", ""]

    for technique in techniques:
        behavior = TECHNIQUE_BEHAVIOR.get(technique)
        if behavior is None:
            continue
        lines.append(f"{technique.upper()}: {behavior.description}")
        lines.extend(f"  - You may: {item}" for item in behavior.allowed)
        lines.extend(f"  - You must not: {item}" for item in behavior.forbidden)
        lines.append("")

    lines.append("Use ONLY the techniques listed above.")
    return "\n".join(lines)


def detect_used_techniques(response: str) -> List[str]:
    """
    Techniques that appear in a tutor response, by keyword.

    Crude by nature: the result is recorded as evidence of delivery modes,
    not used for any decision.
    """
    if not response:
        return []

    lower = response.lower()
    used = [technique for technique, words in _KEYWORDS.items() if any(w in lower for w in words)]

    if "flashcard" not in used and ('"front"' in response or '"back"' in response):
        used.append("flashcard")
    if _STEP_NUMBER.search(response) or _FIRST_THEN_FINALLY.search(lower):
        used.append("step_sequence")

    return sorted(used)
