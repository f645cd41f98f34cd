"""
Intent Classifier

Classifies a student message BEFORE any correctness judgement so that
explanations, questions and "I don't know" are never marked as wrong answers.

Purely syntactic and subject-agnostic: no I/O, no state.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Pattern


class Intent(str, Enum):
    SOLUTION = "solution"        # Direct answer attempt
    EXPLANATION = "explanation"  # Showing working/reasoning
    UNCERTAINTY = "uncertainty"  # Doesn't know
    QUESTION = "question"        # Asking for clarification
    SKIP = "skip"                # Wants to move on
    META = "meta"                # Greeting, thanks, off-topic


class NextStateMode(str, Enum):
    AWAIT_INPUT = "await_input"
    RECORD = "record"


@dataclass(frozen=True)
class IntentGuidance:
    should_validate: bool
    response_action: str
    next_state: NextStateMode


def _compile(patterns: List[str]) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


UNCERTAINTY_PATTERNS = _compile([
    r"^i\s*(don'?t|do\s*not)\s*know",
    r"^i\s*dunno",
    r"^dunno",
    r"^idk\b",
    r"^no\s*(idea|clue)",
    r"^not\s*sure",
    r"^i('m|\s*am)\s*not\s*sure",
    r"^i\s*(have\s*)?no\s*(idea|clue)",
    r"^(i\s*)?(can'?t|cannot)\s*(remember|recall)",
    r"^i\s*(forgot|forget)",
    r"^pass$",
    r"^\?+$",
])

SKIP_PATTERNS = _compile([
    r"^(skip|next|move\s*on)\b",
    r"can\s*we\s*(skip|move\s*on)",
    r"let'?s\s*(skip|move\s*on)",
    r"i\s*want\s*to\s*(skip|move\s*on)",
    r"different\s*(question|topic|one)",
    r"try\s*(something|another|a\s*different)",
])

# Explicit requests for clarification
QUESTION_PATTERNS = _compile([
    r"^what\s+(do\s+you\s+mean|does\s+that\s+mean|is\s+that)",
    r"^(can|could)\s+you\s+(explain|clarify|help|repeat)",
    r"^how\s+(do|does|should|would)",
    r"^why\s+(do|does|is|are|should)",
    r"^i\s*don'?t\s*understand",
    r"^what'?s\s+(a|an|the)\b",
])

EXPLANATION_MARKERS = _compile([
    r"\b(because|since|therefore|so\s+that|which\s+means)\b",
    r"\b(if\s+you|when\s+you|first\s+you|then\s+you)\b",
    r"\bif\b.+\bthen\b",
    r"\b(by\s+using|by\s+substitut|by\s+factor|by\s+expand)",
    r"\b(the\s+reason|this\s+means|this\s+shows|this\s+gives)\b",
    r"\b(i\s+would|you\s+would|we\s+would)\s+(start|begin|first)",
    r"\b(step\s+1|step\s+one|first\s+step|to\s+solve\s+this)\b",
    r"\b(working|method|approach|process)\b",
    r"\b(substitute|factorise|factorize|expand|simplify|rearrange)\b",
])

META_PATTERNS = _compile([
    r"^(hi|hello|hey|hiya)\b",
    r"^(thanks|thank\s*you|cheers|ta)\b",
    r"^(ok|okay|sure|yes|no|yep|nope|yeah|nah)$",
    r"^(good|great|cool|nice|awesome)$",
    r"^(bye|goodbye|see\s*you|later)\b",
])

# Short direct-answer shapes
ANSWER_PATTERNS = _compile([
    r"^-?\d+(\.\d+)?$",                         # 5, -3, 2.5
    r"^-?\d+(\.\d+)?\s*%$",                     # 12%
    r"^[a-z]\s*=\s*-?\d+",                      # x = 5
    r"^-?\d+\s*(,|or|and)\s*-?\d+",             # 2, 4 / 2 or 4
    r"^\(?[a-z]\s*[+\-]\s*\d+\)?\s*\(?[a-z]",   # (x+2)(x-3)
    r"^(true|false)$",
    r"^[a-e]$",                                 # multiple choice
    r"^(yes|no)$",
])

# "is it 5?" hedges an answer rather than asking a question
ANSWER_HEDGE = re.compile(
    r"^(is\s+it|is\s+the\s+answer|could\s+it\s+be|would\s+it\s+be|it'?s|it\s+is|maybe|i\s+think\s+it'?s)\s+",
    re.IGNORECASE,
)

MIN_EXPLANATION_LENGTH = 20


def _normalise(message: str) -> str:
    return message.replace("’", "'").replace("‘", "'").strip()


def looks_like_answer(text: str) -> bool:
    """True if text (question mark already stripped) has a short direct-answer shape."""
    candidate = text.strip().lower()
    candidate = ANSWER_HEDGE.sub("", candidate).strip()
    return any(p.search(candidate) for p in ANSWER_PATTERNS)


def classify(message: str) -> Intent:
    """
    Classify the intent of a student message.

    Priority order (first match wins):
    1. Empty -> uncertainty
    2. Uncertainty
    3. Skip
    4. Question (trailing '?' and not a hedged answer)
    5. Meta
    6. Explanation (reasoning markers, not an answer shape, long enough)
    7. Solution (default)
    """
    trimmed = _normalise(message or "")
    lower = trimmed.lower()

    if not trimmed:
        return Intent.UNCERTAINTY

    bare = lower.rstrip(" .!")
    if any(p.search(lower) or p.search(bare) for p in UNCERTAINTY_PATTERNS):
        return Intent.UNCERTAINTY

    if any(p.search(lower) for p in SKIP_PATTERNS):
        return Intent.SKIP

    if lower.endswith("?"):
        if any(p.search(lower) for p in QUESTION_PATTERNS):
            return Intent.QUESTION
        if not looks_like_answer(lower.rstrip("?")):
            return Intent.QUESTION

    if any(p.search(bare) for p in META_PATTERNS):
        return Intent.META

    has_reasoning = any(p.search(lower) for p in EXPLANATION_MARKERS)
    if has_reasoning and not looks_like_answer(lower) and len(trimmed) > MIN_EXPLANATION_LENGTH:
        return Intent.EXPLANATION

    return Intent.SOLUTION


_GUIDANCE = {
    Intent.SOLUTION: IntentGuidance(True, "VALIDATE_AND_RESPOND", NextStateMode.RECORD),
    Intent.EXPLANATION: IntentGuidance(False, "ACKNOWLEDGE_REASONING", NextStateMode.AWAIT_INPUT),
    Intent.UNCERTAINTY: IntentGuidance(False, "PROVIDE_SCAFFOLDING", NextStateMode.AWAIT_INPUT),
    Intent.QUESTION: IntentGuidance(False, "ANSWER_QUESTION", NextStateMode.AWAIT_INPUT),
    Intent.SKIP: IntentGuidance(False, "SKIP_TO_NEXT", NextStateMode.RECORD),
    Intent.META: IntentGuidance(False, "BRIEF_ACKNOWLEDGE", NextStateMode.AWAIT_INPUT),
}


def intent_guidance(intent: Intent) -> IntentGuidance:
    """How the tutor should treat a message of this intent."""
    return _GUIDANCE[intent]


def needs_final_answer(intent: Intent) -> bool:
    return intent in (Intent.EXPLANATION, Intent.QUESTION, Intent.META)
