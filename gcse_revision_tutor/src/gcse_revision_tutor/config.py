"""
Engine configuration loaded from the environment (.env supported).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from gcse_revision_tutor.diagnostic_questions import DEFAULT_SET_SIZE


def _get_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return float(value)


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


@dataclass(frozen=True)
class TutorConfig:
    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 800
    timeout_seconds: Optional[float] = None  # None keeps the client default
    history_window: int = 10
    diagnostic_set_size: int = DEFAULT_SET_SIZE
    stream_chunk_size: int = 24

    @classmethod
    def from_env(cls) -> "TutorConfig":
        """
        Read configuration from environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        load_dotenv()
        load_dotenv('../.env')  # Also try parent directory

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            temperature=_get_float("OPENAI_TEMPERATURE", 0.7),
            max_tokens=_get_int("OPENAI_MAX_TOKENS", 800),
            timeout_seconds=_get_float("OPENAI_TIMEOUT_SECONDS", None),
            history_window=_get_int("REVISION_HISTORY_WINDOW", 10),
            diagnostic_set_size=_get_int("DIAGNOSTIC_SET_SIZE", DEFAULT_SET_SIZE),
            stream_chunk_size=max(1, _get_int("STREAM_CHUNK_SIZE", 24)),
        )
