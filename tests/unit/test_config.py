"""
Unit Tests for TutorConfig
"""

import pytest
import sys
import os

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, os.path.join(project_root, "gcse_revision_tutor", "src"))

from gcse_revision_tutor.config import TutorConfig

ENV_VARS = (
    "OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_TEMPERATURE", "OPENAI_MAX_TOKENS",
    "OPENAI_TIMEOUT_SECONDS", "REVISION_HISTORY_WINDOW", "DIAGNOSTIC_SET_SIZE", "STREAM_CHUNK_SIZE",
)


@pytest.fixture
def env(monkeypatch):
    # Set every variable so a local .env file cannot leak into the test
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
    return monkeypatch


class TestTutorConfig:

    def test_defaults(self, env):
        config = TutorConfig.from_env()
        assert config.openai_api_key is None
        assert config.model == "gpt-4o-mini"
        assert config.temperature == 0.7
        assert config.max_tokens == 800
        assert config.timeout_seconds is None
        assert config.history_window == 10
        assert config.diagnostic_set_size == 3
        assert config.stream_chunk_size == 24

    def test_overrides(self, env):
        env.setenv("OPENAI_API_KEY", "sk-test")
        env.setenv("OPENAI_MODEL", "gpt-4o")
        env.setenv("OPENAI_TEMPERATURE", "0.2")
        env.setenv("OPENAI_TIMEOUT_SECONDS", "15")
        env.setenv("REVISION_HISTORY_WINDOW", "6")
        env.setenv("DIAGNOSTIC_SET_SIZE", "5")

        config = TutorConfig.from_env()

        assert config.openai_api_key == "sk-test"
        assert config.model == "gpt-4o"
        assert config.temperature == 0.2
        assert config.timeout_seconds == 15.0
        assert config.history_window == 6
        assert config.diagnostic_set_size == 5

    def test_chunk_size_at_least_one(self, env):
        env.setenv("STREAM_CHUNK_SIZE", "0")
        assert TutorConfig.from_env().stream_chunk_size == 1

    def test_bad_number(self, env):
        env.setenv("OPENAI_MAX_TOKENS", "lots")
        with pytest.raises(ValueError):
            TutorConfig.from_env()
