"""
Unit Tests for backend helpers: Supabase configuration, bearer tokens, session locks
"""

import asyncio
import logging
import pytest
import sys
import os

from fastapi import HTTPException

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "../.."))
sys.path.insert(0, project_root)

from backend.lib import supabase_client
from backend.lib.auth import bearer_token
from backend.lib.logger import get_logger
from backend.lib.session_locks import SessionLocks


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("SUPABASE_URL",) + supabase_client.SERVICE_KEY_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(supabase_client, "_supabase_client", None)
    return monkeypatch


class TestSupabaseConfiguration:

    def test_unconfigured(self, clean_env):
        assert not supabase_client.is_supabase_configured()
        with pytest.raises(ValueError):
            supabase_client.get_supabase_client()

    def test_service_key(self, clean_env):
        clean_env.setenv("SUPABASE_URL", "https://example.supabase.co")
        clean_env.setenv("SUPABASE_SERVICE_KEY", "key")
        assert supabase_client.is_supabase_configured()

    def test_legacy_key_name(self, clean_env):
        clean_env.setenv("SUPABASE_URL", "https://example.supabase.co")
        clean_env.setenv("SUPABASE_SERVICE_ROLE_KEY", "key")
        assert supabase_client.is_supabase_configured()

    def test_url_alone_is_not_enough(self, clean_env):
        clean_env.setenv("SUPABASE_URL", "https://example.supabase.co")
        assert not supabase_client.is_supabase_configured()


class TestBearerToken:

    def test_extracts_token(self):
        assert bearer_token("Bearer abc.def") == "abc.def"

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "bearer abc"])
    def test_rejected(self, header):
        with pytest.raises(HTTPException) as exc_info:
            bearer_token(header)
        assert exc_info.value.status_code == 401


class TestSessionLocks:

    @pytest.mark.asyncio
    async def test_turns_on_one_session_are_serialized(self):
        locks = SessionLocks()
        async with locks.hold("s1") as lock:
            assert lock.locked()
            async with locks.hold("s2") as other:
                assert other is not lock
        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_second_turn_waits_for_first(self):
        locks = SessionLocks()
        order = []

        async def turn(name, delay):
            async with locks.hold("s1"):
                order.append(f"{name} start")
                await asyncio.sleep(delay)
                order.append(f"{name} end")

        await asyncio.gather(turn("first", 0.01), turn("second", 0))

        assert order == ["first start", "first end", "second start", "second end"]

    @pytest.mark.asyncio
    async def test_lock_dropped_after_turn(self):
        locks = SessionLocks()
        for i in range(100):
            async with locks.hold(f"s{i}"):
                assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_kept_while_a_turn_is_waiting(self):
        locks = SessionLocks()
        release = asyncio.Event()

        async def first():
            async with locks.hold("s1"):
                await release.wait()

        async def second():
            async with locks.hold("s1"):
                pass

        tasks = [asyncio.ensure_future(first()), asyncio.ensure_future(second())]
        await asyncio.sleep(0)
        assert len(locks) == 1

        release.set()
        await asyncio.gather(*tasks)
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_dropped_when_turn_fails(self):
        locks = SessionLocks()
        with pytest.raises(RuntimeError):
            async with locks.hold("s1"):
                raise RuntimeError("agent down")
        assert len(locks) == 0


class TestStructuredLogger:

    def test_debug_carries_data(self, caplog):
        logger = get_logger("backend.test")
        with caplog.at_level(logging.DEBUG, logger="backend.test"):
            logger.debug("Session lock released", data={"session_id": "s1"})
        [record] = caplog.records
        assert record.levelno == logging.DEBUG
        assert "Session lock released" in record.getMessage()
