"""
Supabase client for the revision backend

One service-role client per process, shared by the record store (session
state, progress evidence, evaluation log) and token validation.
"""
import logging
import os
from typing import Optional, Tuple

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()
load_dotenv('../.env')  # Also try parent directory

logger = logging.getLogger(__name__)

# Older deployments used the long variable name
SERVICE_KEY_VARS = ("SUPABASE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY")

_supabase_client: Optional[Client] = None


def _credentials() -> Tuple[Optional[str], Optional[str]]:
    url = os.getenv("SUPABASE_URL")
    key = next((os.getenv(name) for name in SERVICE_KEY_VARS if os.getenv(name)), None)
    return url, key


def is_supabase_configured() -> bool:
    """True when both the project URL and a service key are set."""
    url, key = _credentials()
    return bool(url and key)


def get_supabase_client() -> Client:
    """
    Get or create the shared Supabase client.

    Raises:
        ValueError: If SUPABASE_URL or the service key is missing
    """
    global _supabase_client

    if _supabase_client is None:
        url, key = _credentials()
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in environment")

        _supabase_client = create_client(url, key)
        logger.info(f"🔌 [Supabase] Client created for {url}")

    return _supabase_client
