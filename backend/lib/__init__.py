"""Backend utilities"""
from .supabase_client import get_supabase_client, is_supabase_configured
from .auth import get_current_user
from .session_locks import SessionLocks

__all__ = ["get_supabase_client", "is_supabase_configured", "get_current_user", "SessionLocks"]
