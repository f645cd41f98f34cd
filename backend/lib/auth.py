"""
Authentication: resolve the calling student from a Supabase access token
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException

from .supabase_client import get_supabase_client

logger = logging.getLogger(__name__)


def bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the token from an Authorization header.

    Raises:
        HTTPException: 401 if the header is missing or not a Bearer token
    """
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header format")

    token = authorization[len("Bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Invalid authorization header format")
    return token


async def get_current_user(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """
    Validate the access token with Supabase and return the student.

    Runs before any session state is touched.

    Returns:
        dict: {"id", "email"}

    Raises:
        HTTPException: 401 if the token is missing, malformed or rejected
    """
    token = bearer_token(authorization)

    try:
        supabase = get_supabase_client()
        user_response = supabase.auth.get_user(token)

        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        user = user_response.user
        return {"id": user.id, "email": user.email}

    except HTTPException:
        raise
    except Exception as e:
        logger.warning(f"⚠️ [Auth] Token validation failed: {e}")
        raise HTTPException(status_code=401, detail="Could not validate credentials")
