# linkedbud/auth/session.py
from typing import Any, Dict, Optional

from fastapi import Request
from jose import jwt, exceptions as jose_errors

from linkedbud.config import settings
from linkedbud.errors import AuthenticationError, ConfigurationError

SESSION_COOKIE = "sb-access-token"
AUDIENCE = "authenticated"
ALGS = ["HS256"]

def _bearer(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None

def decode_session_token(token: str) -> Dict[str, Any]:
    if not settings.supabase_jwt_secret:
        raise ConfigurationError("SUPABASE_JWT_SECRET is not configured")
    try:
        return jwt.decode(token, settings.supabase_jwt_secret, algorithms=ALGS, audience=AUDIENCE)
    except jose_errors.JWTError:
        raise AuthenticationError()

def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: the Supabase user id (`sub`) of the session."""
    token = _bearer(request) or request.cookies.get(SESSION_COOKIE)
    if not token:
        raise AuthenticationError()
    sub = decode_session_token(token).get("sub")
    if not sub:
        raise AuthenticationError()
    return str(sub)
