"""
collabhub/auth_context.py

Shared authentication context primitives for FastAPI dependency injection.

Contains:
- AuthContext: Immutable identity of the caller for one request
- require_auth_context: FastAPI dependency for auth enforcement
- create_access_token / verify_token: JWT helpers

This module MUST NOT import collabhub.main to avoid circular dependencies.
"""

from __future__ import annotations

import time
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from collabhub.config import ACCESS_TOKEN_MINUTES, ALGORITHM, IS_DEV, SECRET_KEY
from collabhub.db import get_db_connection
from collabhub.errors import Unauthenticated
from collabhub.users import get_user

# auto_error=False so a missing header becomes our 401 envelope, not FastAPI's default
security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------
# JWT Token Helpers
# ---------------------------------------------------------
def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    now = int(time.time())
    payload = dict(data)
    payload.setdefault("iat", now)
    payload.setdefault("exp", now + 60 * (expires_minutes or ACCESS_TOKEN_MINUTES))
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        Unauthenticated: If token is expired or invalid
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")


# ---------------------------------------------------------
# AuthContext
# ---------------------------------------------------------
class AuthContext(BaseModel):
    """
    Identity of the authenticated caller, derived from the JWT and the users table.
    Never trust user ids from request bodies or query params.
    """
    user_id: int
    email: str
    display_name: Optional[str] = None

    class Config:
        frozen = True


def require_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    """
    Auth context dependency for FastAPI routes.

    Process:
    1. Verify JWT token signature and expiration
    2. Extract user_id from the "sub" claim
    3. Fetch user record from database (source of truth)

    Raises:
        Unauthenticated: If the header is missing, the token is invalid or
            expired, or the user no longer exists
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Missing bearer token")

    payload = verify_token(credentials.credentials)
    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        print("[AUTH] Missing or malformed user id in token payload")
        raise Unauthenticated("Invalid token payload")

    with get_db_connection() as conn:
        user = get_user(conn, user_id)

    if user is None:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise Unauthenticated("User not found")

    ctx = AuthContext(user_id=user.id, email=user.email, display_name=user.display_name)
    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}")
    return ctx
