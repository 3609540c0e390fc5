"""
collabhub/routes_auth.py

Minimal token issuance for the identity collaborator: register, login, me.
Tokens are HS256 JWTs whose "sub" claim is the user id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from collabhub.auth_context import AuthContext, create_access_token, require_auth_context
from collabhub.db import get_db_connection
from collabhub.errors import Unauthenticated
from collabhub.schemas import LoginRequest, RegisterRequest, TokenResponse
from collabhub.users import create_user, find_user_by_email, get_password_hash, verify_password


router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


def _token_for(user) -> TokenResponse:
    access_token = create_access_token({"sub": str(user.id), "email": user.email})
    return TokenResponse(access_token=access_token, user=user.model_dump())


@router.post("/register", response_model=TokenResponse)
def register(req: RegisterRequest) -> TokenResponse:
    with get_db_connection() as conn:
        user = create_user(
            conn,
            email=req.email,
            password=req.password,
            first_name=req.first_name,
            last_name=req.last_name,
            display_name=req.display_name,
        )
    return _token_for(user)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest) -> TokenResponse:
    with get_db_connection() as conn:
        password_hash = get_password_hash(conn, req.email)
        if password_hash is None or not verify_password(req.password, password_hash):
            print("[LOGIN] Invalid credentials")
            raise Unauthenticated("Invalid credentials")
        user = find_user_by_email(conn, req.email)
    print(f"[LOGIN] Token issued: user_id={user.id}")
    return _token_for(user)


@router.get("/me")
def me(ctx: AuthContext = Depends(require_auth_context)) -> dict:
    return ctx.model_dump()
