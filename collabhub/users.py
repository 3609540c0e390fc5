"""
collabhub/users.py

User directory: lookup by id or by email, plus registration helpers.
Used by the auth layer and to resolve invitation targets.
"""

from __future__ import annotations

import hashlib
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from collabhub.db import execute_query
from collabhub.errors import Conflict
from collabhub.models import User

USER_COLUMNS = "id, email, first_name, last_name, display_name, created_at"


def now_iso() -> str:
    return datetime.utcnow().isoformat()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str, password_hash: str) -> bool:
    return hash_password(password) == password_hash


def _row_to_user(row) -> Optional[User]:
    if row is None:
        return None
    return User(**dict(row._mapping))


def get_user(conn, user_id: int) -> Optional[User]:
    row = execute_query(
        conn,
        f"SELECT {USER_COLUMNS} FROM users WHERE id = :id",
        {"id": user_id},
    ).fetchone()
    return _row_to_user(row)


def find_user_by_email(conn, email: str) -> Optional[User]:
    row = execute_query(
        conn,
        f"SELECT {USER_COLUMNS} FROM users WHERE email = :email",
        {"email": normalize_email(email)},
    ).fetchone()
    return _row_to_user(row)


def get_password_hash(conn, email: str) -> Optional[str]:
    row = execute_query(
        conn,
        "SELECT password_hash FROM users WHERE email = :email",
        {"email": normalize_email(email)},
    ).fetchone()
    return row.password_hash if row else None


def create_user(
    conn,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    display_name: Optional[str] = None,
) -> User:
    """
    Insert a new user. Email is normalized to lower case.

    Raises:
        Conflict: If the email is already registered
    """
    email_norm = normalize_email(email)
    if not display_name:
        display_name = " ".join(p for p in (first_name, last_name) if p) or email_norm.split("@")[0]

    try:
        user_id = execute_query(
            conn,
            """
            INSERT INTO users (email, password_hash, first_name, last_name, display_name, created_at)
            VALUES (:email, :password_hash, :first_name, :last_name, :display_name, :created_at)
            RETURNING id
            """,
            {
                "email": email_norm,
                "password_hash": hash_password(password),
                "first_name": first_name,
                "last_name": last_name,
                "display_name": display_name,
                "created_at": now_iso(),
            },
        ).scalar_one()
    except IntegrityError:
        print(f"[REGISTER] Duplicate email rejected: {email_norm!r}")
        raise Conflict("Email already registered")

    print(f"[REGISTER] User created with id={user_id}")
    return get_user(conn, user_id)
