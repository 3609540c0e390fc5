# collabhub/config.py
# Environment-aware configuration for the CollabHub backend

import os
from typing import FrozenSet, Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT configuration
SECRET_KEY = os.environ.get("SECRET_KEY", "collabhub-dev-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", "60"))

# Database configuration
# DATABASE_URL takes precedence (postgresql://... in staging/prod)
# Falls back to a SQLite file for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "collabhub.db")

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

extra_origins = os.environ.get("CORS_ORIGINS", "")
if extra_origins and not IS_DEV:
    CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

# Notification delivery
# When unset, notifications are only printed (dev)
NOTIFY_WEBHOOK_URL = os.environ.get("NOTIFY_WEBHOOK_URL", "").strip()
NOTIFY_TIMEOUT_SECONDS = float(os.environ.get("NOTIFY_TIMEOUT_SECONDS", "3"))
# Failed rows are retried until this many attempts
NOTIFY_MAX_ATTEMPTS = int(os.environ.get("NOTIFY_MAX_ATTEMPTS", "5"))
# A claim older than this is treated as abandoned (crashed worker)
NOTIFY_CLAIM_TIMEOUT_SECONDS = int(os.environ.get("NOTIFY_CLAIM_TIMEOUT_SECONDS", "300"))


def _role_set(env_name: str, default: str) -> FrozenSet[str]:
    raw = os.environ.get(env_name, default)
    return frozenset(r.strip().upper() for r in raw.split(",") if r.strip())


# Project role policies (role names, validated against ProjectRole in rbac.py)
PROJECT_EDIT_ROLES = _role_set("PROJECT_EDIT_ROLES", "OWNER,ADMIN,WRITE")
PROJECT_DELETE_ROLES = _role_set("PROJECT_DELETE_ROLES", "OWNER")
MEMBER_MANAGE_ROLES = _role_set("MEMBER_MANAGE_ROLES", "OWNER,ADMIN")

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if DATABASE_URL.startswith(('postgres://', 'postgresql://')) else 'SQLite (local dev)'}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
print(f"[CONFIG] Notifications: {'webhook' if NOTIFY_WEBHOOK_URL else 'log only'}")
