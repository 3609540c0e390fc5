# ---------------------------------------------------------
# collabhub/main.py
# CollabHub - project collaboration backend
#
# Run: uvicorn collabhub.main:app --reload (from repo root)
#
# - FastAPI + SQLAlchemy (SQLite in dev, PostgreSQL via DATABASE_URL)
# - /auth/*                         : register, login, me
# - /projects                       : list / create / search projects
# - /projects/{id}                  : details, update, soft delete
# - /projects/{id}/members          : invite, remove, leave, change role
# - /projects/{id}/invitation       : accept / decline an invitation
# ---------------------------------------------------------

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from collabhub.config import CORS_ORIGINS, IS_PROD
from collabhub.errors import install_error_handlers
from collabhub.migrate import run_migrations
from collabhub.routes_auth import router as auth_router
from collabhub.routes_members import router as members_router
from collabhub.routes_projects import router as projects_router


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="CollabHub Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(members_router)

run_migrations()


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
