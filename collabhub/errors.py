"""
collabhub/errors.py

Error taxonomy for the membership & authorization subsystem.

Every error is terminal for the request (no retries). FastAPI exception
handlers translate them, request validation failures and store failures
into the uniform envelope:

    {"detail": "<message>", "code": <status_code>}

which keeps the same "detail" key FastAPI uses for HTTPException.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError


class CollabError(Exception):
    """Base class for all domain errors surfaced to API callers."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(CollabError):
    status_code = 401


class Forbidden(CollabError):
    status_code = 403


class NotFound(CollabError):
    status_code = 404


class Conflict(CollabError):
    status_code = 409


class InvalidTransition(Conflict):
    """Invitation status change that the lifecycle does not allow."""


class InvalidInput(CollabError):
    status_code = 400


class GateMisconfigured(CollabError):
    """
    Authorization check ran without a resolved ProjectRoleMap.
    This is a server bug, so it is never reported as a plain 403.
    """
    status_code = 500


def error_envelope(message: str, code: int) -> dict:
    return {"detail": message, "code": code}


def validation_message(errors: list) -> str:
    """First validation error as "<location>: <message>"."""
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = first.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def install_error_handlers(app: FastAPI) -> None:
    """
    Register the JSON envelope translation on an app.

    - CollabError subclasses keep their own status code
    - request validation failures become InvalidInput (400)
    - store failures fail the request closed (500)
    """

    @app.exception_handler(CollabError)
    async def _collab_error_handler(request: Request, exc: CollabError) -> JSONResponse:
        if exc.status_code >= 500:
            print(f"[ERROR] {request.method} {request.url.path}: {exc.__class__.__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.message, exc.status_code),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=InvalidInput.status_code,
            content=error_envelope(validation_message(exc.errors()), InvalidInput.status_code),
        )

    @app.exception_handler(SQLAlchemyError)
    async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        print(f"[ERROR] {request.method} {request.url.path}: store failure: {exc.__class__.__name__}")
        return JSONResponse(
            status_code=500,
            content=error_envelope("Store unavailable", 500),
        )
