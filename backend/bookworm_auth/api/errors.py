"""Exception handlers rendering the identity error taxonomy as JSON."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from bookworm_auth.core.errors import ErrorCode, IdentityError

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, code: str, details: list | None = None) -> JSONResponse:
    content: dict = {"success": False, "error": message, "code": code}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(IdentityError)
    async def handle_identity_error(request: Request, exc: IdentityError) -> JSONResponse:
        log = logger.warning if exc.status_code in (401, 403) else logger.info
        log("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, exc.code.value)
        return _error_response(exc.status_code, exc.message, exc.code.value)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(400, "Validation failed", ErrorCode.VALIDATION_ERROR.value, details)

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Database failure on %s %s", request.method, request.url.path)
        return _error_response(500, "Internal server error", "INTERNAL_ERROR")
