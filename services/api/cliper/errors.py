"""
Domain error taxonomy and the FastAPI handlers that render it.

Every failure leaves the API as the same JSON envelope:

    {"error": "<message>"}

Managers raise these exceptions; routers never build error responses by hand.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class CliperError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CliperError):
    status_code = 400


class AuthError(CliperError):
    status_code = 401


class NotFound(CliperError):
    status_code = 404


class ConflictError(CliperError):
    # Duplicates are reported as 400 on the public surface
    status_code = 400


class SelfFollow(ValidationError):
    pass


class AlreadyFollowing(ConflictError):
    pass


class NotFollowing(ValidationError):
    pass


class UpstreamError(CliperError):
    status_code = 502


class InternalError(CliperError):
    status_code = 500


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


async def cliper_error_handler(request: Request, exc: CliperError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return _error(400, "Validation failed", details=details)


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # Lost a race against a concurrent insert of the same unique row
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error(ConflictError.status_code, "Conflicting request, please retry")


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return _error(UpstreamError.status_code, "Database unavailable")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CliperError, cliper_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
