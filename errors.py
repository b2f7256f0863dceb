import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from database import settings

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base for every error the API reports on purpose.

    The response body is ``{"error": reason, "message": message, **extra}``.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    reason = "internal_error"

    def __init__(self, message, reason=None, status_code=None, **extra):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self):
        body = {"error": self.reason, "message": self.message}
        body.update(self.extra)
        return body


class ValidationFailed(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    reason = "validation_error"


class Unauthorized(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    reason = "invalid_token"


class Forbidden(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    reason = "forbidden"


class NotFound(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    reason = "not_found"


class Conflict(APIError):
    status_code = status.HTTP_409_CONFLICT
    reason = "conflict"


class Internal(APIError):
    pass


async def api_error_handler(request: Request, exc: APIError):
    headers = None
    if isinstance(exc, Unauthorized):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Report every failing field, not only the first one
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append({"field": field or "body", "message": error.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "validation_error", "message": "Invalid request", "details": details},
    )


def _internal_response(exc: Exception):
    error = Internal("Internal server error")
    if settings.ENVIRONMENT == "development":
        error.extra["detail"] = str(exc)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return _internal_response(exc)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _internal_response(exc)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
