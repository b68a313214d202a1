"""Error taxonomy and the JSON error envelope returned by every API route.

Handlers raise :class:`AppError` (or let a library error escape); the
request middleware in :mod:`bible_quiz.main` turns whatever escapes into::

    {"error": {"type", "message", "statusCode", "timestamp", "requestId", "details"?}}
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    AUTHORIZATION = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND_ERROR"
    CONFLICT = "CONFLICT_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"
    EXTERNAL_API = "EXTERNAL_API_ERROR"
    DATABASE = "DATABASE_ERROR"
    INTERNAL = "INTERNAL_ERROR"


STATUS_CODES = {
    ErrorType.VALIDATION: 400,
    ErrorType.AUTHENTICATION: 401,
    ErrorType.AUTHORIZATION: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.CONFLICT: 409,
    ErrorType.RATE_LIMIT: 429,
    ErrorType.EXTERNAL_API: 502,
    ErrorType.DATABASE: 500,
    ErrorType.INTERNAL: 500,
}


class AppError(Exception):
    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.type = error_type
        self.message = message
        self.status_code = status_code or STATUS_CODES[error_type]
        self.details = details

    @classmethod
    def validation(cls, message: str, details: Any = None) -> "AppError":
        return cls(ErrorType.VALIDATION, message, details=details)

    @classmethod
    def authentication(cls, message: str = "Not authenticated") -> "AppError":
        return cls(ErrorType.AUTHENTICATION, message)

    @classmethod
    def authorization(cls, message: str = "Not allowed") -> "AppError":
        return cls(ErrorType.AUTHORIZATION, message)

    @classmethod
    def not_found(cls, message: str) -> "AppError":
        return cls(ErrorType.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str, details: Any = None) -> "AppError":
        return cls(ErrorType.CONFLICT, message, details=details)

    @classmethod
    def external_api(cls, message: str) -> "AppError":
        return cls(ErrorType.EXTERNAL_API, message)

    @classmethod
    def internal(cls, message: str = "Internal server error", details: Any = None) -> "AppError":
        return cls(ErrorType.INTERNAL, message, details=details)


_HTTP_STATUS_TYPES = {
    400: ErrorType.VALIDATION,
    401: ErrorType.AUTHENTICATION,
    403: ErrorType.AUTHORIZATION,
    404: ErrorType.NOT_FOUND,
    405: ErrorType.NOT_FOUND,
    409: ErrorType.CONFLICT,
    422: ErrorType.VALIDATION,
    429: ErrorType.RATE_LIMIT,
}


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"


def validation_details(exc: RequestValidationError) -> dict:
    errors = []
    for err in exc.errors():
        # drop the leading "body"/"query"/"path" location segment
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in {"body", "query", "path", "cookie", "header"}:
            loc = loc[1:]
        errors.append({"field": ".".join(loc), "message": err.get("msg", ""), "code": err.get("type", "")})
    return {"validationErrors": errors}


def _integrity_error(exc: IntegrityError) -> AppError:
    text = str(exc.orig).lower()
    if "unique" in text or "duplicate" in text:
        return AppError.conflict("Resource already exists")
    if "foreign key" in text:
        return AppError.validation("Referential integrity violation")
    return AppError(ErrorType.DATABASE, "Database error")


def to_app_error(exc: Exception) -> AppError:
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, RequestValidationError):
        return AppError.validation("Invalid input data", details=validation_details(exc))
    if isinstance(exc, IntegrityError):
        return _integrity_error(exc)
    if isinstance(exc, NoResultFound):
        return AppError.not_found("Resource not found")
    if isinstance(exc, SQLAlchemyError):
        return AppError(ErrorType.DATABASE, "Database error")
    if isinstance(exc, StarletteHTTPException):
        error_type = _HTTP_STATUS_TYPES.get(exc.status_code, ErrorType.INTERNAL)
        return AppError(error_type, str(exc.detail), status_code=exc.status_code)
    return AppError.internal(details={"originalMessage": str(exc)})


def error_response(exc: Exception, *, request_id: str, expose_details: bool, context: dict | None = None) -> JSONResponse:
    app_error = to_app_error(exc)
    if app_error is exc or isinstance(exc, (RequestValidationError, StarletteHTTPException)):
        logger.info(
            "Request %s failed with %s (%s): %s %s",
            request_id,
            app_error.type.value,
            app_error.status_code,
            app_error.message,
            context or {},
        )
    else:
        logger.error("Request %s failed with unhandled error %s", request_id, context or {}, exc_info=exc)

    body = {
        "type": app_error.type.value,
        "message": app_error.message,
        "statusCode": app_error.status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "requestId": request_id,
    }
    if app_error.details is not None and (expose_details or app_error.type is ErrorType.VALIDATION):
        body["details"] = app_error.details
    return JSONResponse(
        status_code=app_error.status_code,
        content=jsonable_encoder({"error": body}),
        headers={"X-Request-ID": request_id},
    )
