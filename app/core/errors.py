"""
Error handling for the Dekop store API

Typed application errors, their HTTP mapping and the exception handlers
registered on the FastAPI app. In production client-facing messages are
replaced with safe texts; in development the original message and details
are returned.
"""
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .config import settings

logger = logging.getLogger(__name__)


NO_INDEX_HEADERS = {
    "X-Robots-Tag": "noindex",
    "Cache-Control": "no-store, no-cache, must-revalidate",
}


class ErrorType(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    AUTHENTICATION = "AUTHENTICATION_ERROR"
    AUTHORIZATION = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    PAYMENT = "PAYMENT_ERROR"
    DATABASE = "DATABASE_ERROR"
    EXTERNAL_API = "EXTERNAL_API_ERROR"
    INTERNAL = "INTERNAL_ERROR"
    RATE_LIMIT = "RATE_LIMIT_ERROR"


STATUS_CODES = {
    ErrorType.VALIDATION: 400,
    ErrorType.AUTHENTICATION: 401,
    ErrorType.AUTHORIZATION: 403,
    ErrorType.NOT_FOUND: 404,
    ErrorType.PAYMENT: 402,
    ErrorType.DATABASE: 500,
    ErrorType.EXTERNAL_API: 502,
    ErrorType.INTERNAL: 500,
    ErrorType.RATE_LIMIT: 429,
}

SAFE_MESSAGES = {
    ErrorType.VALIDATION: "Невірні дані запиту",
    ErrorType.AUTHENTICATION: "Помилка автентифікації",
    ErrorType.AUTHORIZATION: "Недостатньо прав доступу",
    ErrorType.NOT_FOUND: "Ресурс не знайдено",
    ErrorType.PAYMENT: "Помилка обробки платежу",
    ErrorType.DATABASE: "Помилка бази даних",
    ErrorType.EXTERNAL_API: "Помилка зовнішнього сервісу",
    ErrorType.INTERNAL: "Внутрішня помилка сервера",
    ErrorType.RATE_LIMIT: "Перевищено ліміт запитів",
}


class AppError(Exception):
    """Operational error with a known type and HTTP status"""

    def __init__(self, error_type: ErrorType, message: str, details: Any = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.type = error_type
        self.message = message
        self.details = details
        self.status_code = status_code or STATUS_CODES.get(error_type, 500)


def validation_error(message: str, details: Any = None) -> AppError:
    return AppError(ErrorType.VALIDATION, message, details)


def not_found_error(resource: str) -> AppError:
    return AppError(ErrorType.NOT_FOUND, f"{resource} not found")


def payment_error(message: str, details: Any = None) -> AppError:
    return AppError(ErrorType.PAYMENT, message, details)


def database_error(message: str = "Database operation failed") -> AppError:
    return AppError(ErrorType.DATABASE, message)


def external_api_error(message: str, details: Any = None) -> AppError:
    return AppError(ErrorType.EXTERNAL_API, message, details)


def sanitize_error_message(message: str, error_type: ErrorType) -> str:
    """Return the raw message in development, a safe one otherwise"""
    if settings.is_development:
        return message
    return SAFE_MESSAGES.get(error_type, "Виникла помилка при обробці запиту")


def create_error_response(error: Exception) -> JSONResponse:
    """Build the JSON error body for any exception"""
    if isinstance(error, AppError):
        error_type = error.type
        status_code = error.status_code
        message = error.message
    else:
        error_type = ErrorType.INTERNAL
        status_code = STATUS_CODES[error_type]
        message = str(error) or "Unknown error occurred"

    logger.error(f"Error occurred ({error_type.value}, {status_code}): {message}")

    content = {
        "error": error_type.value,
        "message": sanitize_error_message(message, error_type),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if isinstance(error, AppError):
        content["code"] = error_type.value

    if settings.is_development:
        details = {"originalMessage": message}
        if isinstance(error, AppError) and error.details is not None:
            details["errorDetails"] = error.details
        content["details"] = details

    return JSONResponse(status_code=status_code, content=content, headers=NO_INDEX_HEADERS)


# ============================================================================
# Input sanitization
# ============================================================================

_TAG_RE = re.compile(r"<[^>]*>")


def sanitize_input(value: Any) -> Any:
    """Strip HTML tags from strings, recursing into dicts and lists"""
    if isinstance(value, str):
        return _TAG_RE.sub("", value.strip()).replace("<", "").replace(">", "")
    if isinstance(value, list):
        return [sanitize_input(item) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_input(item) for key, item in value.items()}
    return value


def format_validation_errors(errors: list) -> dict:
    """Flatten pydantic errors into {"field.path": "message"}"""
    formatted = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        key = ".".join(loc) or "body"
        formatted.setdefault(key, err.get("msg", "Invalid value"))
    return formatted


# ============================================================================
# Exception handlers
# ============================================================================

async def app_error_handler(request: Request, exc: AppError):
    return create_error_response(exc)


async def http_exception_handler(request: Request, exc: HTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "errors": format_validation_errors(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return create_error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
