"""
Error handling and sanitization

- Gateway/database messages are sanitized before reaching the client
- Stack traces are logged only, never returned
- StorefrontError instances render as {"error": message}
"""
import logging
import traceback
from typing import Union

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.core.config import settings
from storefront.core.exceptions import StorefrontError

logger = logging.getLogger(__name__)

# Patterns that indicate internal/sensitive error information
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "api key",
    "api_key",
    "sk_live",
    "sk_test",
    "credential",
    "sqlalchemy",
    "asyncpg",
    "aiosqlite",
    "postgresql",
    "sqlite",
    "traceback",
    "file \"",
]

GENERIC_MESSAGE = "An internal error occurred. Please try again later."


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """
    Sanitize an error message for safe client exposure.

    Gateway messages are otherwise passed through as-is (declines, invalid
    payment method, etc.) so the shopper can act on them.
    """
    if isinstance(error, str):
        message = error
    else:
        message = str(error)

    if settings.DEBUG:
        return message

    if is_sensitive_error(message):
        return GENERIC_MESSAGE

    if len(message) > 200:
        return message[:200] + "..."

    return message


def error_response(error: StorefrontError) -> JSONResponse:
    """Render a storefront error as the API's {"error": ...} body."""
    return JSONResponse(
        status_code=error.http_status,
        content={"error": sanitize_error_message(error.message)},
    )


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Exception handler for StorefrontErrors that escape a route."""
    logger.warning(
        f"Storefront error on {request.method} {request.url.path}: {exc.to_dict()}"
    )
    return error_response(exc)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Keep HTTPException bodies in the same {"error": ...} shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except HTTPException:
            raise
        except Exception as e:
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            if settings.DEBUG:
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": str(e),
                        "type": type(e).__name__,
                        "error_id": error_id,
                    }
                )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "An unexpected error occurred. Please try again later.",
                    "error_id": error_id,
                }
            )
