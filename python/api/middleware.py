"""
FastAPI Middleware for the Distributor Onboarding API

Provides CORS configuration, request logging, and global error handling.
Every error leaves the service in the same envelope:
    {"success": false, "message": ..., "error": CODE, "errors": {field: [messages]}}
"""

import os
import re
import time
import logging
import traceback
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from errors import AppError
from security_logger import sanitize_for_logging

logger = logging.getLogger(__name__)

# Default allowed origins for localhost development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",  # Next.js dev port
    "http://localhost:5173",  # Vite dev port
    "http://localhost:8080",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:8080",
]

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_EXPOSE_HEADERS = ["X-Request-ID", "X-Processing-Time-MS"]


def _build_cors_regex_pattern(allowed_origins: List[str]) -> tuple:
    """Build regex pattern for CORS from allowed origins list.

    Args:
        allowed_origins: List of allowed origins (may include wildcards like https://*.example.com)

    Returns:
        Tuple of (combined_regex_pattern or None, exact_origins list)
    """
    regex_patterns = []
    exact_origins = []

    for origin in allowed_origins:
        if "*" in origin:
            # Wildcard matches a single subdomain label
            regex_patterns.append(re.escape(origin).replace(r"\*", r"[\w-]+"))
        else:
            exact_origins.append(origin)

    if not regex_patterns:
        return None, exact_origins

    combined_regex = "|".join(f"({p})" for p in regex_patterns)
    if exact_origins:
        exact_escaped = "|".join(re.escape(o) for o in exact_origins)
        combined_regex = f"({combined_regex})|({exact_escaped})"

    return combined_regex, exact_origins


def setup_cors(app: FastAPI, origins: Optional[List[str]] = None) -> None:
    """Configure CORS middleware for the application.

    Origins come from the CORS_ORIGINS environment variable (comma-separated),
    then the app.cors_origins config list, then localhost defaults.
    """
    cors_origins_env = os.getenv("CORS_ORIGINS", "")
    if cors_origins_env:
        allowed_origins = [origin.strip() for origin in cors_origins_env.split(",")]
    else:
        allowed_origins = origins or DEFAULT_CORS_ORIGINS

    combined_regex, exact_origins = _build_cors_regex_pattern(allowed_origins)

    if combined_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=combined_regex,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
            expose_headers=CORS_EXPOSE_HEADERS,
        )
    else:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=exact_origins,
            allow_credentials=True,
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
            expose_headers=CORS_EXPOSE_HEADERS,
        )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all requests with sanitized inputs."""

    async def dispatch(self, request: Request, call_next: Callable):
        """Process request and log details."""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())

        request.state.request_id = request_id
        request.state.start_time = start_time

        # Sanitize path to prevent log injection
        sanitized_path = sanitize_for_logging(str(request.url.path))
        logger.info(
            "Request: method=%s path=%s request_id=%s",
            request.method,
            sanitized_path,
            sanitize_for_logging(request_id),
        )

        try:
            response = await call_next(request)

            processing_time_ms = int((time.time() - start_time) * 1000)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Processing-Time-MS"] = str(processing_time_ms)

            logger.info(
                "Response: status=%d processing_time_ms=%d request_id=%s",
                response.status_code,
                processing_time_ms,
                sanitize_for_logging(request_id),
            )
            return response

        except Exception as exc:
            processing_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "Request failed: error=%s processing_time_ms=%d request_id=%s",
                sanitize_for_logging(str(exc)),
                processing_time_ms,
                sanitize_for_logging(request_id),
            )
            raise


def _is_development(request: Request) -> bool:
    config = getattr(request.app.state, "config", None)
    return bool(config is not None and config.app.is_development)


def create_error_response(
    code: str,
    message: str,
    status_code: int = 500,
    errors: Optional[Dict[str, List[str]]] = None,
    debug: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a standardized error response.

    Args:
        code: Error code for programmatic handling
        message: Human-readable message
        status_code: HTTP status code
        errors: Field -> list of messages map (optional)
        debug: Exception details, development mode only (optional)

    Returns:
        JSONResponse with the error envelope
    """
    content = {
        "success": False,
        "message": message,
        "error": code,
    }
    if errors:
        content["errors"] = errors
    if debug:
        content["debug"] = debug

    return JSONResponse(status_code=status_code, content=content)


def _debug_block(request: Request, exc: Exception) -> Optional[Dict[str, str]]:
    if not _is_development(request):
        return None
    return {
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


def _field_path(loc) -> str:
    # Drop the leading "body"/"query"/"path" segment
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path", "header", "form"):
        parts = parts[1:]
    return ".".join(parts) or "request"


def validation_errors_map(errors) -> Dict[str, List[str]]:
    """Group pydantic error dicts into {field.path: [messages]}."""
    result: Dict[str, List[str]] = {}
    for err in errors:
        path = _field_path(err.get("loc", ()))
        result.setdefault(path, []).append(err.get("msg", "Invalid value"))
    return result


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handler for the service's own error taxonomy."""
    request_id = getattr(request.state, "request_id", "unknown")
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request error: code=%s status=%d message=%s request_id=%s",
        exc.code,
        exc.status_code,
        sanitize_for_logging(exc.message),
        request_id,
    )

    if exc.status_code == 400 and exc.errors:
        security = getattr(request.app.state, "security", None)
        if security is not None:
            security.log_validation_failure(
                field=",".join(exc.errors),
                error_code=exc.code,
                source=str(request.url.path),
                request_id=request_id,
            )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        errors=exc.errors,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for FastAPI body/query/path validation failures."""
    request_id = getattr(request.state, "request_id", "unknown")
    errors = validation_errors_map(exc.errors())

    logger.warning(
        "Validation failed: fields=%s request_id=%s",
        sanitize_for_logging(",".join(errors)),
        request_id,
    )
    security = getattr(request.app.state, "security", None)
    if security is not None:
        security.log_validation_failure(
            field=",".join(errors),
            error_code="VALIDATION_ERROR",
            source=str(request.url.path),
            request_id=request_id,
        )

    return create_error_response(
        code="VALIDATION_ERROR",
        message="Validation failed",
        status_code=400,
        errors=errors,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique/foreign-key violations that escaped the service layer."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.warning(
        "Integrity error: message=%s request_id=%s",
        sanitize_for_logging(str(exc.orig)),
        request_id,
    )
    return create_error_response(
        code="DUPLICATE_ENTRY",
        message="A record with these values already exists",
        status_code=409,
        debug=_debug_block(request, exc),
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Database unreachable or connection dropped."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(
        "Database error: message=%s request_id=%s",
        sanitize_for_logging(str(exc.orig)),
        request_id,
    )
    return create_error_response(
        code="DATABASE_CONNECTION_ERROR",
        message="Database is unavailable. Please try again later.",
        status_code=503,
        debug=_debug_block(request, exc),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handler for HTTP exceptions.

    Args:
        request: FastAPI request object
        exc: HTTPException that was raised

    Returns:
        Standardized error response
    """
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception: status=%d detail=%s request_id=%s",
        exc.status_code,
        sanitize_for_logging(str(exc.detail)),
        request_id,
    )

    return create_error_response(
        code=f"HTTP_{exc.status_code}",
        message=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        status_code=exc.status_code,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors.

    Sanitizes error messages to prevent information leakage; the exception
    text and stack are only returned in development mode.
    """
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        request_id,
        exc_info=exc,
    )

    if isinstance(exc, HTTPException):
        return await http_exception_handler(request, exc)

    return create_error_response(
        code="INTERNAL_SERVER_ERROR",
        message="An unexpected error occurred. Please try again later.",
        status_code=500,
        debug=_debug_block(request, exc),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the application."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
