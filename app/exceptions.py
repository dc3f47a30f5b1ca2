"""
RFC 7807 Problem Details exception handling.

Every error response of the API is an `application/problem+json` body.
Audience domain errors are mapped to HTTP statuses here, so services raise
plain domain exceptions and never build responses themselves.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from datetime import datetime, timezone

from app.middleware.request_id import generate_id, request_id_ctx
from app.services.audience.errors import (
    AudienceError,
    AudienceResolutionError,
    CampaignNotFound,
    SegmentNotFound,
    StoreError,
    StoreTimeout,
)

logger = logging.getLogger(__name__)


def _get_trace_id() -> str:
    """Request ID of the current request, or a fresh one outside a request."""
    return request_id_ctx.get() or generate_id()


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorCode(str, Enum):
    """Standardized error codes for the audience API."""

    # Authentication
    UNAUTHORIZED = "AUTH_001"

    # Validation
    VALIDATION_ERROR = "VAL_001"

    # Resource
    NOT_FOUND = "RES_001"
    SEGMENT_NOT_FOUND = "RES_002"
    CAMPAIGN_NOT_FOUND = "RES_003"

    # Audience resolution
    AUDIENCE_RESOLUTION_FAILED = "AUD_001"

    # Subscriber store
    STORE_ERROR = "EXT_001"
    STORE_TIMEOUT = "EXT_002"

    # Server
    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Request ID for tracing in logs
        errors: List of field-level validation errors (for 422)
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type"
    )
    title: str = Field(
        description="Short, human-readable summary of the problem"
    )
    status: int = Field(
        description="HTTP status code"
    )
    detail: str = Field(
        description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        default=None,
        description="URI reference for this specific occurrence"
    )
    code: str = Field(
        description="Machine-readable error code"
    )
    timestamp: str = Field(
        description="ISO 8601 timestamp"
    )
    trace_id: str = Field(
        description="Request ID for debugging"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Field-level validation errors"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "/problems/res-002",
                "title": "Not Found",
                "status": 404,
                "detail": "Segment 7f3c was not found",
                "instance": "/api/v2/segments/7f3c/audience",
                "code": "RES_002",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456"
            }
        }
    }


def _problem_type(code: ErrorCode) -> str:
    return f"/problems/{code.value.lower().replace('_', '-')}"


def _default_title(status_code: int) -> str:
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        404: "Not Found",
        422: "Validation Error",
        500: "Internal Server Error",
        503: "Service Unavailable",
        504: "Gateway Timeout",
    }
    return titles.get(status_code, "Error")


class APIException(HTTPException):
    """
    Base exception for the API with RFC 7807 support.

    Usage:
        raise APIException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Merchant not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or _default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _utc_timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


class NotFoundError(APIException):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
        )


class UnauthorizedError(APIException):
    """Authentication required (401)."""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


# Domain error -> (status, code). Order matters: subclasses before their bases.
AUDIENCE_ERROR_MAP = [
    (SegmentNotFound, 404, ErrorCode.SEGMENT_NOT_FOUND),
    (CampaignNotFound, 404, ErrorCode.CAMPAIGN_NOT_FOUND),
    (StoreTimeout, 504, ErrorCode.STORE_TIMEOUT),
    (StoreError, 503, ErrorCode.STORE_ERROR),
    (AudienceResolutionError, 503, ErrorCode.AUDIENCE_RESOLUTION_FAILED),
]


def map_audience_error(exc: AudienceError) -> tuple[int, ErrorCode]:
    for error_type, status_code, code in AUDIENCE_ERROR_MAP:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, ErrorCode.INTERNAL_ERROR


# Exception handlers for FastAPI

def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=_default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    return JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )


def create_exception_handlers() -> Dict[str, Any]:
    """
    Create the exception handlers.

    Usage in main.py:
        handlers = create_exception_handlers()
        app.add_exception_handler(AudienceError, handlers["audience"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
        logger.warning(
            "APIException: %s - %s",
            exc.code.value,
            exc.detail,
            extra={"status_code": exc.status_code, "path": request.url.path},
        )
        problem = exc.to_problem_detail()
        problem.instance = problem.instance or str(request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content=problem.model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=exc.headers,
        )

    async def handle_audience_exception(request: Request, exc: AudienceError) -> JSONResponse:
        status_code, code = map_audience_error(exc)
        detail = exc.detail if isinstance(exc, (StoreError, AudienceResolutionError)) else str(exc)

        log = logger.warning if status_code < 500 else logger.error
        log(
            "%s on %s: %s",
            type(exc).__name__,
            request.url.path,
            detail,
            extra={"status_code": status_code, "path": request.url.path},
        )

        errors = None
        if isinstance(exc, AudienceResolutionError) and exc.failures:
            errors = [
                {"segment_id": segment_id, "message": message}
                for segment_id, message in exc.failures.items()
            ]

        return create_problem_response(
            status_code=status_code,
            code=code,
            detail=detail,
            request=request,
            errors=errors,
        )

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.UNAUTHORIZED,
            404: ErrorCode.NOT_FOUND,
            422: ErrorCode.VALIDATION_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }

        return create_problem_response(
            status_code=exc.status_code,
            code=code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
            detail=str(exc.detail),
            request=request,
            headers=getattr(exc, "headers", None),
        )

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = _get_trace_id()
        logger.exception(
            "Unhandled exception: %s",
            type(exc).__name__,
            extra={"path": request.url.path},
        )

        # Don't expose internal details in production
        from app.config import settings
        detail = str(exc) if settings.DEBUG and not settings.is_production else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
        )

    return {
        "api": handle_api_exception,
        "audience": handle_audience_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
