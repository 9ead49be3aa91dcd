"""
Problem responses (RFC 7807) for the automation API.

Engine errors are translated into ``ReviewFlowException`` subclasses by
``reviewflow.api.deps.automation_http_error``; every error the app returns,
including framework 404s and request validation failures, is rendered as
``application/problem+json`` by the handlers from ``create_exception_handlers``.
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid

from reviewflow.utils.time import utcnow

logger = logging.getLogger(__name__)

PROBLEM_BASE_URL = "https://api.reviewflow.app/problems"
PROBLEM_MEDIA_TYPE = "application/problem+json"

STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    405: "Method Not Allowed",
    422: "Validation Error",
    500: "Internal Server Error",
}


class ErrorCode(str, Enum):
    """Machine-readable codes carried in every problem body."""

    UNAUTHORIZED = "AUTH_001"

    BAD_REQUEST = "REQ_001"
    VALIDATION_ERROR = "VAL_001"
    MISSING_FIELD = "VAL_003"

    NOT_FOUND = "RES_001"

    BUSINESS_RULE_VIOLATION = "BIZ_001"
    ALREADY_ENROLLED = "BIZ_002"
    NO_STEPS_CONFIGURED = "BIZ_003"

    INTERNAL_ERROR = "SRV_001"

    @property
    def problem_type(self) -> str:
        return f"{PROBLEM_BASE_URL}/{self.value.lower().replace('_', '-')}"


# Framework-raised HTTP errors have no code of their own
HTTP_STATUS_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}


def code_for_status(status_code: int) -> ErrorCode:
    if status_code in HTTP_STATUS_CODES:
        return HTTP_STATUS_CODES[status_code]
    return ErrorCode.INTERNAL_ERROR if status_code >= 500 else ErrorCode.BAD_REQUEST


def _get_trace_id() -> str:
    from reviewflow.middleware.correlation import get_request_id

    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


class ProblemDetail(BaseModel):
    """
    Problem body.

    ``context`` carries the ids of the rows involved (enrollment, sequence,
    customer) so a client can act on a duplicate enrollment without a
    second lookup.
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None
    context: Optional[Dict[str, Any]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_BASE_URL}/biz-002",
                "title": "Bad Request",
                "status": 400,
                "detail": "Customer 42 is already enrolled in sequence 7",
                "instance": "/api/v2/sequences/enroll",
                "code": "BIZ_002",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
                "context": {"enrollment_id": 311},
            }
        }
    }

    @classmethod
    def build(
        cls,
        status_code: int,
        code: ErrorCode,
        detail: str,
        instance: Optional[str] = None,
        trace_id: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> "ProblemDetail":
        return cls(
            type=code.problem_type,
            title=STATUS_TITLES.get(status_code, "Error"),
            status=status_code,
            detail=detail,
            instance=instance,
            code=code.value,
            timestamp=utcnow().isoformat() + "Z",
            trace_id=trace_id or _get_trace_id(),
            errors=errors,
            context=context,
        )

    def to_response(self, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        return JSONResponse(
            status_code=self.status,
            content=self.model_dump(exclude_none=True),
            media_type=PROBLEM_MEDIA_TYPE,
            headers=headers,
        )


class ReviewFlowException(HTTPException):
    """HTTP error rendered as a problem body."""

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.context = context
        self.trace_id = _get_trace_id()
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        return ProblemDetail.build(
            self.status_code,
            self.code,
            self.detail,
            instance=instance,
            trace_id=self.trace_id,
            context=self.context,
        )


class NotFoundError(ReviewFlowException):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: Any, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
            context=context,
        )


class UnauthorizedError(ReviewFlowException):
    """Shared secret missing or wrong (401)."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(status_code=401, code=ErrorCode.UNAUTHORIZED, detail=detail)


class BusinessRuleError(ReviewFlowException):
    """Automation rule violation (400)."""

    def __init__(
        self,
        detail: str,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=400, code=code, detail=detail, context=context)


def create_exception_handlers():
    """
    Handlers keyed by the exception they are registered for in main.py:
    ``reviewflow``, ``http``, ``validation`` and ``generic``.
    """

    async def handle_reviewflow_exception(request: Request, exc: ReviewFlowException) -> JSONResponse:
        logger.warning(
            f"{exc.code.value} on {request.url.path}: {exc.detail}",
            extra={"trace_id": exc.trace_id, "status_code": exc.status_code, "path": request.url.path},
        )
        return exc.to_problem_detail(request.url.path).to_response(headers=exc.headers)

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        problem = ProblemDetail.build(
            exc.status_code,
            code_for_status(exc.status_code),
            str(exc.detail),
            instance=request.url.path,
        )
        return problem.to_response(headers=getattr(exc, "headers", None))

    async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        problem = ProblemDetail.build(
            422,
            ErrorCode.VALIDATION_ERROR,
            "Request validation failed",
            instance=request.url.path,
            errors=errors,
        )
        return problem.to_response()

    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        from reviewflow.config import settings
        from reviewflow.core.sentry import capture_exception

        trace_id = str(uuid.uuid4())[:12]
        logger.exception(
            f"Unhandled exception on {request.method} {request.url.path}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        capture_exception(
            exc,
            context={"trace_id": trace_id, "path": request.url.path, "method": request.method},
        )

        # Internal details only leak in debug
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"
        problem = ProblemDetail.build(
            500, ErrorCode.INTERNAL_ERROR, detail, instance=request.url.path, trace_id=trace_id
        )
        return problem.to_response()

    return {
        "reviewflow": handle_reviewflow_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
