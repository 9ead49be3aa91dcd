"""
Shared error response schemas for OpenAPI documentation.

Inline examples rather than model references, to avoid importing the
exceptions module here.
"""

from typing import Dict, Any


def _problem(status: int, title: str, code: str, detail: str) -> Dict[str, Any]:
    return {
        "application/problem+json": {
            "example": {
                "type": f"https://api.reviewflow.app/problems/{code.lower().replace('_', '-')}",
                "title": title,
                "status": status,
                "detail": detail,
                "code": code,
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
            }
        }
    }


ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {
        "description": "Bad Request - duplicate enrollment or rule violation",
        "content": _problem(400, "Bad Request", "BIZ_002", "Customer 42 is already enrolled in sequence 7"),
    },
    401: {
        "description": "Unauthorized - shared secret missing or wrong",
        "content": _problem(401, "Unauthorized", "AUTH_001", "Invalid cron secret"),
    },
    404: {
        "description": "Not Found - referenced entity does not exist",
        "content": _problem(404, "Not Found", "RES_001", "Sequence with ID 7 was not found"),
    },
    422: {
        "description": "Validation Error - request body failed validation",
        "content": _problem(422, "Validation Error", "VAL_001", "Request validation failed"),
    },
    500: {
        "description": "Internal Server Error",
        "content": _problem(500, "Internal Server Error", "SRV_001", "An unexpected error occurred"),
    },
}


def get_error_responses(*status_codes: int) -> Dict[int, Dict[str, Any]]:
    """Subset of ERROR_RESPONSES for an endpoint's ``responses=``."""
    return {code: ERROR_RESPONSES[code] for code in status_codes if code in ERROR_RESPONSES}
