"""
SiteLens - Structured Error Handling

API-level errors: authentication failures and invalid batch requests.
Failures of individual queries inside a batch are NOT raised; they are
reported in the `error` field of the affected result.

ERROR RESPONSE FORMAT:
----------------------
{
    "error": {
        "code": "ERR_3002",
        "message": "Batch of 80 queries exceeds the limit of 50",
        "details": {"actual": 80, "limit": 50},
        "suggestion": "Split the dashboard into several batches",
        "request_id": "abc-123"
    }
}
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCode(str, Enum):
    """Unique error codes for every API error type."""

    # Authentication (1xxx)
    ERR_API_KEY_MISSING = "ERR_1001"
    ERR_API_KEY_INVALID = "ERR_1002"

    # Catalog (2xxx)
    ERR_QUERY_TYPE_NOT_FOUND = "ERR_2001"

    # Request validation (3xxx)
    ERR_QUERY_INVALID = "ERR_3001"
    ERR_BATCH_TOO_LARGE = "ERR_3002"

    # Store (4xxx)
    ERR_STORE_UNAVAILABLE = "ERR_4003"

    # Internal (9xxx)
    ERR_INTERNAL = "ERR_9001"


@dataclass(eq=False)
class SiteLensError(Exception):
    """
    Structured error with all context needed for debugging.

    Attributes:
        code: Unique error code for searching logs
        message: Human-readable error message
        status_code: HTTP status code
        details: Additional context (dict)
        suggestion: How to fix the issue
        request_id: Request tracing ID
    """
    code: ErrorCode
    message: str
    status_code: int = 400
    details: Dict[str, Any] = field(default_factory=dict)
    suggestion: Optional[str] = None
    request_id: Optional[str] = None

    def __post_init__(self):
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        error_dict: Dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            error_dict["details"] = self.details
        if self.suggestion:
            error_dict["suggestion"] = self.suggestion
        if self.request_id:
            error_dict["request_id"] = self.request_id
        error_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

        return {"error": error_dict}

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_dict())

    def log(self, level: str = "error"):
        """Log the error with context."""
        log_msg = f"[{self.code.value}] {self.message}"
        if self.details:
            log_msg += f" | details={self.details}"
        if self.request_id:
            log_msg += f" | request_id={self.request_id}"

        getattr(logger, level)(log_msg)


# =============================================================================
# ERROR FACTORY FUNCTIONS
# =============================================================================

def api_key_missing(header: str = "X-API-Key") -> SiteLensError:
    return SiteLensError(
        code=ErrorCode.ERR_API_KEY_MISSING,
        message="API key is required",
        status_code=401,
        details={"header": header},
        suggestion=f"Add '{header}: your-api-key' header to your request",
    )


def api_key_invalid(key_prefix: Optional[str] = None) -> SiteLensError:
    details = {}
    if key_prefix:
        details["key_prefix"] = key_prefix[:4] + "..."

    return SiteLensError(
        code=ErrorCode.ERR_API_KEY_INVALID,
        message="API key is invalid",
        status_code=401,
        details=details,
        suggestion="Check that your API key is correct",
    )


def query_type_not_found(query_type: str, available_types: Optional[List[str]] = None) -> SiteLensError:
    """Create query type not found error with close matches."""
    details: Dict[str, Any] = {"type": query_type}
    suggestion = "List registered query types with GET /v1/query/types"

    if available_types:
        similar = [t for t in available_types if query_type.lower() in t.lower()]
        if similar:
            suggestion += f". Did you mean: {', '.join(similar[:3])}?"

    return SiteLensError(
        code=ErrorCode.ERR_QUERY_TYPE_NOT_FOUND,
        message=f"Query type '{query_type}' not found",
        status_code=404,
        details=details,
        suggestion=suggestion,
    )


def query_invalid(errors: List[Dict[str, Any]]) -> SiteLensError:
    return SiteLensError(
        code=ErrorCode.ERR_QUERY_INVALID,
        message="Request body is not a valid query request",
        status_code=422,
        details={"errors": errors},
        suggestion="Each query needs at least a `type`; see GET /v1/query/types",
    )


def batch_too_large(count: int, limit: int) -> SiteLensError:
    return SiteLensError(
        code=ErrorCode.ERR_BATCH_TOO_LARGE,
        message=f"Batch of {count} queries exceeds the limit of {limit}",
        status_code=400,
        details={"actual": count, "limit": limit},
        suggestion="Split the dashboard into several batches",
    )


def store_unavailable(engine: str, reason: str) -> SiteLensError:
    return SiteLensError(
        code=ErrorCode.ERR_STORE_UNAVAILABLE,
        message=f"Analytics store '{engine}' is not available",
        status_code=503,
        details={"engine": engine, "reason": reason},
        suggestion="Check store credentials and network connectivity",
    )


def internal_error(
    message: str = "An unexpected error occurred",
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None
) -> SiteLensError:
    return SiteLensError(
        code=ErrorCode.ERR_INTERNAL,
        message=message,
        status_code=500,
        details=details or {},
        request_id=request_id,
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())[:8]


async def sitelens_error_handler(request: Request, exc: SiteLensError) -> JSONResponse:
    """Handle SiteLensError and return structured response."""
    if not exc.request_id:
        exc.request_id = _request_id(request)

    exc.log(level="warning" if exc.status_code < 500 else "error")
    return exc.to_response()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException and convert to structured format."""
    request_id = _request_id(request)

    error_response = {
        "error": {
            "code": f"ERR_HTTP_{exc.status_code}",
            "message": str(exc.detail),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
        }
    }

    logger.warning(f"[ERR_HTTP_{exc.status_code}] {exc.detail} | request_id={request_id}")
    return JSONResponse(status_code=exc.status_code, content=error_response)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures in the structured format."""
    errors = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    error = query_invalid(errors)
    error.request_id = _request_id(request)
    error.log(level="warning")
    return error.to_response()


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = _request_id(request)
    logger.exception(f"Unhandled exception | request_id={request_id}")

    error = internal_error(
        details={"exception_type": type(exc).__name__},
        request_id=request_id,
    )
    return error.to_response()


def install_error_handlers(app):
    """Install error handlers on FastAPI app."""
    app.add_exception_handler(SiteLensError, sitelens_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.debug("Structured error handlers installed")
