"""
Structured exceptions and error responses for Reeltask.

Every engine error carries:
- a stable error code
- the HTTP status the API answers with
- a message category, so clients can tell "nothing to do" (already terminal)
  from "try again" (conflict/timeout) from "needs attention" (no crew)
"""

from typing import Any, Dict, Optional, List
from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reeltask.logging_config import get_logger


# =============================================================================
# Message categories
# =============================================================================

CATEGORY_NOTHING_TO_DO = "nothing_to_do"
CATEGORY_TRY_AGAIN = "try_again"
CATEGORY_NEEDS_ATTENTION = "needs_attention"
CATEGORY_INVALID_REQUEST = "invalid_request"
CATEGORY_INTERNAL = "internal"


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a single error."""
    loc: Optional[List[str]] = None  # Location of error (e.g., ["query", "page"])
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """Structured error response format."""
    error: str  # Error code (e.g., "not_found", "invalid_transition")
    message: str  # Human-readable message
    category: str
    details: Optional[List[ErrorDetail]] = None


# =============================================================================
# Custom Exceptions
# =============================================================================

class ReeltaskException(Exception):
    """Base exception for all Reeltask errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        category: str = CATEGORY_INTERNAL,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.category = category
        self.details = details
        super().__init__(message)


class NotFoundError(ReeltaskException):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with ID {resource_id} not found",
            error_code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
            category=CATEGORY_INVALID_REQUEST,
        )
        self.resource = resource
        self.resource_id = resource_id


class TaskNotFoundError(NotFoundError):
    """Unknown task id."""

    def __init__(self, task_id: str):
        super().__init__("Task", task_id)


class InvalidTransitionError(ReeltaskException):
    """The requested status change is not allowed from the current status."""

    def __init__(self, task_id: str, from_status: str, to_status: str):
        super().__init__(
            message=f"Task {task_id} cannot move from '{from_status}' to '{to_status}'",
            error_code="invalid_transition",
            status_code=status.HTTP_409_CONFLICT,
            category=CATEGORY_NOTHING_TO_DO,
            details=[{
                "loc": ["status"],
                "msg": f"{from_status} -> {to_status} is not a legal transition",
                "type": "transition_error",
            }],
        )
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status


class TaskArchivedError(ReeltaskException):
    """Archived tasks reject every transition."""

    def __init__(self, task_id: str):
        super().__init__(
            message=f"Task {task_id} is archived",
            error_code="task_archived",
            status_code=status.HTTP_409_CONFLICT,
            category=CATEGORY_NOTHING_TO_DO,
        )
        self.task_id = task_id


class NoCrewAvailableError(ReeltaskException):
    """No active crew member can take the task and assignment is mandatory."""

    def __init__(self, task_id: str, role_id: Optional[str]):
        super().__init__(
            message=(
                f"No active crew available for task {task_id}"
                + (f" (role {role_id})" if role_id else " (no role assigned)")
            ),
            error_code="no_crew_available",
            status_code=status.HTTP_409_CONFLICT,
            category=CATEGORY_NEEDS_ATTENTION,
        )
        self.task_id = task_id
        self.role_id = role_id


class ConcurrentModificationError(ReeltaskException):
    """The task changed between read and conditional write."""

    def __init__(self, task_id: str):
        super().__init__(
            message=f"Task {task_id} was modified concurrently; reload and retry",
            error_code="concurrent_modification",
            status_code=status.HTTP_409_CONFLICT,
            category=CATEGORY_TRY_AGAIN,
        )
        self.task_id = task_id


class CycleDetectedError(ReeltaskException):
    """Setting this parent would create a cycle in the task hierarchy."""

    def __init__(self, task_id: str, parent_task_id: str):
        super().__init__(
            message="Setting this parent would create a cycle in the task hierarchy",
            error_code="cycle_detected",
            status_code=status.HTTP_400_BAD_REQUEST,
            category=CATEGORY_INVALID_REQUEST,
            details=[{
                "loc": ["body", "parent_task_id"],
                "msg": f"Parent {parent_task_id} of {task_id} would create a cycle",
                "type": "cycle_error",
            }],
        )
        self.task_id = task_id
        self.parent_task_id = parent_task_id


class ValidationError(ReeltaskException):
    """Malformed filter, sort, pagination or update input."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            category=CATEGORY_INVALID_REQUEST,
            details=details,
        )

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        """Wrap a pydantic ValidationError raised at the engine boundary."""
        details = [
            {
                "loc": [str(part) for part in err.get("loc", ())],
                "msg": err.get("msg", ""),
                "type": err.get("type", "value_error"),
            }
            for err in exc.errors()
        ]
        return cls("Invalid request parameters", details=details)


class EngineTimeoutError(ReeltaskException):
    """A collaborator (task store, crew directory) did not answer in time."""

    def __init__(self, operation: str, seconds: float):
        super().__init__(
            message=f"{operation} timed out after {seconds:g}s",
            error_code="timeout",
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            category=CATEGORY_TRY_AGAIN,
        )
        self.operation = operation
        self.seconds = seconds


class InternalError(ReeltaskException):
    """Unexpected failure inside the engine."""

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message=message)


# =============================================================================
# Exception Handlers
# =============================================================================

async def reeltask_exception_handler(request: Request, exc: ReeltaskException) -> JSONResponse:
    """Handle ReeltaskException and return structured response."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "category": exc.category,
            "details": exc.details,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = get_logger("reeltask.error")
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "category": CATEGORY_INTERNAL,
            "details": None,
        },
    )


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(ReeltaskException, reeltask_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
