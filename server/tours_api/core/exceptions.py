"""Operational errors, the async handler wrapper, and the centralized error responders."""

import functools
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import pydantic
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from .config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProblemDetailsException(HTTPException):
    """
    Base exception class for errors rendered by the centralized responders.

    Operational errors are expected, user-facing failures (a lookup miss, a
    malformed query). Non-operational errors are faults the client cannot fix
    and are rendered with a generic message.
    """

    is_operational = True

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.message = detail or title
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        super().__init__(
            status_code=status_code,
            detail=self.message,
            headers=headers
        )

    @property
    def envelope_status(self) -> str:
        """Return 'fail' for client errors and 'error' for server errors."""
        return "fail" if 400 <= self.status_code < 500 else "error"

    def to_envelope(self) -> Dict[str, Any]:
        """Build the JSON error envelope for this exception."""
        envelope = {
            "status": self.envelope_status,
            "message": self.message,
            "statusCode": self.status_code,
            "title": self.title,
            "type": self.type_uri,
        }
        if self.instance:
            envelope["instance"] = self.instance
        envelope.update(self.extensions)
        return envelope


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        violations: Optional[List[Dict[str, str]]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if violations:
            extensions["violations"] = violations

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"No {resource_type} found with that ID"

        extensions = {
            "resourceType": resource_type,
        }
        if resource_id:
            extensions["resourceId"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflictingResource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    is_operational = False

    def __init__(
        self,
        detail: str = "Something went very wrong!",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        extensions = {
            "errorId": error_id,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://example.com/problems/internal-server-error",
            instance=instance,
            extensions=extensions,
        )


def violations_from_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into path/message violations."""
    violations = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        violations.append({
            "path": ".".join(loc) or "$",
            "message": error.get("msg", "Invalid value"),
        })
    return violations


def catch_async(handler: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Wrap an async route handler so every failure is forwarded as a ProblemDetailsException.

    Operational errors pass through unchanged. Constraint violations become a
    409, model validation failures a 400, and anything else is logged with its
    traceback and converted into an InternalServerError.
    """

    @functools.wraps(handler)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await handler(*args, **kwargs)
        except ProblemDetailsException:
            raise
        except IntegrityError as e:
            logger.warning(
                "Integrity constraint violated",
                extra={"handler": handler.__name__, "error": str(e.orig)}
            )
            raise ConflictError(detail="Duplicate or conflicting field value") from e
        except pydantic.ValidationError as e:
            raise ValidationError(
                detail="Invalid input data",
                violations=violations_from_errors(e.errors()),
            ) from e
        except Exception as e:
            error = InternalServerError()
            logger.error(
                "Unexpected error in handler",
                extra={
                    "handler": handler.__name__,
                    "error_id": error.extensions["errorId"],
                    "error": str(e),
                },
                exc_info=True
            )
            if settings.debug:
                error.extensions["error"] = repr(e)
            raise error from e

    return wrapper


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for forwarded ProblemDetailsException errors.

    Args:
        request: FastAPI request object
        exc: The forwarded exception

    Returns:
        JSONResponse: Error envelope response
    """
    if exc.is_operational:
        logger.info(
            "Operational error",
            extra={"path": request.url.path, "status_code": exc.status_code, "detail": exc.message}
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_envelope(),
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as a 400 error envelope."""
    error = ValidationError(
        detail="Invalid input data",
        violations=violations_from_errors(list(exc.errors())),
        instance=request.url.path,
    )
    return await problem_details_handler(request, error)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort handler for exceptions raised outside a wrapped handler.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Generic 500 error envelope
    """
    error = InternalServerError(instance=request.url.path)
    logger.error(
        "Unhandled exception",
        extra={"path": request.url.path, "error_id": error.extensions["errorId"], "error": str(exc)},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=error.to_envelope(),
    )
