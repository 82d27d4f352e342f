"""Common Pydantic schemas and response envelope helpers."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="Path to the invalid field or parameter")
    message: str = Field(..., description="Validation error message")


class ErrorEnvelope(BaseModel):
    """Error response body rendered by the centralized exception handlers."""

    status: Literal["fail", "error"] = Field(..., description="'fail' for 4xx, 'error' for 5xx")
    message: str = Field(..., description="Human-readable explanation")
    statusCode: int = Field(..., description="HTTP status code")
    title: str = Field(..., description="Short summary of the problem type")
    type: str = Field(..., description="Problem type URI")
    instance: Optional[str] = Field(None, description="Request path")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


def success_envelope(data: Optional[Dict[str, Any]], results: Optional[int] = None) -> Dict[str, Any]:
    """Wrap a payload in the success envelope; collections also carry ``results``."""
    envelope: Dict[str, Any] = {"status": "success"}
    if results is not None:
        envelope["results"] = results
    envelope["data"] = data
    return envelope
