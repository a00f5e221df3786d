"""Structured error types for the thesis lifecycle.

Every business-rule violation is raised as a subclass of ThesisFlowError,
carrying the HTTP status it maps to and a human-readable message. The API
layer serializes them as ``{"error": message}``.

Payload validation failures additionally carry a list of FieldError
entries produced by the JSON Schema validation engine.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from thesisflow.types import FieldErrorCode


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error details.

    Attributes:
        path: Dot-notation field path (e.g., "embargo.duration", "sdgs.0")
        code: Specific validation error code
        message: Human-readable error description
        expected: Optional - what was expected (type, enum values, etc.)
        received: Optional - what was actually received

    Examples:
        >>> err = FieldError(
        ...     path="language",
        ...     code=FieldErrorCode.INVALID_VALUE,
        ...     message="Field 'language' has invalid value",
        ...     expected=["it", "en"],
        ...     received="fr"
        ... )
        >>> err.path
        'language'
    """
    path: str
    code: FieldErrorCode
    message: str
    expected: Optional[Any] = None
    received: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "path": self.path,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }
        if self.expected is not None:
            result["expected"] = self.expected
        if self.received is not None:
            result["received"] = self.received
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data["code"]
        if isinstance(code, str):
            code = FieldErrorCode(code)
        return cls(
            path=data["path"],
            code=code,
            message=data["message"],
            expected=data.get("expected"),
            received=data.get("received"),
        )


class ThesisFlowError(Exception):
    """Base exception for all thesis lifecycle errors.

    Attributes:
        message: Human-readable message, surfaced to the client as-is
        status: HTTP status code this error maps to
    """

    status: int = 500

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        if status is not None:
            self.status = status
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire error envelope."""
        return {"error": self.message}


class NotFoundError(ThesisFlowError):
    """An entity, or one of a set of catalog ids, does not exist."""
    status = 404


class InvalidTransitionError(ThesisFlowError):
    """A status change violates the transition graph.

    Attributes:
        current_status: Status before the attempted transition
        target_status: Status that was requested
    """
    status = 400

    def __init__(self, message: str, current_status: Optional[str] = None, target_status: Optional[str] = None):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


class ClosedApplicationError(ThesisFlowError):
    """The application is in a terminal status."""
    status = 400


class InvalidStateError(ThesisFlowError):
    """The entity's current status does not allow the requested operation."""
    status = 400


class ValidationFailedError(ThesisFlowError):
    """Malformed or incomplete payload.

    Attributes:
        fields: Field-level details, when the failure comes from schema validation
    """
    status = 400

    def __init__(self, message: str, fields: Optional[List[FieldError]] = None):
        self.fields = fields or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.fields:
            result["fields"] = [f.to_dict() for f in self.fields]
        return result


class InvalidFileFormatError(ValidationFailedError):
    """An uploaded file is not a PDF carrying PDF/A identification."""


class IncompleteEmbargoError(ValidationFailedError):
    """Embargo payload lacks its duration or motivations."""


class UnauthorizedError(ThesisFlowError):
    """No logged student is available for a student-facing operation."""
    status = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class InternalError(ThesisFlowError):
    """Inconsistent stored data detected while serving a request."""
    status = 500


__all__ = [
    "FieldError",
    "ThesisFlowError",
    "NotFoundError",
    "InvalidTransitionError",
    "ClosedApplicationError",
    "InvalidStateError",
    "ValidationFailedError",
    "InvalidFileFormatError",
    "IncompleteEmbargoError",
    "UnauthorizedError",
    "InternalError",
]
