"""JSON Schema validation of inbound payloads.

Payload shapes (types, enum values, list item forms) are checked here with
jsonschema before any state machine runs. Business rules with their own
messages, such as a missing title or an incomplete embargo, are left to
the operations themselves.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import jsonschema
from jsonschema import Draft7Validator

from thesisflow.errors import FieldError, ValidationFailedError
from thesisflow.types import EmbargoDuration, FieldErrorCode, Language, SdgLevel

_ID = {"type": ["integer", "string"]}
_NULLABLE_STRING = {"type": ["string", "null"]}

_CO_SUPERVISORS = {
    "type": ["array", "null"],
    "items": {
        "anyOf": [
            _ID,
            {"type": "object", "properties": {"id": _ID}, "required": ["id"]},
        ]
    },
}

_SDGS = {
    "type": ["array", "null"],
    "items": {
        "anyOf": [
            _ID,
            {
                "type": "object",
                "properties": {
                    "goalId": _ID,
                    "id": _ID,
                    "level": {"enum": [level.value for level in SdgLevel] + [None]},
                },
            },
        ]
    },
}

_KEYWORDS = {
    "type": ["array", "null"],
    "items": {
        "anyOf": [
            _ID,
            {"type": "object", "properties": {"id": {"type": ["integer", "string", "null"]}}},
        ]
    },
}

_EMBARGO = {
    "type": ["object", "null"],
    "properties": {
        "duration": {"enum": [d.value for d in EmbargoDuration] + [None]},
        "motivations": {
            "type": ["array", "null"],
            "items": {
                "anyOf": [
                    _ID,
                    {
                        "type": "object",
                        "properties": {
                            "motivationId": {"type": ["integer", "string", "null"]},
                            "motivation_id": {"type": ["integer", "string", "null"]},
                            "otherMotivation": _NULLABLE_STRING,
                            "other_motivation": _NULLABLE_STRING,
                        },
                    },
                ]
            },
        },
    },
}

APPLICATION_TRANSITION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": _ID,
        "new_status": {"type": "string"},
    },
    "required": ["id", "new_status"],
}

CONCLUSION_TRANSITION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "thesisId": _ID,
        "conclusionStatus": {"type": "string"},
    },
    "required": ["thesisId", "conclusionStatus"],
}

CONCLUSION_REQUEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": _NULLABLE_STRING,
        "titleEng": _NULLABLE_STRING,
        "abstract": _NULLABLE_STRING,
        "abstractEng": _NULLABLE_STRING,
        "language": {"enum": [lang.value for lang in Language] + [None]},
        "licenseId": {"type": ["integer", "string", "null"]},
        "coSupervisors": _CO_SUPERVISORS,
        "sdgs": _SDGS,
        "keywords": _KEYWORDS,
        "embargo": _EMBARGO,
    },
}

CONCLUSION_DRAFT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": dict(
        CONCLUSION_REQUEST_SCHEMA["properties"],
        removeThesisFile={"type": "boolean"},
        removeThesisResume={"type": "boolean"},
        removeAdditionalZip={"type": "boolean"},
    ),
}


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a payload against a JSON Schema.

    Attributes:
        is_valid: Whether the data passed all validation checks
        errors: List of field-level validation errors (empty if valid)
        data: The validated data
    """
    is_valid: bool
    errors: List[FieldError]
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "isValid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.data is not None:
            result["data"] = self.data
        return result


class ValidationEngine:
    """Wraps a Draft 7 validator and translates its errors into FieldErrors.

    Examples:
        >>> engine = ValidationEngine(CONCLUSION_TRANSITION_SCHEMA)
        >>> engine.validate({"thesisId": 1, "conclusionStatus": "done"}).is_valid
        True
        >>> engine.validate({"thesisId": 1}).errors[0].code
        <FieldErrorCode.REQUIRED: 'required'>
    """

    def __init__(self, schema: Dict[str, Any]) -> None:
        """Initialize the validation engine with a JSON Schema.

        Raises:
            jsonschema.SchemaError: If the provided schema is invalid
        """
        self.schema = schema
        Draft7Validator.check_schema(schema)
        self.validator = Draft7Validator(schema)

    def validate(self, data: Any) -> ValidationResult:
        errors = sorted(self.validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
        if not errors:
            return ValidationResult(is_valid=True, errors=[], data=data)
        return ValidationResult(
            is_valid=False,
            errors=[self._translate_error(error) for error in errors],
            data=data,
        )

    def require_valid(self, data: Any, message: str) -> Dict[str, Any]:
        """Validate and return ``data``, or raise ValidationFailedError(message)."""
        result = self.validate(data)
        if not result.is_valid:
            raise ValidationFailedError(message, fields=result.errors)
        return data

    def _translate_error(self, error: jsonschema.ValidationError) -> FieldError:
        """Map a jsonschema error onto a FieldError.

        Error mapping:
            - 'required' -> REQUIRED
            - 'type' -> INVALID_TYPE
            - 'enum' / 'const' / 'anyOf' -> INVALID_VALUE
            - 'minLength' / 'maxLength' -> TOO_SHORT / TOO_LONG
            - anything else -> CUSTOM
        """
        path = ".".join(str(p) for p in error.path)

        if error.validator == "required":
            missing_prop = error.message.split("'")[1] if "'" in error.message else "field"
            full_path = f"{path}.{missing_prop}" if path else missing_prop
            return FieldError(
                path=full_path,
                code=FieldErrorCode.REQUIRED,
                message=f"Field '{full_path}' is required but was not provided",
                expected="required field",
            )

        if error.validator == "type":
            received_type = type(error.instance).__name__
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_TYPE,
                message=f"Field '{path}' has invalid type. Expected {error.validator_value}, got {received_type}",
                expected=error.validator_value,
                received=received_type,
            )

        if error.validator in ("enum", "const"):
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_VALUE,
                message=f"Field '{path}' has invalid value. Must be one of: {error.validator_value}",
                expected=error.validator_value,
                received=error.instance,
            )

        if error.validator == "anyOf":
            return FieldError(
                path=path,
                code=FieldErrorCode.INVALID_VALUE,
                message=f"Field '{path}' does not match any accepted form",
                received=error.instance,
            )

        if error.validator == "minLength":
            return FieldError(
                path=path,
                code=FieldErrorCode.TOO_SHORT,
                message=f"Field '{path}' is too short. Minimum length: {error.validator_value}",
                expected=f"minimum {error.validator_value} characters",
            )

        if error.validator == "maxLength":
            return FieldError(
                path=path,
                code=FieldErrorCode.TOO_LONG,
                message=f"Field '{path}' is too long. Maximum length: {error.validator_value}",
                expected=f"maximum {error.validator_value} characters",
            )

        return FieldError(
            path=path,
            code=FieldErrorCode.CUSTOM,
            message=f"Field '{path}' validation failed: {error.message}",
            expected=error.validator_value,
            received=error.instance,
        )


application_transition_validator = ValidationEngine(APPLICATION_TRANSITION_SCHEMA)
conclusion_transition_validator = ValidationEngine(CONCLUSION_TRANSITION_SCHEMA)
conclusion_request_validator = ValidationEngine(CONCLUSION_REQUEST_SCHEMA)
conclusion_draft_validator = ValidationEngine(CONCLUSION_DRAFT_SCHEMA)


__all__ = [
    "APPLICATION_TRANSITION_SCHEMA",
    "CONCLUSION_TRANSITION_SCHEMA",
    "CONCLUSION_REQUEST_SCHEMA",
    "CONCLUSION_DRAFT_SCHEMA",
    "ValidationEngine",
    "ValidationResult",
    "application_transition_validator",
    "conclusion_transition_validator",
    "conclusion_request_validator",
    "conclusion_draft_validator",
]
