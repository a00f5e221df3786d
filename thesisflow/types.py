"""Core type definitions for the thesis lifecycle.

This module defines the vocabularies shared by the state machines, the
ledger and the HTTP surface:
- ApplicationStatus: lifecycle of a student's thesis application
- ThesisStatus: extended lifecycle of an approved thesis (conclusion workflow)
- LedgerStatus: union of both vocabularies, as stored in the status ledger
- EmbargoDuration, SdgLevel, SupervisorScope, DeadlineType, Language
- FieldErrorCode: codes attached to payload validation errors
- StudentContext: the explicit "who is calling" value passed into operations
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ApplicationStatus(str, Enum):
    """Thesis application states.

    Terminal states: approved, rejected, cancelled.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ThesisStatus(str, Enum):
    """Thesis states, from approval to the archived thesis."""
    ONGOING = "ongoing"
    CONCLUSION_REQUESTED = "conclusion_requested"
    CONCLUSION_REJECTED = "conclusion_rejected"
    CONCLUSION_APPROVED = "conclusion_approved"
    ALMALAUREA = "almalaurea"
    COMPILED_QUESTIONNAIRE = "compiled_questionnaire"
    FINAL_EXAM = "final_exam"
    FINAL_THESIS = "final_thesis"
    CANCEL_REQUESTED = "cancel_requested"
    CANCEL_APPROVED = "cancel_approved"
    DONE = "done"


LedgerStatus = Union[ApplicationStatus, ThesisStatus]
"""A status as recorded in the shared ledger table.

A single ledger row never mixes the two vocabularies, except for the
creation row of a thesis where old_status is None.
"""


class EmbargoDuration(str, Enum):
    TWELVE_MONTHS = "12_months"
    EIGHTEEN_MONTHS = "18_months"
    THIRTY_SIX_MONTHS = "36_months"
    AFTER_EXPLICIT_CONSENT = "after_explicit_consent"


class SdgLevel(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SupervisorScope(str, Enum):
    """Which working set a thesis supervisor link belongs to.

    The draft set is edited freely by the student; the live set is the one
    committed by a conclusion request.
    """
    DRAFT = "draft"
    LIVE = "live"


class DeadlineType(str, Enum):
    THESIS_REQUEST = "thesis_request"
    EXAMS = "exams"
    INTERNSHIP_REPORT = "internship_report"
    CONCLUSION_REQUEST = "conclusion_request"
    FINAL_EXAM_REGISTRATION = "final_exam_registration"
    IELTS = "ielts"


class Language(str, Enum):
    IT = "it"
    EN = "en"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures."""
    REQUIRED = "required"
    INVALID_TYPE = "invalid_type"
    INVALID_FORMAT = "invalid_format"
    INVALID_VALUE = "invalid_value"
    TOO_LONG = "too_long"
    TOO_SHORT = "too_short"
    CUSTOM = "custom"


def parse_ledger_status(value: Optional[str]) -> Optional[LedgerStatus]:
    """Map a stored status string back to its vocabulary.

    Strings that exist in both vocabularies do not occur: "approved" and
    "cancelled" belong only to applications, thesis states are all distinct.

    Raises:
        ValueError: If the string is in neither vocabulary
    """
    if value is None:
        return None
    if isinstance(value, (ApplicationStatus, ThesisStatus)):
        return value
    try:
        return ApplicationStatus(value)
    except ValueError:
        return ThesisStatus(value)


@dataclass(frozen=True)
class StudentContext:
    """Identity of the student on whose behalf an operation runs.

    Attributes:
        student_id: Id of an existing Student row
    """
    student_id: str


__all__ = [
    "ApplicationStatus",
    "ThesisStatus",
    "LedgerStatus",
    "EmbargoDuration",
    "SdgLevel",
    "SupervisorScope",
    "DeadlineType",
    "Language",
    "FieldErrorCode",
    "StudentContext",
    "parse_ledger_status",
]
