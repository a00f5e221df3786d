"""Relational model of the thesis lifecycle.

Status columns store the plain string values of ApplicationStatus and
ThesisStatus; the state machines are the only writers of those columns.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    PrimaryKeyConstraint,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form every column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Base(DeclarativeBase):
    pass


class DegreeProgramme(Base):
    __tablename__ = "degree_programme"

    id: Mapped[str] = mapped_column(String(10), primary_key=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    id_collegio: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)


class Student(Base):
    __tablename__ = "student"

    id: Mapped[str] = mapped_column(String(6), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    degree_id: Mapped[Optional[str]] = mapped_column(ForeignKey("degree_programme.id"), nullable=True)


class LoggedStudent(Base):
    __tablename__ = "logged_student"

    student_id: Mapped[str] = mapped_column(ForeignKey("student.id"), primary_key=True)


class Teacher(Base):
    __tablename__ = "teacher"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
        }


class ThesisApplication(Base):
    __tablename__ = "thesis_application"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    student_id: Mapped[str] = mapped_column(ForeignKey("student.id"), nullable=False)
    thesis_proposal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    company_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    submission_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "topic": self.topic,
            "studentId": self.student_id,
            "thesisProposalId": self.thesis_proposal_id,
            "companyId": self.company_id,
            "submissionDate": _iso(self.submission_date),
            "status": self.status,
        }


class ThesisApplicationSupervisorCoSupervisor(Base):
    __tablename__ = "thesis_application_supervisor_cosupervisor"

    thesis_application_id: Mapped[int] = mapped_column(ForeignKey("thesis_application.id"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id"), nullable=False)
    is_supervisor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        PrimaryKeyConstraint("thesis_application_id", "teacher_id", name="pk_application_supervisor"),
    )


class ThesisApplicationStatusHistory(Base):
    __tablename__ = "thesis_application_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    thesis_application_id: Mapped[int] = mapped_column(ForeignKey("thesis_application.id"), nullable=False)
    old_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    new_status: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    change_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class License(Base):
    __tablename__ = "license"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_en: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class Thesis(Base):
    __tablename__ = "thesis"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    thesis_application_id: Mapped[int] = mapped_column(
        ForeignKey("thesis_application.id"), nullable=False, unique=True
    )
    student_id: Mapped[str] = mapped_column(ForeignKey("student.id"), nullable=False)
    company_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title_eng: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    abstract: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    abstract_eng: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    license_id: Mapped[Optional[int]] = mapped_column(ForeignKey("license.id"), nullable=True)
    thesis_file: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    thesis_resume: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    additional_zip: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    thesis_file_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    thesis_resume_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    additional_zip_path: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    thesis_start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    thesis_conclusion_request_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    thesis_conclusion_confirmation_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    thesis_draft_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="ongoing")


class ThesisSupervisorCoSupervisor(Base):
    __tablename__ = "thesis_supervisor_cosupervisor"

    thesis_id: Mapped[int] = mapped_column(ForeignKey("thesis.id"), nullable=False)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teacher.id"), nullable=False)
    scope: Mapped[str] = mapped_column(String(10), nullable=False, default="live")
    is_supervisor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        PrimaryKeyConstraint("thesis_id", "teacher_id", "scope", name="pk_thesis_supervisor"),
    )


class SustainableDevelopmentGoal(Base):
    __tablename__ = "sustainable_development_goal"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    goal: Mapped[str] = mapped_column(String(255), nullable=False)


class ThesisSustainableDevelopmentGoal(Base):
    __tablename__ = "thesis_sustainable_development_goal"

    thesis_id: Mapped[int] = mapped_column(ForeignKey("thesis.id"), nullable=False)
    goal_id: Mapped[int] = mapped_column(ForeignKey("sustainable_development_goal.id"), nullable=False)
    sdg_level: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    __table_args__ = (
        PrimaryKeyConstraint("thesis_id", "goal_id", name="pk_thesis_sdg"),
    )


class Keyword(Base):
    __tablename__ = "keyword"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    keyword: Mapped[str] = mapped_column(String(100), nullable=False)
    keyword_en: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class ThesisKeyword(Base):
    __tablename__ = "thesis_keyword"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    thesis_id: Mapped[int] = mapped_column(ForeignKey("thesis.id"), nullable=False)
    keyword_id: Mapped[Optional[int]] = mapped_column(ForeignKey("keyword.id"), nullable=True)
    keyword_other: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)


class EmbargoMotivation(Base):
    __tablename__ = "embargo_motivation"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    motivation: Mapped[str] = mapped_column(String(255), nullable=False)
    motivation_en: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class ThesisEmbargo(Base):
    __tablename__ = "thesis_embargo"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    thesis_id: Mapped[int] = mapped_column(ForeignKey("thesis.id"), nullable=False)
    duration: Mapped[str] = mapped_column(String(30), nullable=False)


class ThesisEmbargoMotivation(Base):
    __tablename__ = "thesis_embargo_motivation"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    thesis_embargo_id: Mapped[int] = mapped_column(ForeignKey("thesis_embargo.id"), nullable=False)
    motivation_id: Mapped[int] = mapped_column(ForeignKey("embargo_motivation.id"), nullable=False)
    other_motivation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class GraduationSession(Base):
    __tablename__ = "graduation_session"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_name: Mapped[str] = mapped_column(String(100), nullable=False)
    session_name_en: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sessionName": self.session_name,
            "sessionNameEn": self.session_name_en,
        }


class Deadline(Base):
    __tablename__ = "deadline"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deadline_type: Mapped[str] = mapped_column(String(30), nullable=False)
    graduation_session_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("graduation_session.id"), nullable=True
    )
    deadline_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deadlineType": self.deadline_type,
            "graduationSessionId": self.graduation_session_id,
            "deadlineDate": _iso(self.deadline_date),
        }


__all__ = [
    "Base",
    "utcnow",
    "DegreeProgramme",
    "Student",
    "LoggedStudent",
    "Teacher",
    "ThesisApplication",
    "ThesisApplicationSupervisorCoSupervisor",
    "ThesisApplicationStatusHistory",
    "License",
    "Thesis",
    "ThesisSupervisorCoSupervisor",
    "SustainableDevelopmentGoal",
    "ThesisSustainableDevelopmentGoal",
    "Keyword",
    "ThesisKeyword",
    "EmbargoMotivation",
    "ThesisEmbargo",
    "ThesisEmbargoMotivation",
    "GraduationSession",
    "Deadline",
]
