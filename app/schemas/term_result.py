"""Compiled term result schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from app.schemas.common import BaseSchema


class TermResultCompile(BaseSchema):
    """Compile the term results of one class."""

    class_name: str = Field(..., min_length=1, max_length=50)
    term_id: int


class TermResultUpdate(BaseSchema):
    """Report card comments."""

    teacher_comment: str | None = None
    principal_comment: str | None = None


class TermResultResponse(BaseSchema):
    """A student's compiled standing for a term."""

    id: int
    student_id: int
    student_name: str
    admission_number: str
    class_name: str
    term_id: int
    term_name: str
    session_name: str
    subjects_count: int
    total_score: Decimal
    average_score: Decimal
    position: int | None
    grade: str
    grade_remark: str
    teacher_comment: str | None
    principal_comment: str | None
    updated_at: datetime


class CompileResponse(BaseSchema):
    """Outcome of compiling a class."""

    class_name: str
    term_id: int
    compiled: int
    removed: int
    results: list[TermResultResponse]


class SubjectScore(BaseSchema):
    """One subject line of a term report."""

    subject_id: int
    subject_name: str
    ca_score: Decimal
    exam_score: Decimal
    total_score: Decimal
    position: int | None
    grade: str
    grade_remark: str


class StudentTermReport(BaseSchema):
    """Report card: the compiled standing plus every subject line."""

    term_result: TermResultResponse
    class_size: int
    subjects: list[SubjectScore]


class ClassStatistics(BaseSchema):
    """Subject-result statistics for a class in a term."""

    class_name: str
    term_id: int
    total_students: int
    total_results: int
    average_score: Decimal | None
    highest_score: Decimal | None
    lowest_score: Decimal | None
    pass_rate: Decimal
    grade_distribution: dict[str, int]
