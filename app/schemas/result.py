"""Result (score record) schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from app.core.config import settings
from app.schemas.common import BaseSchema

CA_SCORE_MAX = settings.CA_SCORE_MAX
EXAM_SCORE_MAX = settings.EXAM_SCORE_MAX


# ==========================================
# Result Schemas
# ==========================================

class ResultCreate(BaseSchema):
    """Single result creation schema."""

    student_id: int
    subject_id: int
    term_id: int
    ca_score: Decimal = Field(..., ge=0, le=CA_SCORE_MAX, decimal_places=2)
    exam_score: Decimal = Field(..., ge=0, le=EXAM_SCORE_MAX, decimal_places=2)
    remark: str | None = Field(None, max_length=255)
    teacher_comment: str | None = None


class ResultUpdate(BaseSchema):
    """Result update schema. Totals and positions are derived, never accepted."""

    ca_score: Decimal | None = Field(None, ge=0, le=CA_SCORE_MAX, decimal_places=2)
    exam_score: Decimal | None = Field(None, ge=0, le=EXAM_SCORE_MAX, decimal_places=2)
    remark: str | None = Field(None, max_length=255)
    teacher_comment: str | None = None


class ResultResponse(BaseSchema):
    """Result response schema."""

    id: int
    student_id: int
    student_name: str
    admission_number: str
    class_name: str
    subject_id: int
    subject_name: str
    term_id: int
    term_name: str
    ca_score: Decimal
    exam_score: Decimal
    total_score: Decimal
    position: int | None
    grade: str
    grade_remark: str
    grade_points: int
    remark: str | None
    teacher_comment: str | None
    teacher_id: int | None
    is_cbt_exam: bool
    cbt_exam_attempt_id: int | None
    manual_exam_score: Decimal | None
    cbt_synced_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ResultFilter(BaseSchema):
    """Result filtering options."""

    student_id: int | None = None
    subject_id: int | None = None
    term_id: int | None = None
    class_name: str | None = None
    teacher_id: int | None = None
    min_score: Decimal | None = None
    max_score: Decimal | None = None


class CohortEntry(BaseSchema):
    """One ranked row of a subject/term cohort."""

    result_id: int
    student_id: int
    student_name: str
    admission_number: str
    ca_score: Decimal
    exam_score: Decimal
    total_score: Decimal
    position: int | None
    grade: str
    grade_remark: str


class CohortResponse(BaseSchema):
    """Ranked subject/term cohort with summary statistics."""

    subject_id: int
    term_id: int
    total_students: int
    average_score: Decimal | None
    highest_score: Decimal | None
    lowest_score: Decimal | None
    entries: list[CohortEntry]


# ==========================================
# Bulk Operations
# ==========================================

class SingleScoreInput(BaseSchema):
    """Single student score entry for bulk operations."""

    student_id: int
    ca_score: Decimal = Field(..., ge=0, le=CA_SCORE_MAX, decimal_places=2)
    exam_score: Decimal = Field(..., ge=0, le=EXAM_SCORE_MAX, decimal_places=2)
    remark: str | None = Field(None, max_length=255)


class BulkResultCreate(BaseSchema):
    """Bulk score entry for one subject/term cohort."""

    subject_id: int
    term_id: int
    records: list[SingleScoreInput] = Field(..., min_length=1)


class BulkResultResponse(BaseSchema):
    """Bulk save result."""

    total_records: int
    created: int
    updated: int
    failed: int
    errors: list[dict]
    message: str


class RecomputeResponse(BaseSchema):
    """Result of a manual cohort re-rank."""

    subject_id: int
    term_id: int
    records_ranked: int
    positions_changed: int
