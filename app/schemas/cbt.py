"""CBT schemas: exams, questions, attempts and CBT-result integration."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field, model_validator

from app.models.cbt import AttemptStatus, QuestionType
from app.schemas.common import BaseSchema


# ==========================================
# Exams and Questions
# ==========================================

class ExamCreate(BaseSchema):
    """CBT exam creation schema."""

    title: str = Field(..., min_length=1, max_length=255)
    subject_id: int
    term_id: int | None = None
    description: str | None = None
    instructions: str | None = None
    duration_minutes: int = Field(60, gt=0, le=600)
    pass_percentage: Decimal = Field(Decimal("60"), ge=0, le=100)


class ExamResponse(BaseSchema):
    """CBT exam response schema."""

    id: int
    title: str
    subject_id: int
    term_id: int | None
    teacher_id: int | None
    description: str | None
    instructions: str | None
    duration_minutes: int
    pass_percentage: Decimal
    is_published: bool
    total_marks: Decimal
    question_count: int
    created_at: datetime


class QuestionOption(BaseSchema):
    """Multiple-choice option."""

    key: str = Field(..., min_length=1, max_length=5)
    text: str = Field(..., min_length=1)


class QuestionCreate(BaseSchema):
    """Question creation schema. The question is attached to the exam."""

    question_type: QuestionType
    question_text: str = Field(..., min_length=1)
    options: list[QuestionOption] | None = None
    correct_answer: str | None = None
    marks: Decimal = Field(Decimal("1"), gt=0)
    question_order: int | None = None

    @model_validator(mode="after")
    def check_answer_key(self) -> "QuestionCreate":
        if self.question_type == QuestionType.MULTIPLE_CHOICE:
            if not self.options or len(self.options) < 2:
                raise ValueError("multiple choice questions need at least two options")
            keys = {o.key.lower() for o in self.options}
            if self.correct_answer is None or self.correct_answer.lower() not in keys:
                raise ValueError("correct_answer must be one of the option keys")
        elif self.question_type == QuestionType.TRUE_FALSE:
            if (self.correct_answer or "").lower() not in ("true", "false"):
                raise ValueError("correct_answer must be 'true' or 'false'")
        return self


class QuestionResponse(BaseSchema):
    """Question as shown to staff (includes the answer key)."""

    id: int
    question_type: QuestionType
    question_text: str
    options: list[dict[str, Any]] | None
    correct_answer: str | None
    marks: Decimal


class ExamQuestionView(BaseSchema):
    """Question as shown to a student taking the exam."""

    question_id: int
    question_order: int
    question_type: QuestionType
    question_text: str
    options: list[dict[str, Any]] | None
    marks: Decimal
    answer_text: str | None = None
    is_flagged: bool = False


# ==========================================
# Attempts
# ==========================================

class AnswerSubmit(BaseSchema):
    """Answer submission for one question."""

    question_id: int
    answer: str
    time_spent: int | None = Field(None, ge=0)


class AnswerGrade(BaseSchema):
    """Manual grading of one answer."""

    marks: Decimal = Field(..., ge=0, decimal_places=2)
    is_correct: bool | None = None


class AnswerResponse(BaseSchema):
    """Stored answer."""

    id: int
    question_id: int
    answer_text: str | None
    is_correct: bool | None
    marks_obtained: Decimal
    is_flagged: bool


class AttemptResponse(BaseSchema):
    """Exam attempt response schema."""

    id: int
    exam_id: int
    student_id: int
    status: AttemptStatus
    start_time: datetime | None
    end_time: datetime | None
    time_taken: int | None
    total_score: Decimal
    percentage: Decimal
    auto_submitted: bool
    time_remaining: int | None = None


class AttemptSession(BaseSchema):
    """Everything a student needs to continue an attempt."""

    attempt: AttemptResponse
    exam_title: str
    instructions: str | None
    questions: list[ExamQuestionView]


# ==========================================
# CBT / Result Integration
# ==========================================

class CBTOverride(BaseSchema):
    """Manual override of a CBT-derived exam score."""

    exam_score: Decimal = Field(..., ge=0, decimal_places=2)


class BulkSyncRequest(BaseSchema):
    """Bulk sync of completed attempts for a term."""

    term_id: int
    subject_id: int | None = None


class BulkSyncResponse(BaseSchema):
    """Bulk sync outcome."""

    synced: list[int]
    failed: list[dict]
    total_processed: int
