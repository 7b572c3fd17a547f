"""Student, subject and term schemas."""

from datetime import date, datetime

from pydantic import Field, model_validator

from app.schemas.common import BaseSchema


class StudentCreate(BaseSchema):
    """Student creation schema."""

    admission_number: str = Field(..., min_length=1, max_length=50)
    student_name: str = Field(..., min_length=1, max_length=255)
    class_name: str = Field(..., min_length=1, max_length=50)
    user_id: int | None = None
    parent_name: str | None = Field(None, max_length=255)
    parent_phone_no: str | None = Field(None, max_length=50)


class StudentResponse(BaseSchema):
    """Student response schema."""

    id: int
    admission_number: str
    student_name: str
    class_name: str
    user_id: int | None
    parent_name: str | None
    parent_phone_no: str | None
    created_at: datetime


class SubjectCreate(BaseSchema):
    """Subject creation schema."""

    name: str = Field(..., min_length=1, max_length=100)
    code: str | None = Field(None, max_length=20)


class SubjectResponse(BaseSchema):
    """Subject response schema."""

    id: int
    name: str
    code: str | None


class TermCreate(BaseSchema):
    """Term creation schema."""

    name: str = Field(..., min_length=1, max_length=100)
    session_name: str = Field(..., min_length=4, max_length=20, description="e.g. 2024/2025")
    start_date: date | None = None
    end_date: date | None = None
    is_current: bool = False

    @model_validator(mode="after")
    def check_dates(self) -> "TermCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TermResponse(BaseSchema):
    """Term response schema."""

    id: int
    name: str
    session_name: str
    start_date: date | None
    end_date: date | None
    is_current: bool
