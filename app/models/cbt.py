"""Computer-based testing models: exams, questions, attempts and answers."""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DECIMAL,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.base import IDMixin, IDType, JSONType, TimestampMixin


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class QuestionType(str, enum.Enum):
    """Supported question types."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    ESSAY = "essay"


class AttemptStatus(str, enum.Enum):
    """Lifecycle of an exam attempt."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Exam(Base, IDMixin, TimestampMixin):
    """A timed CBT exam for one subject."""

    __tablename__ = "exams"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Optional; the current term is used when an exam is not pinned to one
    term_id: Mapped[int | None] = mapped_column(
        IDType,
        ForeignKey("terms.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    teacher_id: Mapped[int | None] = mapped_column(
        IDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    pass_percentage: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("60"))
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    questions: Mapped[list["ExamQuestion"]] = relationship(
        "ExamQuestion",
        back_populates="exam",
        order_by="ExamQuestion.question_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def total_marks(self) -> Decimal:
        return sum((q.marks_allocated for q in self.questions), Decimal("0"))

    def __repr__(self) -> str:
        return f"<Exam(id={self.id}, title={self.title}, subject_id={self.subject_id})>"


class Question(Base, IDMixin, TimestampMixin):
    """Question bank entry, reusable across exams."""

    __tablename__ = "questions"

    subject_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_type: Mapped[QuestionType] = mapped_column(
        Enum(QuestionType, values_callable=_enum_values),
        nullable=False,
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    # [{"key": "a", "text": "..."}, ...] for multiple choice
    options: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    marks: Mapped[Decimal] = mapped_column(DECIMAL(6, 2), nullable=False, default=Decimal("1"))

    @property
    def is_auto_gradable(self) -> bool:
        return self.question_type != QuestionType.ESSAY and self.correct_answer is not None

    def check_answer(self, answer: str) -> bool:
        """Compare an answer to the key, ignoring case and surrounding whitespace."""
        if self.correct_answer is None:
            return False
        return answer.strip().lower() == self.correct_answer.strip().lower()

    def __repr__(self) -> str:
        return f"<Question(id={self.id}, type={self.question_type})>"


class ExamQuestion(Base):
    """Question placement within an exam."""

    __tablename__ = "exam_questions"

    exam_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("exams.id", ondelete="CASCADE"),
        primary_key=True,
    )
    question_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("questions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    question_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    marks_allocated: Mapped[Decimal] = mapped_column(DECIMAL(6, 2), nullable=False)

    exam: Mapped["Exam"] = relationship("Exam", back_populates="questions")
    question: Mapped["Question"] = relationship("Question", lazy="selectin")


class StudentExamAttempt(Base, IDMixin, TimestampMixin):
    """One student's run of one exam."""

    __tablename__ = "student_exam_attempts"

    exam_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[AttemptStatus] = mapped_column(
        Enum(AttemptStatus, values_callable=_enum_values),
        nullable=False,
        default=AttemptStatus.NOT_STARTED,
        index=True,
    )
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    time_taken: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    total_score: Mapped[Decimal] = mapped_column(DECIMAL(8, 2), nullable=False, default=Decimal("0"))
    percentage: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    auto_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(50), nullable=True)

    exam: Mapped["Exam"] = relationship("Exam", lazy="selectin")
    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    answers: Mapped[list["StudentAnswer"]] = relationship(
        "StudentAnswer",
        back_populates="attempt",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_attempt_exam_student"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED

    @property
    def is_in_progress(self) -> bool:
        return self.status == AttemptStatus.IN_PROGRESS

    def __repr__(self) -> str:
        return f"<StudentExamAttempt(id={self.id}, exam_id={self.exam_id}, status={self.status})>"


class StudentAnswer(Base, IDMixin, TimestampMixin):
    """Answer to one question within an attempt."""

    __tablename__ = "student_answers"

    attempt_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("student_exam_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[int] = mapped_column(
        IDType,
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    answer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_correct: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    marks_obtained: Mapped[Decimal] = mapped_column(DECIMAL(6, 2), nullable=False, default=Decimal("0"))
    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    attempt: Mapped["StudentExamAttempt"] = relationship("StudentExamAttempt", back_populates="answers")
    question: Mapped["Question"] = relationship("Question", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )

    @property
    def is_answered(self) -> bool:
        return self.answer_text is not None and self.answer_text.strip() != ""


# Import to avoid circular imports
from app.models.academic import Student
