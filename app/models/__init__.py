"""Database models package."""

from app.models.academic import Student, Subject, Term
from app.models.audit import AuditAction, AuditLog
from app.models.cbt import (
    AttemptStatus,
    Exam,
    ExamQuestion,
    Question,
    QuestionType,
    StudentAnswer,
    StudentExamAttempt,
)
from app.models.notification import Notification
from app.models.result import Result, TermResult
from app.models.user import User, UserRole

__all__ = [
    # User
    "User",
    "UserRole",
    # Academic
    "Student",
    "Subject",
    "Term",
    # Result
    "Result",
    "TermResult",
    # CBT
    "Exam",
    "Question",
    "QuestionType",
    "ExamQuestion",
    "StudentExamAttempt",
    "StudentAnswer",
    "AttemptStatus",
    # Audit
    "AuditLog",
    "AuditAction",
    # Notification
    "Notification",
]
