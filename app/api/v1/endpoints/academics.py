"""Student, subject and term endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import AdminUser, CurrentUser, StaffUser, client_ip
from app.models.audit import AuditAction
from app.schemas.academic import (
    StudentCreate,
    StudentResponse,
    SubjectCreate,
    SubjectResponse,
    TermCreate,
    TermResponse,
)
from app.schemas.common import PaginatedResponse
from app.services.academic import AcademicService
from app.services.audit import AuditService

router = APIRouter()


# ==========================================
# Students
# ==========================================

@router.post("/students", response_model=StudentResponse)
def create_student(
    request: StudentCreate,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create a student. Admin only.
    """
    student = AcademicService(db).create_student(request)

    AuditService(db).log(
        action=AuditAction.DATA_CREATED,
        resource_type="student",
        resource_id=str(student.id),
        user_id=admin.id,
        description=f"Student {student.admission_number} created",
        ip_address=client_ip(http_request),
    )
    return student


@router.get("/students", response_model=PaginatedResponse[StudentResponse])
def list_students(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    class_name: str | None = None,
    search: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """
    List students, optionally filtered by class or searched by name.
    """
    students, total = AcademicService(db).list_students(
        class_name=class_name,
        search=search,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse.build(students, total, page, page_size)


@router.get("/students/{student_id}", response_model=StudentResponse)
def get_student(
    student_id: int,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
):
    return AcademicService(db).get_student(student_id)


# ==========================================
# Subjects
# ==========================================

@router.post("/subjects", response_model=SubjectResponse)
def create_subject(
    request: SubjectCreate,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create a subject. Admin only.
    """
    subject = AcademicService(db).create_subject(request)

    AuditService(db).log(
        action=AuditAction.DATA_CREATED,
        resource_type="subject",
        resource_id=str(subject.id),
        user_id=admin.id,
        description=f"Subject '{subject.name}' created",
        ip_address=client_ip(http_request),
    )
    return subject


@router.get("/subjects", response_model=list[SubjectResponse])
def list_subjects(user: CurrentUser, db: Annotated[Session, Depends(get_db)]):
    return AcademicService(db).list_subjects()


# ==========================================
# Terms
# ==========================================

@router.post("/terms", response_model=TermResponse)
def create_term(
    request: TermCreate,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create a term. Marking it current clears the flag on every other term.
    """
    term = AcademicService(db).create_term(request)

    AuditService(db).log(
        action=AuditAction.DATA_CREATED,
        resource_type="term",
        resource_id=str(term.id),
        user_id=admin.id,
        description=f"Term '{term.name} {term.session_name}' created",
        ip_address=client_ip(http_request),
    )
    return term


@router.get("/terms", response_model=list[TermResponse])
def list_terms(user: CurrentUser, db: Annotated[Session, Depends(get_db)]):
    return AcademicService(db).list_terms()


@router.get("/terms/current", response_model=TermResponse | None)
def get_current_term(user: CurrentUser, db: Annotated[Session, Depends(get_db)]):
    """
    Get the current term, or null when none is set.
    """
    return AcademicService(db).get_current_term()


@router.post("/terms/{term_id}/set-current", response_model=TermResponse)
def set_current_term(
    term_id: int,
    admin: AdminUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    term = AcademicService(db).set_current_term(term_id)

    AuditService(db).log(
        action=AuditAction.DATA_UPDATED,
        resource_type="term",
        resource_id=str(term.id),
        user_id=admin.id,
        description=f"Term '{term.name} {term.session_name}' set as current",
        ip_address=client_ip(http_request),
    )
    return term
