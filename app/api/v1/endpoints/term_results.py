"""Compiled term result endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import StaffUser, StudentUser, client_ip
from app.models.audit import AuditAction
from app.schemas.term_result import (
    ClassStatistics,
    CompileResponse,
    StudentTermReport,
    TermResultCompile,
    TermResultResponse,
    TermResultUpdate,
)
from app.services.academic import AcademicService
from app.services.audit import AuditService
from app.services.term_result import TermResultService

router = APIRouter()


@router.post("/compile", response_model=CompileResponse)
def compile_term_results(
    request: TermResultCompile,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Compile averages and class positions for every student in a class.
    Recompiling replaces the previous figures.
    """
    outcome = TermResultService(db).compile_class(request.class_name, request.term_id)

    AuditService(db).log(
        action=AuditAction.TERM_RESULTS_COMPILED,
        resource_type="term_result",
        resource_id=f"{request.class_name}:{request.term_id}",
        user_id=user.id,
        description=f"Compiled {outcome.compiled} term results for {request.class_name}",
        ip_address=client_ip(http_request),
    )
    return outcome


@router.get("", response_model=list[TermResultResponse])
def list_term_results(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    class_name: str = Query(...),
    term_id: int = Query(...),
):
    """
    Compiled results of a class, best average first.
    """
    return TermResultService(db).list_class_results(class_name, term_id)


@router.get("/statistics", response_model=ClassStatistics)
def class_statistics(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    class_name: str = Query(...),
    term_id: int = Query(...),
):
    """
    Average, range, pass rate and grade distribution of a class's subject results.
    """
    return TermResultService(db).get_class_statistics(class_name, term_id)


@router.get("/me", response_model=StudentTermReport)
def my_term_report(
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
    term_id: int = Query(...),
):
    """
    Term report of the student linked to the current account.
    """
    student = AcademicService(db).get_student_for_user(user.id)
    return TermResultService(db).get_student_report(student.id, term_id)


@router.get("/students/{student_id}", response_model=StudentTermReport)
def student_term_report(
    student_id: int,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    term_id: int = Query(...),
):
    """
    Term report of one student.
    """
    return TermResultService(db).get_student_report(student_id, term_id)


@router.patch("/{term_result_id}", response_model=TermResultResponse)
def update_comments(
    term_result_id: int,
    request: TermResultUpdate,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Set the teacher's or principal's comment on a term result.
    """
    term_result = TermResultService(db).update_comments(term_result_id, request)

    AuditService(db).log(
        action=AuditAction.DATA_UPDATED,
        resource_type="term_result",
        resource_id=str(term_result.id),
        user_id=user.id,
        description=f"Comments updated for {term_result.student_name}",
        ip_address=client_ip(http_request),
    )
    return term_result
