"""Result (score record) endpoints."""

from decimal import Decimal
from io import BytesIO
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import StaffUser, StudentUser, client_ip
from app.models.audit import AuditAction
from app.schemas.common import MessageResponse, PaginatedResponse
from app.schemas.result import (
    BulkResultCreate,
    BulkResultResponse,
    CohortResponse,
    RecomputeResponse,
    ResultCreate,
    ResultFilter,
    ResultResponse,
    ResultUpdate,
)
from app.services.academic import AcademicService
from app.services.audit import AuditService
from app.services.result import ResultService, result_to_response

router = APIRouter()


@router.post("", response_model=ResultResponse)
def create_result(
    request: ResultCreate,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create a single result. The total and the cohort positions are derived.
    Returns 409 if the student already has a result for the subject and term.
    """
    result = ResultService(db).create_result(request, user)

    AuditService(db).log(
        action=AuditAction.RESULT_CREATED,
        resource_type="result",
        resource_id=str(result.id),
        user_id=user.id,
        description=f"Result created for student {result.student_id} in {result.subject_name}",
        ip_address=client_ip(http_request),
    )
    return result


@router.get("", response_model=PaginatedResponse[ResultResponse])
def list_results(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    student_id: int | None = None,
    subject_id: int | None = None,
    term_id: int | None = None,
    class_name: str | None = None,
    teacher_id: int | None = None,
    min_score: Decimal | None = Query(None, ge=0),
    max_score: Decimal | None = Query(None, ge=0),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
):
    """
    List results with filtering and pagination.
    """
    filters = ResultFilter(
        student_id=student_id,
        subject_id=subject_id,
        term_id=term_id,
        class_name=class_name,
        teacher_id=teacher_id,
        min_score=min_score,
        max_score=max_score,
    )
    items, total = ResultService(db).list_results(filters=filters, page=page, page_size=page_size)
    return PaginatedResponse.build(items, total, page, page_size)


@router.get("/me", response_model=list[ResultResponse])
def my_results(
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
    term_id: int | None = None,
):
    """
    Results of the student linked to the current account.
    """
    student = AcademicService(db).get_student_for_user(user.id)
    items, _ = ResultService(db).list_results(
        filters=ResultFilter(student_id=student.id, term_id=term_id),
        page=1,
        page_size=500,
    )
    return items


@router.get("/cohort", response_model=CohortResponse)
def get_cohort(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    subject_id: int = Query(...),
    term_id: int = Query(...),
):
    """
    Ranked results for one subject and term with average, highest and lowest totals.
    """
    return ResultService(db).get_cohort(subject_id, term_id)


@router.post("/recompute", response_model=RecomputeResponse)
def recompute_positions(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
    subject_id: int = Query(...),
    term_id: int = Query(...),
):
    """
    Re-rank one subject/term cohort.
    """
    response = ResultService(db).recompute_positions(subject_id, term_id)

    AuditService(db).log(
        action=AuditAction.POSITIONS_RECOMPUTED,
        resource_type="cohort",
        resource_id=f"{subject_id}:{term_id}",
        user_id=user.id,
        description=f"{response.positions_changed} of {response.records_ranked} positions changed",
        ip_address=client_ip(http_request),
    )
    return response


@router.post("/bulk", response_model=BulkResultResponse)
def bulk_save_results(
    request: BulkResultCreate,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create or update results for many students of one subject and term.
    Nothing is saved if any student is unknown.
    """
    response = ResultService(db).bulk_upsert(request, user)

    if response.failed == 0:
        AuditService(db).log(
            action=AuditAction.RESULT_BULK_SAVED,
            resource_type="result",
            user_id=user.id,
            description=f"Bulk results saved: {response.created} created, {response.updated} updated",
            extra_data={"subject_id": request.subject_id, "term_id": request.term_id},
            ip_address=client_ip(http_request),
        )
    return response


@router.get("/export")
def export_results(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    subject_id: int | None = None,
    term_id: int | None = None,
    class_name: str | None = None,
):
    """
    Export results to Excel file.
    """
    filters = ResultFilter(subject_id=subject_id, term_id=term_id, class_name=class_name)
    content = ResultService(db).export_results(filters)

    filename = "results"
    if class_name:
        filename += f"_{class_name.replace(' ', '_')}"
    if term_id:
        filename += f"_term{term_id}"
    filename += ".xlsx"

    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/{result_id}", response_model=ResultResponse)
def get_result(
    result_id: int,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
):
    return result_to_response(ResultService(db).get_result(result_id))


@router.patch("/{result_id}", response_model=ResultResponse)
def update_result(
    result_id: int,
    request: ResultUpdate,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Update the CA/exam components or comments of a result.
    """
    result = ResultService(db).update_result(result_id, request, user)

    AuditService(db).log(
        action=AuditAction.RESULT_UPDATED,
        resource_type="result",
        resource_id=str(result_id),
        user_id=user.id,
        extra_data={"changes": request.model_dump(exclude_unset=True, mode="json")},
        ip_address=client_ip(http_request),
    )
    return result


@router.delete("/{result_id}", response_model=MessageResponse)
def delete_result(
    result_id: int,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Delete a result. The rest of its cohort is re-ranked.
    """
    ResultService(db).delete_result(result_id, user)

    AuditService(db).log(
        action=AuditAction.RESULT_DELETED,
        resource_type="result",
        resource_id=str(result_id),
        user_id=user.id,
        ip_address=client_ip(http_request),
    )
    return MessageResponse(message="Result deleted successfully")
