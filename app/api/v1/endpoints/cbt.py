"""CBT endpoints: exams, attempts and the CBT-to-result link."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import CurrentUser, StaffUser, StudentUser, client_ip
from app.models.audit import AuditAction
from app.models.cbt import AttemptStatus
from app.models.user import UserRole
from app.schemas.cbt import (
    AnswerGrade,
    AnswerResponse,
    AnswerSubmit,
    AttemptResponse,
    AttemptSession,
    BulkSyncRequest,
    BulkSyncResponse,
    CBTOverride,
    ExamCreate,
    ExamResponse,
    QuestionCreate,
    QuestionResponse,
)
from app.schemas.common import PaginatedResponse
from app.schemas.result import ResultResponse
from app.services.academic import AcademicService
from app.services.audit import AuditService
from app.services.cbt import ExamAttemptService, ExamService, exam_to_response
from app.services.cbt_sync import CBTResultIntegrationService
from app.services.result import result_to_response

router = APIRouter()


# ==========================================
# Exams
# ==========================================

@router.post("/exams", response_model=ExamResponse)
def create_exam(
    request: ExamCreate,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Create an unpublished exam.
    """
    exam = ExamService(db).create_exam(request, user)

    AuditService(db).log(
        action=AuditAction.DATA_CREATED,
        resource_type="exam",
        resource_id=str(exam.id),
        user_id=user.id,
        description=f"Exam '{exam.title}' created",
        ip_address=client_ip(http_request),
    )
    return exam_to_response(exam)


@router.get("/exams", response_model=PaginatedResponse[ExamResponse])
def list_exams(
    user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
    subject_id: int | None = None,
    term_id: int | None = None,
    is_published: bool | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    """
    List exams. Students only ever see published exams.
    """
    if user.role == UserRole.STUDENT:
        is_published = True
    items, total = ExamService(db).list_exams(
        subject_id=subject_id,
        term_id=term_id,
        is_published=is_published,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse.build(items, total, page, page_size)


@router.get("/exams/{exam_id}", response_model=ExamResponse)
def get_exam(exam_id: int, user: StaffUser, db: Annotated[Session, Depends(get_db)]):
    return exam_to_response(ExamService(db).get_exam(exam_id))


@router.post("/exams/{exam_id}/questions", response_model=QuestionResponse)
def add_question(
    exam_id: int,
    request: QuestionCreate,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Add a question to an unpublished exam.
    """
    return ExamService(db).add_question(exam_id, request)


@router.get("/exams/{exam_id}/questions", response_model=list[QuestionResponse])
def list_questions(exam_id: int, user: StaffUser, db: Annotated[Session, Depends(get_db)]):
    return ExamService(db).list_questions(exam_id)


@router.post("/exams/{exam_id}/publish", response_model=ExamResponse)
def publish_exam(exam_id: int, user: StaffUser, db: Annotated[Session, Depends(get_db)]):
    return exam_to_response(ExamService(db).publish_exam(exam_id))


@router.post("/exams/{exam_id}/unpublish", response_model=ExamResponse)
def unpublish_exam(exam_id: int, user: StaffUser, db: Annotated[Session, Depends(get_db)]):
    return exam_to_response(ExamService(db).unpublish_exam(exam_id))


# ==========================================
# Attempts (student)
# ==========================================

@router.post("/exams/{exam_id}/start", response_model=AttemptSession)
def start_attempt(
    exam_id: int,
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Start the exam, or resume the attempt already in progress.
    """
    student = AcademicService(db).get_student_for_user(user.id)
    service = ExamAttemptService(db)
    attempt = service.start_attempt(exam_id, student, ip_address=client_ip(http_request))
    return service.build_session(attempt)


@router.get("/attempts/{attempt_id}", response_model=AttemptSession)
def get_attempt_session(
    attempt_id: int,
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
):
    student = AcademicService(db).get_student_for_user(user.id)
    service = ExamAttemptService(db)
    return service.build_session(service.get_student_attempt(attempt_id, student))


@router.post("/attempts/{attempt_id}/answers", response_model=AnswerResponse)
def submit_answer(
    attempt_id: int,
    request: AnswerSubmit,
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
):
    student = AcademicService(db).get_student_for_user(user.id)
    service = ExamAttemptService(db)
    attempt = service.get_student_attempt(attempt_id, student)
    return service.submit_answer(attempt, request)


@router.post("/attempts/{attempt_id}/submit", response_model=AttemptResponse)
def submit_attempt(
    attempt_id: int,
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Submit the attempt. Completion links the score to the student's result.
    """
    student = AcademicService(db).get_student_for_user(user.id)
    service = ExamAttemptService(db)
    attempt = service.get_student_attempt(attempt_id, student)
    return service.to_response(service.submit_attempt(attempt, user))


@router.post("/attempts/{attempt_id}/abandon", response_model=AttemptResponse)
def abandon_attempt(
    attempt_id: int,
    user: StudentUser,
    db: Annotated[Session, Depends(get_db)],
):
    student = AcademicService(db).get_student_for_user(user.id)
    service = ExamAttemptService(db)
    attempt = service.get_student_attempt(attempt_id, student)
    return service.to_response(service.abandon_attempt(attempt, user))


# ==========================================
# Attempts (staff)
# ==========================================

@router.get("/attempts", response_model=list[AttemptResponse])
def list_attempts(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    exam_id: int | None = None,
    student_id: int | None = None,
    status: AttemptStatus | None = None,
):
    service = ExamAttemptService(db)
    attempts = service.list_attempts(exam_id=exam_id, student_id=student_id, status=status)
    return [service.to_response(a) for a in attempts]


@router.post("/answers/{answer_id}/grade", response_model=AnswerResponse)
def grade_answer(
    answer_id: int,
    request: AnswerGrade,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
):
    """
    Manually grade an answer. Use the resync endpoint to push a regraded
    score into the result.
    """
    return ExamAttemptService(db).grade_answer(answer_id, request)


@router.post("/attempts/{attempt_id}/resync", response_model=ResultResponse)
def resync_attempt(
    attempt_id: int,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Re-derive the result of a completed attempt.
    """
    result = CBTResultIntegrationService(db).resync_attempt(attempt_id, user)

    AuditService(db).log(
        action=AuditAction.CBT_SYNCED,
        resource_type="result",
        resource_id=str(result.id),
        user_id=user.id,
        extra_data={"attempt_id": attempt_id},
        ip_address=client_ip(http_request),
    )
    return result_to_response(result)


# ==========================================
# CBT-linked results
# ==========================================

@router.get("/results", response_model=list[ResultResponse])
def list_cbt_results(
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    term_id: int | None = None,
    subject_id: int | None = None,
    student_id: int | None = None,
):
    return CBTResultIntegrationService(db).list_cbt_results(
        term_id=term_id,
        subject_id=subject_id,
        student_id=student_id,
    )


@router.post("/results/bulk-sync", response_model=BulkSyncResponse)
def bulk_sync(
    request: BulkSyncRequest,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Sync every completed attempt of a term that has no linked result yet.
    """
    response = CBTResultIntegrationService(db).bulk_sync(request.term_id, request.subject_id, user)

    AuditService(db).log(
        action=AuditAction.CBT_SYNCED,
        resource_type="term",
        resource_id=str(request.term_id),
        user_id=user.id,
        description=f"Bulk CBT sync: {len(response.synced)} synced, {len(response.failed)} failed",
        ip_address=client_ip(http_request),
    )
    return response


@router.post("/results/{result_id}/revert", response_model=ResultResponse)
def revert_cbt_score(
    result_id: int,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    """
    Unlink the CBT score and restore the manually entered exam score.
    """
    result = CBTResultIntegrationService(db).revert_cbt_score(result_id, user)

    AuditService(db).log(
        action=AuditAction.CBT_REVERTED,
        resource_type="result",
        resource_id=str(result_id),
        user_id=user.id,
        ip_address=client_ip(http_request),
    )
    return result_to_response(result)


@router.post("/results/{result_id}/override", response_model=ResultResponse)
def override_cbt_score(
    result_id: int,
    request: CBTOverride,
    user: StaffUser,
    db: Annotated[Session, Depends(get_db)],
    http_request: Request,
):
    result = CBTResultIntegrationService(db).override_cbt_score(result_id, request.exam_score, user)

    AuditService(db).log(
        action=AuditAction.CBT_OVERRIDDEN,
        resource_type="result",
        resource_id=str(result_id),
        user_id=user.id,
        extra_data={"exam_score": str(request.exam_score)},
        ip_address=client_ip(http_request),
    )
    return result_to_response(result)
