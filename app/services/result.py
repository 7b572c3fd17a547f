"""Result service: the single write path for score records."""

import logging
from decimal import Decimal
from io import BytesIO
from typing import NamedTuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.academic import Student, Subject, Term
from app.models.result import Result
from app.models.user import User
from app.schemas.result import (
    BulkResultCreate,
    BulkResultResponse,
    CohortEntry,
    CohortResponse,
    RecomputeResponse,
    ResultCreate,
    ResultFilter,
    ResultResponse,
    ResultUpdate,
)
from app.services.notification import (
    notify_result_created,
    notify_result_deleted,
    notify_result_updated,
)
from app.services.ranking import compute_total, load_cohort, recompute_cohort

logger = logging.getLogger(__name__)

SCORE_FIELDS = ("ca_score", "exam_score", "total_score")


class GradeInfo(NamedTuple):
    grade: str
    remark: str
    points: int


# Lower bound of each band, best first
GRADE_BANDS = (
    (Decimal("70"), GradeInfo("A", "Excellent", 5)),
    (Decimal("60"), GradeInfo("B", "Very Good", 4)),
    (Decimal("50"), GradeInfo("C", "Good", 3)),
    (Decimal("45"), GradeInfo("D", "Fair", 2)),
    (Decimal("40"), GradeInfo("E", "Pass", 1)),
)
FAIL = GradeInfo("F", "Fail", 0)


def grade_info(total: Decimal) -> GradeInfo:
    """Grade, remark and grade points for a total out of 100."""
    for lower_bound, info in GRADE_BANDS:
        if total >= lower_bound:
            return info
    return FAIL


def result_to_response(result: Result) -> ResultResponse:
    """Flatten a result and its related rows into the response schema."""
    grading = grade_info(result.total_score)
    return ResultResponse(
        id=result.id,
        student_id=result.student_id,
        student_name=result.student.student_name,
        admission_number=result.student.admission_number,
        class_name=result.student.class_name,
        subject_id=result.subject_id,
        subject_name=result.subject.name,
        term_id=result.term_id,
        term_name=result.term.name,
        ca_score=result.ca_score,
        exam_score=result.exam_score,
        total_score=result.total_score,
        position=result.position,
        grade=grading.grade,
        grade_remark=grading.remark,
        grade_points=grading.points,
        remark=result.remark,
        teacher_comment=result.teacher_comment,
        teacher_id=result.teacher_id,
        is_cbt_exam=result.is_cbt_exam,
        cbt_exam_attempt_id=result.cbt_exam_attempt_id,
        manual_exam_score=result.manual_exam_score,
        cbt_synced_at=result.cbt_synced_at,
        created_at=result.created_at,
        updated_at=result.updated_at,
    )


class ResultService:
    """Score record management service."""

    def __init__(self, db: Session):
        self.db = db

    # ==========================================
    # Write path
    # ==========================================

    def save_score(
        self,
        result: Result,
        actor: User | None,
        notify: bool = True,
        rerank: bool = True,
    ) -> Result:
        """Persist a result: compute total, flush, re-rank the cohort, notify.

        Creation is detected from the object's state, so callers pass either a
        new transient Result or a loaded one with edited components.
        """
        is_new = result.id is None

        compute_total(result)
        scores_changed = is_new or self._scores_changed(result)
        if is_new:
            self.db.add(result)
        self.db.flush()

        if rerank:
            recompute_cohort(self.db, result.subject_id, result.term_id)

        if notify:
            if is_new:
                notify_result_created(self.db, result, actor)
            elif scores_changed:
                notify_result_updated(self.db, result, actor)

        return result

    def _scores_changed(self, result: Result) -> bool:
        """True when a score field differs from its loaded value."""
        state = inspect(result)
        return any(state.attrs[field].history.has_changes() for field in SCORE_FIELDS)

    # ==========================================
    # CRUD
    # ==========================================

    def create_result(self, request: ResultCreate, actor: User | None) -> ResultResponse:
        """Create a single result."""
        self._get_student(request.student_id)
        self._get_subject(request.subject_id)
        self._get_term(request.term_id)

        existing = self.find_result(request.student_id, request.subject_id, request.term_id)
        if existing:
            raise ConflictError(
                "Result already exists for this student, subject and term",
                details={"result_id": existing.id},
            )

        result = Result(
            student_id=request.student_id,
            subject_id=request.subject_id,
            term_id=request.term_id,
            ca_score=request.ca_score,
            exam_score=request.exam_score,
            remark=request.remark,
            teacher_comment=request.teacher_comment,
            teacher_id=actor.id if actor else None,
        )
        self.save_score(result, actor)
        logger.info(f"Result {result.id} created for student {result.student_id}")
        return result_to_response(result)

    def update_result(self, result_id: int, request: ResultUpdate, actor: User | None) -> ResultResponse:
        """Update score components or comments of a result."""
        result = self.get_result(result_id)

        update_data = request.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if field in ("ca_score", "exam_score") and value is None:
                raise ValidationError(f"{field} cannot be null")
            setattr(result, field, value)

        self.save_score(result, actor)
        return result_to_response(result)

    def delete_result(self, result_id: int, actor: User | None) -> None:
        """Delete a result, re-rank the remaining cohort and notify the student."""
        result = self.get_result(result_id)
        subject_id, term_id = result.subject_id, result.term_id
        student_user_id = result.student.user_id
        subject_name, term_name = result.subject.name, result.term.name

        self.db.delete(result)
        self.db.flush()

        recompute_cohort(self.db, subject_id, term_id)
        notify_result_deleted(self.db, student_user_id, subject_name, term_name, actor)
        logger.info(f"Result {result_id} deleted; cohort subject={subject_id} term={term_id} re-ranked")

    def get_result(self, result_id: int) -> Result:
        """Get result by ID."""
        result = self.db.get(Result, result_id)
        if not result:
            raise NotFoundError("Result", str(result_id))
        return result

    def find_result(self, student_id: int, subject_id: int, term_id: int) -> Result | None:
        """Look up the result for a (student, subject, term) key."""
        return self.db.execute(
            select(Result).where(
                Result.student_id == student_id,
                Result.subject_id == subject_id,
                Result.term_id == term_id,
            )
        ).scalar_one_or_none()

    def _filtered_query(self, filters: ResultFilter | None):
        query = select(Result)
        if not filters:
            return query
        if filters.student_id:
            query = query.where(Result.student_id == filters.student_id)
        if filters.subject_id:
            query = query.where(Result.subject_id == filters.subject_id)
        if filters.term_id:
            query = query.where(Result.term_id == filters.term_id)
        if filters.teacher_id:
            query = query.where(Result.teacher_id == filters.teacher_id)
        if filters.min_score is not None:
            query = query.where(Result.total_score >= filters.min_score)
        if filters.max_score is not None:
            query = query.where(Result.total_score <= filters.max_score)
        if filters.class_name:
            query = query.join(Student, Student.id == Result.student_id).where(
                Student.class_name == filters.class_name
            )
        return query

    def list_results(
        self,
        filters: ResultFilter | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[ResultResponse], int]:
        """List results with filtering."""
        query = self._filtered_query(filters)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar() or 0

        query = (
            query
            .order_by(Result.term_id.desc(), Result.subject_id, Result.position, Result.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        records = self.db.execute(query).scalars().all()
        return [result_to_response(r) for r in records], total

    def get_cohort(self, subject_id: int, term_id: int) -> CohortResponse:
        """Ranked cohort for a subject/term with summary statistics."""
        self._get_subject(subject_id)
        self._get_term(term_id)

        cohort = load_cohort(self.db, subject_id, term_id)
        totals = [r.total_score for r in cohort]
        average = sum(totals) / len(totals) if totals else None

        entries = []
        for r in cohort:
            grading = grade_info(r.total_score)
            entries.append(
                CohortEntry(
                    result_id=r.id,
                    student_id=r.student_id,
                    student_name=r.student.student_name,
                    admission_number=r.student.admission_number,
                    ca_score=r.ca_score,
                    exam_score=r.exam_score,
                    total_score=r.total_score,
                    position=r.position,
                    grade=grading.grade,
                    grade_remark=grading.remark,
                )
            )

        return CohortResponse(
            subject_id=subject_id,
            term_id=term_id,
            total_students=len(cohort),
            average_score=Decimal(str(average)).quantize(Decimal("0.01")) if average is not None else None,
            highest_score=max(totals) if totals else None,
            lowest_score=min(totals) if totals else None,
            entries=entries,
        )

    def recompute_positions(self, subject_id: int, term_id: int) -> RecomputeResponse:
        """Force a re-rank of one cohort (manual recovery)."""
        self._get_subject(subject_id)
        self._get_term(term_id)
        changed = recompute_cohort(self.db, subject_id, term_id)
        count = len(load_cohort(self.db, subject_id, term_id))
        return RecomputeResponse(
            subject_id=subject_id,
            term_id=term_id,
            records_ranked=count,
            positions_changed=changed,
        )

    # ==========================================
    # Bulk Operations
    # ==========================================

    def bulk_upsert(self, request: BulkResultCreate, actor: User | None) -> BulkResultResponse:
        """Create or update the scores of many students in one cohort.

        Every student is validated before anything is written. The cohort is
        re-ranked once after all rows are saved.
        """
        self._get_subject(request.subject_id)
        self._get_term(request.term_id)

        student_ids = {r.student_id for r in request.records}
        found = set(
            self.db.execute(select(Student.id).where(Student.id.in_(student_ids))).scalars().all()
        )
        errors = [
            {"student_id": sid, "message": f"Student ID {sid} not found"}
            for sid in sorted(student_ids - found)
        ]
        if errors:
            return BulkResultResponse(
                total_records=len(request.records),
                created=0,
                updated=0,
                failed=len(errors),
                errors=errors,
                message="Validation failed. No records were saved.",
            )

        created = 0
        updated = 0
        for record in request.records:
            existing = self.find_result(record.student_id, request.subject_id, request.term_id)
            if existing:
                existing.ca_score = record.ca_score
                existing.exam_score = record.exam_score
                if record.remark is not None:
                    existing.remark = record.remark
                self.save_score(existing, actor, rerank=False)
                updated += 1
            else:
                result = Result(
                    student_id=record.student_id,
                    subject_id=request.subject_id,
                    term_id=request.term_id,
                    ca_score=record.ca_score,
                    exam_score=record.exam_score,
                    remark=record.remark,
                    teacher_id=actor.id if actor else None,
                )
                self.save_score(result, actor, rerank=False)
                created += 1

        recompute_cohort(self.db, request.subject_id, request.term_id)
        logger.info(
            f"Bulk save subject={request.subject_id} term={request.term_id}: "
            f"{created} created, {updated} updated"
        )

        return BulkResultResponse(
            total_records=len(request.records),
            created=created,
            updated=updated,
            failed=0,
            errors=[],
            message=f"Successfully saved {created + updated} results.",
        )

    # ==========================================
    # Export
    # ==========================================

    def export_results(self, filters: ResultFilter | None = None) -> bytes:
        """Write filtered results to an Excel workbook."""
        query = self._filtered_query(filters).order_by(
            Result.term_id, Result.subject_id, Result.position, Result.id
        )
        records = self.db.execute(query).scalars().all()

        wb = Workbook()
        ws = wb.active
        ws.title = "Results"

        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        thin_border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin"),
        )

        headers = [
            "Student Name",
            "Admission Number",
            "Class",
            "Subject",
            "Term",
            "Session",
            "CA Score",
            "Exam Score",
            "Total Score",
            "Position",
            "Grade",
            "Grade Remark",
            "Points",
            "Remark",
        ]
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal="center", vertical="center")

        for row_idx, r in enumerate(records, start=2):
            grading = grade_info(r.total_score)
            values = [
                r.student.student_name,
                r.student.admission_number,
                r.student.class_name,
                r.subject.name,
                r.term.name,
                r.term.session_name,
                float(r.ca_score),
                float(r.exam_score),
                float(r.total_score),
                r.position,
                grading.grade,
                grading.remark,
                grading.points,
                r.remark or "",
            ]
            for col_idx, value in enumerate(values, start=1):
                ws.cell(row=row_idx, column=col_idx, value=value).border = thin_border

        for col, width in zip("ABCDEFGHIJKLMN", (25, 18, 10, 18, 14, 12, 10, 10, 11, 9, 7, 14, 7, 25)):
            ws.column_dimensions[col].width = width

        output = BytesIO()
        wb.save(output)
        return output.getvalue()

    # ==========================================
    # Lookups
    # ==========================================

    def _get_student(self, student_id: int) -> Student:
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student", str(student_id))
        return student

    def _get_subject(self, subject_id: int) -> Subject:
        subject = self.db.get(Subject, subject_id)
        if not subject:
            raise NotFoundError("Subject", str(subject_id))
        return subject

    def _get_term(self, term_id: int) -> Term:
        term = self.db.get(Term, term_id)
        if not term:
            raise NotFoundError("Term", str(term_id))
        return term
