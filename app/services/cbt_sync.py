"""Attempt-to-result sync: turns a completed CBT attempt into a result row.

The exam-equivalent score is the attempt percentage scaled onto the exam
component (0-60). The result is keyed by (student, exam subject, term), where
the term is the exam's own term or, failing that, the current term.
"""

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import exists, or_, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AttemptStateError, NotFoundError, ValidationError
from app.models.academic import Term
from app.models.cbt import AttemptStatus, Exam, StudentExamAttempt
from app.models.result import Result
from app.models.user import User
from app.schemas.cbt import BulkSyncResponse
from app.schemas.result import ResultResponse
from app.services.result import ResultService, result_to_response

logger = logging.getLogger(__name__)


def exam_score_from_percentage(percentage: Decimal | None) -> Decimal:
    """Scale an attempt percentage onto the exam component, to 2 places."""
    scaled = (Decimal(percentage or 0) / Decimal("100")) * settings.EXAM_SCORE_MAX
    return scaled.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class CBTResultIntegrationService:
    """Links CBT attempts to the result records they produce."""

    def __init__(self, db: Session):
        self.db = db
        self.results = ResultService(db)

    # ==========================================
    # Sync
    # ==========================================

    def sync_attempt(
        self,
        attempt: StudentExamAttempt,
        actor: User | None,
        term_id: int | None = None,
    ) -> Result | None:
        """Create or update the result for a completed attempt.

        Runs inside a savepoint: if anything fails, the result write, the
        re-rank and the notifications are rolled back together and the
        exception propagates. ExamAttemptService.update_status catches and
        logs it so the completion still stands; resync_attempt lets it reach
        the caller and bulk_sync records it per attempt. Returns None when no
        term can be resolved.
        """
        with self.db.begin_nested():
            result = self._derive(attempt, actor, term_id)

        if result is not None:
            logger.info(
                f"CBT score synced for student {attempt.student_id}, "
                f"subject {result.subject_id}, attempt {attempt.id}"
            )
        return result

    def _resolve_term(self, exam: Exam, term_id: int | None) -> Term | None:
        if term_id is not None:
            return self.db.get(Term, term_id)
        if exam.term_id is not None:
            return self.db.get(Term, exam.term_id)
        return self.db.execute(
            select(Term).where(Term.is_current.is_(True)).order_by(Term.id.desc()).limit(1)
        ).scalar_one_or_none()

    def _derive(
        self,
        attempt: StudentExamAttempt,
        actor: User | None,
        term_id: int | None,
    ) -> Result | None:
        exam = attempt.exam
        term = self._resolve_term(exam, term_id)
        if term is None:
            logger.warning(f"No term resolved for CBT attempt {attempt.id}; sync skipped")
            return None

        exam_score = exam_score_from_percentage(attempt.percentage)
        result = self.results.find_result(attempt.student_id, exam.subject_id, term.id)

        if result is None:
            result = Result(
                student_id=attempt.student_id,
                subject_id=exam.subject_id,
                term_id=term.id,
                ca_score=Decimal("0"),
                teacher_id=exam.teacher_id,
            )
        elif not result.is_cbt_exam and result.exam_score > 0:
            # First CBT overwrite keeps the hand-entered score for revert
            result.manual_exam_score = result.exam_score

        result.exam_score = exam_score
        result.cbt_exam_attempt_id = attempt.id
        result.is_cbt_exam = True
        result.cbt_synced_at = datetime.now(timezone.utc)

        return self.results.save_score(result, actor)

    def resync_attempt(self, attempt_id: int, actor: User | None) -> Result:
        """Re-derive the result of an already completed attempt, e.g. after a regrade."""
        attempt = self._get_attempt(attempt_id)
        if attempt.status != AttemptStatus.COMPLETED:
            raise AttemptStateError(attempt.id, attempt.status.value, "Only completed attempts can be synced")

        result = self.sync_attempt(attempt, actor)
        if result is None:
            raise ValidationError("No term available for this exam; set a current term first")
        return result

    def bulk_sync(
        self,
        term_id: int,
        subject_id: int | None,
        actor: User | None,
    ) -> BulkSyncResponse:
        """Sync every completed attempt for a term that is not yet linked to a result."""
        if self.db.get(Term, term_id) is None:
            raise NotFoundError("Term", str(term_id))

        linked = exists().where(Result.cbt_exam_attempt_id == StudentExamAttempt.id)
        query = (
            select(StudentExamAttempt)
            .join(Exam, Exam.id == StudentExamAttempt.exam_id)
            .where(
                StudentExamAttempt.status == AttemptStatus.COMPLETED,
                or_(Exam.term_id == term_id, Exam.term_id.is_(None)),
                ~linked,
            )
            .order_by(StudentExamAttempt.id)
        )
        if subject_id is not None:
            query = query.where(Exam.subject_id == subject_id)

        attempts = self.db.execute(query).scalars().all()
        synced: list[int] = []
        failed: list[dict] = []

        for attempt in attempts:
            try:
                self.sync_attempt(attempt, actor, term_id=term_id)
                synced.append(attempt.id)
            except Exception as e:
                logger.exception(f"Bulk CBT sync failed for attempt {attempt.id}")
                failed.append({"attempt_id": attempt.id, "error": str(e)})

        logger.info(f"Bulk CBT sync term={term_id}: {len(synced)} synced, {len(failed)} failed")
        return BulkSyncResponse(synced=synced, failed=failed, total_processed=len(attempts))

    # ==========================================
    # Manual adjustments
    # ==========================================

    def revert_cbt_score(self, result_id: int, actor: User | None) -> Result:
        """Drop the CBT link and restore the manual exam score (or zero)."""
        result = self.results.get_result(result_id)
        if not result.is_cbt_exam:
            raise ValidationError("Result is not linked to a CBT exam")

        result.exam_score = result.manual_exam_score or Decimal("0")
        result.cbt_exam_attempt_id = None
        result.is_cbt_exam = False
        result.manual_exam_score = None
        result.cbt_synced_at = None

        self.results.save_score(result, actor)
        logger.info(f"CBT score reverted for result {result.id}")
        return result

    def override_cbt_score(self, result_id: int, exam_score: Decimal, actor: User | None) -> Result:
        """Replace a CBT-derived exam score with a manual one, keeping the link."""
        result = self.results.get_result(result_id)
        if not result.is_cbt_exam:
            raise ValidationError("Result is not linked to a CBT exam")
        if exam_score > settings.EXAM_SCORE_MAX:
            raise ValidationError(
                f"Exam score cannot exceed {settings.EXAM_SCORE_MAX}",
                details={"exam_score": str(exam_score)},
            )

        result.exam_score = exam_score
        result.manual_exam_score = exam_score
        result.cbt_synced_at = datetime.now(timezone.utc)

        self.results.save_score(result, actor)
        logger.info(f"CBT score overridden for result {result.id}")
        return result

    # ==========================================
    # Queries
    # ==========================================

    def has_cbt_score(self, student_id: int, subject_id: int, term_id: int) -> bool:
        return self.db.execute(
            select(
                exists().where(
                    Result.student_id == student_id,
                    Result.subject_id == subject_id,
                    Result.term_id == term_id,
                    Result.is_cbt_exam.is_(True),
                )
            )
        ).scalar()

    def list_cbt_results(
        self,
        term_id: int | None = None,
        subject_id: int | None = None,
        student_id: int | None = None,
    ) -> list[ResultResponse]:
        """Results whose exam score came from a CBT attempt."""
        query = select(Result).where(Result.is_cbt_exam.is_(True))
        if term_id:
            query = query.where(Result.term_id == term_id)
        if subject_id:
            query = query.where(Result.subject_id == subject_id)
        if student_id:
            query = query.where(Result.student_id == student_id)

        records = self.db.execute(
            query.order_by(Result.term_id.desc(), Result.subject_id, Result.position)
        ).scalars().all()
        return [result_to_response(r) for r in records]

    def _get_attempt(self, attempt_id: int) -> StudentExamAttempt:
        attempt = self.db.get(StudentExamAttempt, attempt_id)
        if not attempt:
            raise NotFoundError("Exam attempt", str(attempt_id))
        return attempt
