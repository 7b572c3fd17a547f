"""CBT service: exams, questions and student attempts."""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import AttemptStateError, NotFoundError, ValidationError
from app.models.academic import Student, Subject, Term
from app.models.cbt import (
    AttemptStatus,
    Exam,
    ExamQuestion,
    Question,
    StudentAnswer,
    StudentExamAttempt,
)
from app.models.user import User
from app.schemas.cbt import (
    AnswerGrade,
    AnswerSubmit,
    AttemptResponse,
    AttemptSession,
    ExamCreate,
    ExamQuestionView,
    ExamResponse,
    QuestionCreate,
)
from app.services.cbt_sync import CBTResultIntegrationService

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def exam_to_response(exam: Exam) -> ExamResponse:
    return ExamResponse(
        id=exam.id,
        title=exam.title,
        subject_id=exam.subject_id,
        term_id=exam.term_id,
        teacher_id=exam.teacher_id,
        description=exam.description,
        instructions=exam.instructions,
        duration_minutes=exam.duration_minutes,
        pass_percentage=exam.pass_percentage,
        is_published=exam.is_published,
        total_marks=exam.total_marks,
        question_count=len(exam.questions),
        created_at=exam.created_at,
    )


class ExamService:
    """Exam and question management."""

    def __init__(self, db: Session):
        self.db = db

    def create_exam(self, request: ExamCreate, actor: User) -> Exam:
        """Create an unpublished exam owned by the acting teacher."""
        if self.db.get(Subject, request.subject_id) is None:
            raise NotFoundError("Subject", str(request.subject_id))
        if request.term_id is not None and self.db.get(Term, request.term_id) is None:
            raise NotFoundError("Term", str(request.term_id))

        exam = Exam(
            title=request.title,
            subject_id=request.subject_id,
            term_id=request.term_id,
            teacher_id=actor.id,
            description=request.description,
            instructions=request.instructions,
            duration_minutes=request.duration_minutes,
            pass_percentage=request.pass_percentage or settings.CBT_PASS_PERCENTAGE,
            is_published=False,
        )
        self.db.add(exam)
        self.db.flush()
        logger.info(f"Exam {exam.id} '{exam.title}' created by user {actor.id}")
        return exam

    def get_exam(self, exam_id: int) -> Exam:
        """Get exam by ID."""
        exam = self.db.get(Exam, exam_id)
        if not exam:
            raise NotFoundError("Exam", str(exam_id))
        return exam

    def list_exams(
        self,
        subject_id: int | None = None,
        term_id: int | None = None,
        is_published: bool | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ExamResponse], int]:
        """List exams, newest first."""
        query = select(Exam)
        if subject_id:
            query = query.where(Exam.subject_id == subject_id)
        if term_id:
            query = query.where(Exam.term_id == term_id)
        if is_published is not None:
            query = query.where(Exam.is_published == is_published)

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar() or 0

        query = (
            query
            .order_by(Exam.created_at.desc(), Exam.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        exams = self.db.execute(query).scalars().all()
        return [exam_to_response(e) for e in exams], total

    def add_question(self, exam_id: int, request: QuestionCreate) -> Question:
        """Create a question in the exam's subject and place it in the exam."""
        exam = self.get_exam(exam_id)
        if exam.is_published:
            raise ValidationError("Cannot change the questions of a published exam")

        question = Question(
            subject_id=exam.subject_id,
            question_type=request.question_type,
            question_text=request.question_text,
            options=[o.model_dump() for o in request.options] if request.options else None,
            correct_answer=request.correct_answer,
            marks=request.marks,
        )
        self.db.add(question)
        self.db.flush()

        order = request.question_order or len(exam.questions) + 1
        exam.questions.append(
            ExamQuestion(
                question_id=question.id,
                question_order=order,
                marks_allocated=request.marks,
            )
        )
        self.db.flush()
        return question

    def list_questions(self, exam_id: int) -> list[Question]:
        exam = self.get_exam(exam_id)
        return [eq.question for eq in exam.questions]

    def publish_exam(self, exam_id: int) -> Exam:
        exam = self.get_exam(exam_id)
        if not exam.questions:
            raise ValidationError("Cannot publish exam without questions")
        exam.is_published = True
        self.db.flush()
        return exam

    def unpublish_exam(self, exam_id: int) -> Exam:
        exam = self.get_exam(exam_id)
        exam.is_published = False
        self.db.flush()
        return exam


class ExamAttemptService:
    """Student attempts: answering, grading, submission and status changes."""

    def __init__(self, db: Session):
        self.db = db

    # ==========================================
    # Status
    # ==========================================

    def update_status(
        self,
        attempt: StudentExamAttempt,
        new_status: AttemptStatus,
        actor: User | None,
    ) -> StudentExamAttempt:
        """Persist a status change and sync the result on the edge into completed.

        The sync only fires when the attempt was not already completed, so
        saving a completed attempt again never re-syncs. A failing sync is
        logged and swallowed; the status change still stands.
        """
        previous = attempt.status
        attempt.status = new_status
        self.db.flush()

        if new_status == AttemptStatus.COMPLETED and previous != AttemptStatus.COMPLETED:
            try:
                CBTResultIntegrationService(self.db).sync_attempt(attempt, actor)
            except Exception:
                logger.exception(f"Failed to sync CBT score for attempt {attempt.id}")

        return attempt

    # ==========================================
    # Lifecycle
    # ==========================================

    def start_attempt(
        self,
        exam_id: int,
        student: Student,
        ip_address: str | None = None,
    ) -> StudentExamAttempt:
        """Start (or resume) the student's single attempt at an exam."""
        exam = self.db.get(Exam, exam_id)
        if not exam:
            raise NotFoundError("Exam", str(exam_id))
        if not exam.is_published:
            raise ValidationError("Exam is not published")

        attempt = self.db.execute(
            select(StudentExamAttempt).where(
                StudentExamAttempt.exam_id == exam_id,
                StudentExamAttempt.student_id == student.id,
            )
        ).scalar_one_or_none()

        if attempt is not None:
            if attempt.status == AttemptStatus.IN_PROGRESS:
                return attempt
            if attempt.status != AttemptStatus.NOT_STARTED:
                raise AttemptStateError(attempt.id, attempt.status.value, "Exam already attempted")
        else:
            attempt = StudentExamAttempt(
                exam=exam,
                student=student,
                status=AttemptStatus.NOT_STARTED,
            )
            self.db.add(attempt)

        attempt.start_time = datetime.now(timezone.utc)
        attempt.ip_address = ip_address
        existing = {a.question_id for a in attempt.answers}
        for eq in exam.questions:
            if eq.question_id not in existing:
                attempt.answers.append(StudentAnswer(question_id=eq.question_id))

        self.update_status(attempt, AttemptStatus.IN_PROGRESS, None)
        logger.info(f"Student {student.id} started exam {exam.id} (attempt {attempt.id})")
        return attempt

    def submit_attempt(self, attempt: StudentExamAttempt, actor: User | None) -> StudentExamAttempt:
        """Score the attempt and complete it."""
        return self._complete(attempt, actor, auto=False)

    def auto_submit_attempt(self, attempt: StudentExamAttempt) -> StudentExamAttempt:
        """Complete an attempt whose time has run out."""
        return self._complete(attempt, None, auto=True)

    def _complete(self, attempt: StudentExamAttempt, actor: User | None, auto: bool) -> StudentExamAttempt:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise AttemptStateError(attempt.id, attempt.status.value, "Attempt is not in progress")

        now = datetime.now(timezone.utc)
        self.calculate_score(attempt)
        attempt.end_time = now
        attempt.auto_submitted = auto
        if attempt.start_time:
            attempt.time_taken = int((now - _as_utc(attempt.start_time)).total_seconds())

        self.update_status(attempt, AttemptStatus.COMPLETED, actor)
        logger.info(
            f"Attempt {attempt.id} {'auto-' if auto else ''}submitted: "
            f"{attempt.total_score} marks ({attempt.percentage}%)"
        )
        return attempt

    def abandon_attempt(self, attempt: StudentExamAttempt, actor: User | None) -> StudentExamAttempt:
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise AttemptStateError(attempt.id, attempt.status.value, "Attempt is not in progress")
        attempt.end_time = datetime.now(timezone.utc)
        return self.update_status(attempt, AttemptStatus.ABANDONED, actor)

    # ==========================================
    # Answers and scoring
    # ==========================================

    def submit_answer(self, attempt: StudentExamAttempt, request: AnswerSubmit) -> StudentAnswer:
        """Store an answer, auto-grading objective questions."""
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise AttemptStateError(attempt.id, attempt.status.value, "Attempt is not in progress")
        if self.time_remaining(attempt) == 0:
            raise AttemptStateError(attempt.id, attempt.status.value, "Time is up for this attempt")

        answer = self._find_answer(attempt, request.question_id)
        allocation = self._allocation(attempt, request.question_id)

        answer.answer_text = request.answer
        if request.time_spent is not None:
            answer.time_spent = request.time_spent

        question = answer.question
        if question.is_auto_gradable:
            answer.is_correct = question.check_answer(request.answer)
            answer.marks_obtained = allocation if answer.is_correct else Decimal("0")
        else:
            answer.is_correct = None
            answer.marks_obtained = Decimal("0")

        self.db.flush()
        return answer

    def flag_question(self, attempt: StudentExamAttempt, question_id: int, flagged: bool) -> StudentAnswer:
        answer = self._find_answer(attempt, question_id)
        answer.is_flagged = flagged
        self.db.flush()
        return answer

    def grade_answer(self, answer_id: int, request: AnswerGrade) -> StudentAnswer:
        """Manually grade an answer. Marks may not exceed the question's allocation.

        A completed attempt has its score recalculated; its result is only
        updated through an explicit resync.
        """
        answer = self.db.get(StudentAnswer, answer_id)
        if not answer:
            raise NotFoundError("Answer", str(answer_id))

        attempt = answer.attempt
        allocation = self._allocation(attempt, answer.question_id)
        if request.marks > allocation:
            raise ValidationError(
                f"Marks cannot exceed the allocated {allocation}",
                details={"answer_id": answer_id},
            )

        answer.marks_obtained = request.marks
        answer.is_correct = request.is_correct if request.is_correct is not None else request.marks > 0
        if attempt.status == AttemptStatus.COMPLETED:
            self.calculate_score(attempt)
        self.db.flush()
        return answer

    def calculate_score(self, attempt: StudentExamAttempt) -> Decimal:
        """Sum marks and derive the percentage of the exam's total marks."""
        total_marks = attempt.exam.total_marks
        obtained = sum((a.marks_obtained or Decimal("0") for a in attempt.answers), Decimal("0"))

        attempt.total_score = obtained
        if total_marks > 0:
            attempt.percentage = (obtained / total_marks * 100).quantize(Decimal("0.01"))
        else:
            attempt.percentage = Decimal("0")
        return attempt.percentage

    def time_remaining(self, attempt: StudentExamAttempt) -> int | None:
        """Seconds left in an in-progress attempt, never negative."""
        if attempt.status != AttemptStatus.IN_PROGRESS or attempt.start_time is None:
            return None
        elapsed = (datetime.now(timezone.utc) - _as_utc(attempt.start_time)).total_seconds()
        return max(0, int(attempt.exam.duration_minutes * 60 - elapsed))

    # ==========================================
    # Lookups and views
    # ==========================================

    def get_attempt(self, attempt_id: int) -> StudentExamAttempt:
        attempt = self.db.get(StudentExamAttempt, attempt_id)
        if not attempt:
            raise NotFoundError("Exam attempt", str(attempt_id))
        return attempt

    def get_student_attempt(self, attempt_id: int, student: Student) -> StudentExamAttempt:
        """Get an attempt that must belong to the given student."""
        attempt = self.get_attempt(attempt_id)
        if attempt.student_id != student.id:
            raise NotFoundError("Exam attempt", str(attempt_id))
        return attempt

    def list_attempts(
        self,
        exam_id: int | None = None,
        student_id: int | None = None,
        status: AttemptStatus | None = None,
    ) -> list[StudentExamAttempt]:
        query = select(StudentExamAttempt)
        if exam_id:
            query = query.where(StudentExamAttempt.exam_id == exam_id)
        if student_id:
            query = query.where(StudentExamAttempt.student_id == student_id)
        if status:
            query = query.where(StudentExamAttempt.status == status)
        return list(self.db.execute(query.order_by(StudentExamAttempt.id)).scalars().all())

    def to_response(self, attempt: StudentExamAttempt) -> AttemptResponse:
        response = AttemptResponse.model_validate(attempt)
        response.time_remaining = self.time_remaining(attempt)
        return response

    def build_session(self, attempt: StudentExamAttempt) -> AttemptSession:
        """The attempt plus the exam's questions, without answer keys."""
        answers = {a.question_id: a for a in attempt.answers}
        questions = []
        for eq in attempt.exam.questions:
            answer = answers.get(eq.question_id)
            questions.append(
                ExamQuestionView(
                    question_id=eq.question_id,
                    question_order=eq.question_order,
                    question_type=eq.question.question_type,
                    question_text=eq.question.question_text,
                    options=eq.question.options,
                    marks=eq.marks_allocated,
                    answer_text=answer.answer_text if answer else None,
                    is_flagged=answer.is_flagged if answer else False,
                )
            )
        return AttemptSession(
            attempt=self.to_response(attempt),
            exam_title=attempt.exam.title,
            instructions=attempt.exam.instructions,
            questions=questions,
        )

    def _find_answer(self, attempt: StudentExamAttempt, question_id: int) -> StudentAnswer:
        for answer in attempt.answers:
            if answer.question_id == question_id:
                return answer
        raise NotFoundError("Question in attempt", str(question_id))

    def _allocation(self, attempt: StudentExamAttempt, question_id: int) -> Decimal:
        for eq in attempt.exam.questions:
            if eq.question_id == question_id:
                return eq.marks_allocated
        raise NotFoundError("Question in exam", str(question_id))


def auto_submit_expired(db: Session) -> int:
    """Auto-submit every in-progress attempt whose time has run out."""
    service = ExamAttemptService(db)
    attempts = service.list_attempts(status=AttemptStatus.IN_PROGRESS)

    count = 0
    for attempt in attempts:
        if service.time_remaining(attempt) == 0:
            service.auto_submit_attempt(attempt)
            count += 1
    return count
