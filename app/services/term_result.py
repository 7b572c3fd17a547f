"""Term result compilation: per-student averages and class positions.

A class is compiled for one term at a time. Each student with at least one
subject result gets a TermResult holding the sum and mean of their subject
totals; the class is then ranked by average with the same competition
ranking the subject cohorts use. Compiling again replaces the figures, so
the rows are a snapshot that callers refresh after scores change.
"""

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.academic import Student, Subject, Term
from app.models.result import Result, TermResult
from app.schemas.term_result import (
    ClassStatistics,
    CompileResponse,
    StudentTermReport,
    SubjectScore,
    TermResultResponse,
    TermResultUpdate,
)
from app.services.ranking import assign_positions, quantize_score
from app.services.result import FAIL, GRADE_BANDS, grade_info

logger = logging.getLogger(__name__)


def term_result_to_response(term_result: TermResult) -> TermResultResponse:
    grading = grade_info(term_result.average_score)
    return TermResultResponse(
        id=term_result.id,
        student_id=term_result.student_id,
        student_name=term_result.student.student_name,
        admission_number=term_result.student.admission_number,
        class_name=term_result.class_name,
        term_id=term_result.term_id,
        term_name=term_result.term.name,
        session_name=term_result.term.session_name,
        subjects_count=term_result.subjects_count,
        total_score=term_result.total_score,
        average_score=term_result.average_score,
        position=term_result.position,
        grade=grading.grade,
        grade_remark=grading.remark,
        teacher_comment=term_result.teacher_comment,
        principal_comment=term_result.principal_comment,
        updated_at=term_result.updated_at,
    )


class TermResultService:
    """Compiles and reads term results for a class."""

    def __init__(self, db: Session):
        self.db = db

    # ==========================================
    # Compilation
    # ==========================================

    def compile_class(self, class_name: str, term_id: int) -> CompileResponse:
        """Compile (or recompile) the term results of every student in a class.

        Raises ValidationError when the class has no students or none of them
        has a result for the term. Students without results get no row, and
        rows left over from an earlier compile for them are removed.
        """
        self._get_term(term_id)

        students = self.db.execute(
            select(Student).where(Student.class_name == class_name).order_by(Student.id)
        ).scalars().all()
        if not students:
            raise ValidationError(
                f"No students found in class {class_name}",
                details={"class_name": class_name},
            )
        student_ids = [s.id for s in students]

        totals_by_student: dict[int, list[Decimal]] = defaultdict(list)
        rows = self.db.execute(
            select(Result.student_id, Result.total_score).where(
                Result.term_id == term_id,
                Result.student_id.in_(student_ids),
            )
        ).all()
        for student_id, total in rows:
            totals_by_student[student_id].append(total)
        if not totals_by_student:
            raise ValidationError(
                f"No results found for class {class_name} in this term",
                details={"class_name": class_name, "term_id": term_id},
            )

        existing = {
            tr.student_id: tr
            for tr in self.db.execute(
                select(TermResult).where(
                    TermResult.term_id == term_id,
                    TermResult.student_id.in_(student_ids),
                )
            ).scalars().all()
        }

        # Students who have left the class since the last compile
        removed = 0
        for stale in self.db.execute(
            select(TermResult).where(
                TermResult.term_id == term_id,
                TermResult.class_name == class_name,
                TermResult.student_id.not_in(student_ids),
            )
        ).scalars().all():
            self.db.delete(stale)
            removed += 1

        compiled: list[TermResult] = []
        for student in students:
            totals = totals_by_student.get(student.id)
            term_result = existing.get(student.id)
            if not totals:
                if term_result is not None:
                    self.db.delete(term_result)
                    removed += 1
                continue

            if term_result is None:
                term_result = TermResult(student_id=student.id, term_id=term_id)
                self.db.add(term_result)

            total = sum(totals, Decimal("0"))
            term_result.class_name = class_name
            term_result.subjects_count = len(totals)
            term_result.total_score = total
            term_result.average_score = quantize_score(total / len(totals))
            compiled.append(term_result)

        ranked = sorted(compiled, key=lambda tr: (-tr.average_score, tr.student_id))
        positions = assign_positions([tr.average_score for tr in ranked])
        for term_result, position in zip(ranked, positions):
            term_result.position = position

        self.db.flush()
        logger.info(
            f"Compiled {len(ranked)} term results for class {class_name}, term {term_id} "
            f"({removed} removed)"
        )

        return CompileResponse(
            class_name=class_name,
            term_id=term_id,
            compiled=len(ranked),
            removed=removed,
            results=[term_result_to_response(tr) for tr in ranked],
        )

    # ==========================================
    # Queries
    # ==========================================

    def list_class_results(self, class_name: str, term_id: int) -> list[TermResultResponse]:
        """Compiled results of a class in position order."""
        self._get_term(term_id)
        records = self.db.execute(
            select(TermResult)
            .where(TermResult.class_name == class_name, TermResult.term_id == term_id)
            .order_by(TermResult.position, TermResult.student_id)
        ).scalars().all()
        return [term_result_to_response(tr) for tr in records]

    def get_student_report(self, student_id: int, term_id: int) -> StudentTermReport:
        term_result = self._get_term_result(student_id, term_id)

        class_size = self.db.execute(
            select(func.count(TermResult.id)).where(
                TermResult.class_name == term_result.class_name,
                TermResult.term_id == term_id,
            )
        ).scalar()

        results = self.db.execute(
            select(Result)
            .join(Subject, Subject.id == Result.subject_id)
            .where(Result.student_id == student_id, Result.term_id == term_id)
            .order_by(Subject.name)
        ).scalars().all()

        subjects = []
        for r in results:
            grading = grade_info(r.total_score)
            subjects.append(
                SubjectScore(
                    subject_id=r.subject_id,
                    subject_name=r.subject.name,
                    ca_score=r.ca_score,
                    exam_score=r.exam_score,
                    total_score=r.total_score,
                    position=r.position,
                    grade=grading.grade,
                    grade_remark=grading.remark,
                )
            )

        return StudentTermReport(
            term_result=term_result_to_response(term_result),
            class_size=class_size or 0,
            subjects=subjects,
        )

    def get_class_statistics(self, class_name: str, term_id: int) -> ClassStatistics:
        """Spread of subject totals for a class: average, range, pass rate, grades.

        A result passes when its grade is anything but F.
        """
        self._get_term(term_id)

        rows = self.db.execute(
            select(Result.student_id, Result.total_score)
            .join(Student, Student.id == Result.student_id)
            .where(Student.class_name == class_name, Result.term_id == term_id)
        ).all()
        totals = [total for _, total in rows]

        distribution = {info.grade: 0 for _, info in GRADE_BANDS}
        distribution[FAIL.grade] = 0
        passed = 0
        for total in totals:
            info = grade_info(total)
            distribution[info.grade] += 1
            if info != FAIL:
                passed += 1

        average = quantize_score(sum(totals, Decimal("0")) / len(totals)) if totals else None
        pass_rate = quantize_score(Decimal(passed) * 100 / len(totals)) if totals else Decimal("0.00")

        return ClassStatistics(
            class_name=class_name,
            term_id=term_id,
            total_students=len({student_id for student_id, _ in rows}),
            total_results=len(totals),
            average_score=average,
            highest_score=max(totals) if totals else None,
            lowest_score=min(totals) if totals else None,
            pass_rate=pass_rate,
            grade_distribution=distribution,
        )

    # ==========================================
    # Comments
    # ==========================================

    def update_comments(self, term_result_id: int, request: TermResultUpdate) -> TermResultResponse:
        term_result = self.db.get(TermResult, term_result_id)
        if not term_result:
            raise NotFoundError("Term result", str(term_result_id))

        for field, value in request.model_dump(exclude_unset=True).items():
            setattr(term_result, field, value)
        self.db.flush()
        return term_result_to_response(term_result)

    # ==========================================
    # Helpers
    # ==========================================

    def _get_term(self, term_id: int) -> Term:
        term = self.db.get(Term, term_id)
        if not term:
            raise NotFoundError("Term", str(term_id))
        return term

    def _get_term_result(self, student_id: int, term_id: int) -> TermResult:
        term_result = self.db.execute(
            select(TermResult).where(
                TermResult.student_id == student_id,
                TermResult.term_id == term_id,
            )
        ).scalar_one_or_none()
        if not term_result:
            raise NotFoundError("Term result", f"student {student_id}, term {term_id}")
        return term_result
