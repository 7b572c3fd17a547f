"""Student, subject and term management service."""

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError
from app.models.academic import Student, Subject, Term
from app.models.user import User, UserRole
from app.schemas.academic import (
    StudentCreate,
    StudentResponse,
    SubjectCreate,
    TermCreate,
)


class AcademicService:
    """Students, subjects and terms."""

    def __init__(self, db: Session):
        self.db = db

    # ==========================================
    # Students
    # ==========================================

    def create_student(self, request: StudentCreate) -> Student:
        """Create a new student."""
        existing = self.db.execute(
            select(Student).where(Student.admission_number == request.admission_number)
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(f"Admission number '{request.admission_number}' already exists")

        if request.user_id is not None:
            user = self.db.get(User, request.user_id)
            if not user or user.role != UserRole.STUDENT:
                raise NotFoundError("Student user", str(request.user_id))

        student = Student(**request.model_dump())
        self.db.add(student)
        self.db.flush()
        return student

    def get_student(self, student_id: int) -> Student:
        """Get student by ID."""
        student = self.db.get(Student, student_id)
        if not student:
            raise NotFoundError("Student", str(student_id))
        return student

    def get_student_for_user(self, user_id: int) -> Student:
        """Get the student record linked to a login account."""
        student = self.db.execute(
            select(Student).where(Student.user_id == user_id)
        ).scalar_one_or_none()
        if not student:
            raise NotFoundError("Student profile", str(user_id))
        return student

    def list_students(
        self,
        class_name: str | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[StudentResponse], int]:
        """List students with optional class filter and name search."""
        query = select(Student)
        if class_name:
            query = query.where(Student.class_name == class_name)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Student.student_name.ilike(pattern),
                    Student.admission_number.ilike(pattern),
                )
            )

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar() or 0

        query = (
            query
            .order_by(Student.class_name, Student.student_name)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        students = self.db.execute(query).scalars().all()
        return [StudentResponse.model_validate(s) for s in students], total

    # ==========================================
    # Subjects
    # ==========================================

    def create_subject(self, request: SubjectCreate) -> Subject:
        """Create a new subject."""
        existing = self.db.execute(
            select(Subject).where(Subject.name == request.name)
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(f"Subject '{request.name}' already exists")

        subject = Subject(name=request.name, code=request.code)
        self.db.add(subject)
        self.db.flush()
        return subject

    def get_subject(self, subject_id: int) -> Subject:
        subject = self.db.get(Subject, subject_id)
        if not subject:
            raise NotFoundError("Subject", str(subject_id))
        return subject

    def list_subjects(self) -> list[Subject]:
        return list(self.db.execute(select(Subject).order_by(Subject.name)).scalars().all())

    # ==========================================
    # Terms
    # ==========================================

    def create_term(self, request: TermCreate) -> Term:
        """Create a term, optionally making it the current one."""
        term = Term(
            name=request.name,
            session_name=request.session_name,
            start_date=request.start_date,
            end_date=request.end_date,
            is_current=False,
        )
        self.db.add(term)
        self.db.flush()
        if request.is_current:
            self.set_current_term(term.id)
        return term

    def get_term(self, term_id: int) -> Term:
        term = self.db.get(Term, term_id)
        if not term:
            raise NotFoundError("Term", str(term_id))
        return term

    def list_terms(self) -> list[Term]:
        return list(
            self.db.execute(
                select(Term).order_by(Term.session_name.desc(), Term.start_date.desc(), Term.id.desc())
            ).scalars().all()
        )

    def set_current_term(self, term_id: int) -> Term:
        """Make one term current and clear the flag everywhere else."""
        term = self.get_term(term_id)
        self.db.execute(
            update(Term).where(Term.id != term_id, Term.is_current.is_(True)).values(is_current=False)
        )
        term.is_current = True
        self.db.flush()
        # Bulk UPDATE bypasses the identity map
        for other in self.db.identity_map.values():
            if isinstance(other, Term) and other.id != term_id:
                other.is_current = False
        return term

    def get_current_term(self) -> Term | None:
        return self.db.execute(
            select(Term).where(Term.is_current.is_(True)).order_by(Term.id.desc()).limit(1)
        ).scalar_one_or_none()
