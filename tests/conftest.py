"""Shared fixtures: in-memory SQLite database, factories and an API client."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SCHEDULER_ENABLED"] = "false"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from app.core.security import create_access_token, hash_password  # noqa: E402
from app.main import app  # noqa: E402
from app.models.academic import Student, Subject, Term  # noqa: E402
from app.models.result import Result  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.schemas.cbt import ExamCreate, QuestionCreate  # noqa: E402
from app.services.cbt import ExamService  # noqa: E402
from app.services.result import ResultService  # noqa: E402


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.TEACHER, username: str | None = None, password: str = "password123") -> User:
        counter["n"] += 1
        user = User(
            name=f"{role.value.title()} {counter['n']}",
            username=username or f"{role.value}{counter['n']}",
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        # Commit so a request the client fixture rolls back cannot erase fixture users
        db.commit()
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, username="admin")


@pytest.fixture
def teacher(make_user):
    return make_user(UserRole.TEACHER, username="teacher")


@pytest.fixture
def make_student(db, make_user):
    counter = {"n": 0}

    def _make(name: str | None = None, with_account: bool = True, class_name: str = "JSS1") -> Student:
        counter["n"] += 1
        user = make_user(UserRole.STUDENT) if with_account else None
        student = Student(
            admission_number=f"ADM{counter['n']:04d}",
            student_name=name or f"Student {counter['n']}",
            class_name=class_name,
            user_id=user.id if user else None,
        )
        db.add(student)
        db.flush()
        return student

    return _make


@pytest.fixture
def subject(db):
    subject = Subject(name="Mathematics", code="MTH")
    db.add(subject)
    db.flush()
    return subject


@pytest.fixture
def term(db):
    term = Term(name="First Term", session_name="2025/2026", is_current=True)
    db.add(term)
    db.flush()
    return term


@pytest.fixture
def save_result(db, subject, term, teacher):
    """Create a result through the single write path."""
    service = ResultService(db)

    def _save(student: Student, ca: str, exam: str, **kwargs) -> Result:
        result = Result(
            student_id=student.id,
            subject_id=kwargs.get("subject_id", subject.id),
            term_id=kwargs.get("term_id", term.id),
            ca_score=Decimal(ca),
            exam_score=Decimal(exam),
            teacher_id=teacher.id,
        )
        return service.save_score(result, teacher)

    return _save


@pytest.fixture
def published_exam(db, subject, teacher):
    """A published exam worth 25 marks: an 18-mark and a 7-mark question."""
    service = ExamService(db)
    exam = service.create_exam(
        ExamCreate(title="Mid-term CBT", subject_id=subject.id, duration_minutes=30),
        teacher,
    )
    service.add_question(
        exam.id,
        QuestionCreate(
            question_type="multiple_choice",
            question_text="2 + 2 = ?",
            options=[{"key": "a", "text": "3"}, {"key": "b", "text": "4"}],
            correct_answer="b",
            marks=Decimal("18"),
        ),
    )
    service.add_question(
        exam.id,
        QuestionCreate(
            question_type="true_false",
            question_text="Zero is odd.",
            correct_answer="false",
            marks=Decimal("7"),
        ),
    )
    return service.publish_exam(exam.id)


@pytest.fixture
def client(db):
    def override_get_db():
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.username, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers
