"""Completed CBT attempts flowing into result records."""

import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import AttemptStateError, ValidationError
from app.models.cbt import AttemptStatus
from app.models.notification import Notification
from app.models.result import Result
from app.schemas.cbt import AnswerGrade, AnswerSubmit
from app.services import result as result_module
from app.services.cbt import ExamAttemptService
from app.services.cbt_sync import CBTResultIntegrationService, exam_score_from_percentage


def question_ids(exam):
    return [eq.question_id for eq in exam.questions]


def take_exam(db, exam, student, answers):
    """Start an attempt and answer questions in order; returns the in-progress attempt."""
    service = ExamAttemptService(db)
    attempt = service.start_attempt(exam.id, student)
    for question_id, answer in zip(question_ids(exam), answers):
        if answer is not None:
            service.submit_answer(attempt, AnswerSubmit(question_id=question_id, answer=answer))
    return attempt


def result_count(db):
    return db.execute(select(func.count()).select_from(Result)).scalar()


@pytest.mark.parametrize(
    "percentage, expected",
    [("72", "43.20"), ("100", "60.00"), ("0", "0.00"), ("33.33", "20.00"), (None, "0.00")],
)
def test_exam_score_from_percentage(percentage, expected):
    value = Decimal(percentage) if percentage is not None else None
    assert exam_score_from_percentage(value) == Decimal(expected)


def test_completing_attempt_creates_result(db, make_student, published_exam, term):
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["b", "true"])  # 18 of 25

    ExamAttemptService(db).submit_attempt(attempt, None)

    assert attempt.status == AttemptStatus.COMPLETED
    assert attempt.percentage == Decimal("72.00")
    result = db.execute(select(Result).where(Result.student_id == student.id)).scalar_one()
    assert result.term_id == term.id
    assert result.ca_score == Decimal("0")
    assert result.exam_score == Decimal("43.20")
    assert result.total_score == Decimal("43.20")
    assert result.position == 1
    assert result.is_cbt_exam is True
    assert result.cbt_exam_attempt_id == attempt.id
    assert result.cbt_synced_at is not None
    assert result.teacher_id == published_exam.teacher_id


def test_sync_updates_existing_result_and_keeps_manual_score(db, make_student, published_exam, save_result):
    student = make_student()
    existing = save_result(student, "30", "25")

    attempt = take_exam(db, published_exam, student, ["b", "false"])  # 25 of 25
    ExamAttemptService(db).submit_attempt(attempt, None)

    assert result_count(db) == 1
    assert existing.ca_score == Decimal("30")
    assert existing.exam_score == Decimal("60.00")
    assert existing.total_score == Decimal("90.00")
    assert existing.manual_exam_score == Decimal("25")


def test_sync_ranks_cbt_result_within_cohort(db, make_student, published_exam, save_result):
    save_result(make_student(), "30", "30")  # 60
    student = make_student()

    attempt = take_exam(db, published_exam, student, ["b", "false"])  # exam 60, total 60
    ExamAttemptService(db).submit_attempt(attempt, None)

    result = db.execute(select(Result).where(Result.student_id == student.id)).scalar_one()
    assert result.position == 1


def test_resaving_completed_attempt_does_not_resync(db, make_student, published_exam, term):
    student = make_student()
    service = ExamAttemptService(db)
    attempt = take_exam(db, published_exam, student, ["b", "true"])
    service.submit_attempt(attempt, None)
    notes_before = db.execute(select(func.count()).select_from(Notification)).scalar()

    service.update_status(attempt, AttemptStatus.COMPLETED, None)

    assert result_count(db) == 1
    assert db.execute(select(func.count()).select_from(Notification)).scalar() == notes_before


def test_sync_failure_keeps_completed_status(db, make_student, published_exam, monkeypatch, caplog):
    def broken_notify(*args, **kwargs):
        raise RuntimeError("notification backend down")

    monkeypatch.setattr(result_module, "notify_result_created", broken_notify)
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["b", "true"])

    with caplog.at_level(logging.ERROR, logger="app.services.cbt"):
        ExamAttemptService(db).submit_attempt(attempt, None)
    db.commit()

    db.expire_all()
    reloaded = ExamAttemptService(db).get_attempt(attempt.id)
    assert reloaded.status == AttemptStatus.COMPLETED
    assert result_count(db) == 0
    assert f"attempt {attempt.id}" in caplog.text


def test_sync_skipped_without_any_term(db, make_student, published_exam, term):
    term.is_current = False
    db.flush()
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["b", "true"])

    ExamAttemptService(db).submit_attempt(attempt, None)

    assert attempt.status == AttemptStatus.COMPLETED
    assert result_count(db) == 0


def test_abandoning_does_not_sync(db, make_student, published_exam):
    attempt = take_exam(db, published_exam, make_student(), ["b", "true"])
    ExamAttemptService(db).abandon_attempt(attempt, None)

    assert attempt.status == AttemptStatus.ABANDONED
    assert result_count(db) == 0


def test_resync_after_regrade(db, make_student, published_exam, teacher, term):
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["a", "false"])  # 7 of 25
    attempts = ExamAttemptService(db)
    attempts.submit_attempt(attempt, None)
    result = db.execute(select(Result).where(Result.student_id == student.id)).scalar_one()
    assert result.exam_score == Decimal("16.80")

    first_answer = next(a for a in attempt.answers if a.question_id == question_ids(published_exam)[0])

    attempts.grade_answer(first_answer.id, AnswerGrade(marks=Decimal("18")))
    assert result.exam_score == Decimal("16.80")

    CBTResultIntegrationService(db).resync_attempt(attempt.id, teacher)
    assert result.exam_score == Decimal("60.00")
    assert result_count(db) == 1


def test_resync_failure_reaches_the_caller(db, make_student, published_exam, teacher, monkeypatch, term):
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["a", "false"])  # 7 of 25
    attempts = ExamAttemptService(db)
    attempts.submit_attempt(attempt, None)
    first_answer = next(a for a in attempt.answers if a.question_id == question_ids(published_exam)[0])
    attempts.grade_answer(first_answer.id, AnswerGrade(marks=Decimal("18")))

    def broken_notify(*args, **kwargs):
        raise RuntimeError("notification backend down")

    monkeypatch.setattr(result_module, "notify_result_updated", broken_notify)

    with pytest.raises(RuntimeError):
        CBTResultIntegrationService(db).resync_attempt(attempt.id, teacher)

    # The savepoint rolled the score write back
    db.expire_all()
    result = db.execute(select(Result).where(Result.student_id == student.id)).scalar_one()
    assert result.exam_score == Decimal("16.80")


def test_resync_requires_completed_attempt(db, make_student, published_exam, teacher):
    attempt = take_exam(db, published_exam, make_student(), ["b"])
    with pytest.raises(AttemptStateError):
        CBTResultIntegrationService(db).resync_attempt(attempt.id, teacher)


def test_revert_restores_manual_exam_score(db, make_student, published_exam, save_result, teacher):
    student = make_student()
    existing = save_result(student, "30", "25")
    attempt = take_exam(db, published_exam, student, ["b", "false"])
    ExamAttemptService(db).submit_attempt(attempt, None)

    CBTResultIntegrationService(db).revert_cbt_score(existing.id, teacher)

    assert existing.exam_score == Decimal("25")
    assert existing.total_score == Decimal("55")
    assert existing.is_cbt_exam is False
    assert existing.cbt_exam_attempt_id is None
    assert existing.manual_exam_score is None


def test_revert_rejects_manual_result(db, make_student, save_result, teacher):
    result = save_result(make_student(), "30", "25")
    with pytest.raises(ValidationError):
        CBTResultIntegrationService(db).revert_cbt_score(result.id, teacher)


def test_override_replaces_cbt_score(db, make_student, published_exam, teacher, term):
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["b", "true"])
    ExamAttemptService(db).submit_attempt(attempt, None)
    result = db.execute(select(Result).where(Result.student_id == student.id)).scalar_one()

    service = CBTResultIntegrationService(db)
    service.override_cbt_score(result.id, Decimal("50"), teacher)

    assert result.exam_score == Decimal("50")
    assert result.manual_exam_score == Decimal("50")
    assert result.is_cbt_exam is True

    with pytest.raises(ValidationError):
        service.override_cbt_score(result.id, Decimal("61"), teacher)


def test_bulk_sync_links_unsynced_attempts(db, make_student, published_exam, term, teacher, monkeypatch):
    students = [make_student(), make_student()]
    attempts = [take_exam(db, published_exam, s, ["b", "true"]) for s in students]

    # Complete without the automatic sync to simulate attempts finished before linking existed
    monkeypatch.setattr(CBTResultIntegrationService, "sync_attempt", lambda *a, **k: None)
    for attempt in attempts:
        ExamAttemptService(db).submit_attempt(attempt, None)
    monkeypatch.undo()
    assert result_count(db) == 0

    service = CBTResultIntegrationService(db)
    response = service.bulk_sync(term.id, None, teacher)

    assert sorted(response.synced) == sorted(a.id for a in attempts)
    assert response.failed == []
    assert result_count(db) == 2
    assert service.has_cbt_score(students[0].id, published_exam.subject_id, term.id)

    again = service.bulk_sync(term.id, None, teacher)
    assert again.total_processed == 0


def test_list_cbt_results_only_returns_linked_rows(db, make_student, published_exam, save_result, term):
    save_result(make_student(), "30", "25")
    student = make_student()
    attempt = take_exam(db, published_exam, student, ["b", "true"])
    ExamAttemptService(db).submit_attempt(attempt, None)

    rows = CBTResultIntegrationService(db).list_cbt_results(term_id=term.id)

    assert [r.student_id for r in rows] == [student.id]
