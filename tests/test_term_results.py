"""Term result compilation, class statistics and report endpoints."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import NotFoundError, ValidationError
from app.models.academic import Subject
from app.models.result import TermResult
from app.models.user import User
from app.schemas.term_result import TermResultUpdate
from app.services.result import ResultService
from app.services.term_result import TermResultService

API = "/api/v1"


@pytest.fixture
def english(db):
    subject = Subject(name="English", code="ENG")
    db.add(subject)
    db.flush()
    return subject


@pytest.fixture
def science(db):
    subject = Subject(name="Basic Science", code="BSC")
    db.add(subject)
    db.flush()
    return subject


def test_compile_ranks_class_by_average(db, make_student, save_result, term, english):
    ada, ben, chi = make_student("Ada"), make_student("Ben"), make_student("Chi")
    save_result(ada, "30", "50")  # 80
    save_result(ada, "20", "40", subject_id=english.id)  # 60, average 70
    save_result(ben, "30", "40")  # 70
    save_result(ben, "30", "40", subject_id=english.id)  # 70, average 70
    save_result(chi, "20", "30")  # 50
    save_result(chi, "10", "30", subject_id=english.id)  # 40, average 45

    outcome = TermResultService(db).compile_class("JSS1", term.id)

    assert outcome.compiled == 3
    rows = [(r.student_id, r.average_score, r.position) for r in outcome.results]
    assert rows == [
        (ada.id, Decimal("70.00"), 1),
        (ben.id, Decimal("70.00"), 1),
        (chi.id, Decimal("45.00"), 3),
    ]
    assert outcome.results[0].total_score == Decimal("140")
    assert outcome.results[0].subjects_count == 2
    assert outcome.results[2].grade == "D"


def test_averages_are_rounded_before_ranking(db, make_student, save_result, term, english, science):
    first, second = make_student(), make_student()
    save_result(first, "30", "40")  # 70
    save_result(first, "30", "40.01", subject_id=english.id)  # 70.01
    save_result(first, "30", "40.01", subject_id=science.id)  # 70.01, average 70.0066...
    save_result(second, "30", "40.01")  # 70.01

    outcome = TermResultService(db).compile_class("JSS1", term.id)

    assert [r.average_score for r in outcome.results] == [Decimal("70.01"), Decimal("70.01")]
    assert [r.position for r in outcome.results] == [1, 1]


def test_students_without_results_are_skipped(db, make_student, save_result, term):
    ranked = make_student()
    idle = make_student()
    save_result(ranked, "20", "30")
    make_student(class_name="JSS2")

    outcome = TermResultService(db).compile_class("JSS1", term.id)

    assert [r.student_id for r in outcome.results] == [ranked.id]
    assert db.execute(select(TermResult).where(TermResult.student_id == idle.id)).scalar_one_or_none() is None


def test_recompile_updates_in_place_and_drops_stale_rows(db, make_student, save_result, teacher, term):
    leader, other = make_student(), make_student()
    save_result(leader, "40", "50")
    dropped = save_result(other, "10", "20")
    service = TermResultService(db)

    first = service.compile_class("JSS1", term.id)
    ids = {r.student_id: r.id for r in first.results}

    ResultService(db).delete_result(dropped.id, teacher)
    second = service.compile_class("JSS1", term.id)

    assert second.removed == 1
    assert [(r.id, r.position) for r in second.results] == [(ids[leader.id], 1)]

    third = service.compile_class("JSS1", term.id)
    assert third.removed == 0
    assert [(r.id, r.average_score, r.position) for r in third.results] == [
        (ids[leader.id], Decimal("90.00"), 1)
    ]


def test_student_moved_out_of_class_is_removed(db, make_student, save_result, term):
    stays, moves = make_student(), make_student()
    save_result(stays, "20", "30")
    save_result(moves, "30", "40")
    service = TermResultService(db)
    service.compile_class("JSS1", term.id)

    moves.class_name = "JSS2"
    db.flush()
    outcome = service.compile_class("JSS1", term.id)

    assert outcome.removed == 1
    assert [(r.student_id, r.position) for r in outcome.results] == [(stays.id, 1)]


def test_compile_requires_students_and_results(db, make_student, term):
    service = TermResultService(db)

    with pytest.raises(ValidationError):
        service.compile_class("SS3", term.id)

    make_student()
    with pytest.raises(ValidationError):
        service.compile_class("JSS1", term.id)

    with pytest.raises(NotFoundError):
        service.compile_class("JSS1", 9999)


def test_class_statistics_and_grade_distribution(db, make_student, save_result, term, english):
    first, second = make_student(), make_student()
    save_result(first, "35", "40")  # 75 A
    save_result(first, "20", "25", subject_id=english.id)  # 45 D
    save_result(second, "10", "20")  # 30 F
    save_result(make_student(class_name="JSS2"), "40", "60")

    stats = TermResultService(db).get_class_statistics("JSS1", term.id)

    assert stats.total_students == 2
    assert stats.total_results == 3
    assert stats.average_score == Decimal("50.00")
    assert (stats.highest_score, stats.lowest_score) == (Decimal("75"), Decimal("30"))
    assert stats.pass_rate == Decimal("66.67")
    assert stats.grade_distribution == {"A": 1, "B": 0, "C": 0, "D": 1, "E": 0, "F": 1}


def test_class_statistics_without_results(db, term):
    stats = TermResultService(db).get_class_statistics("JSS1", term.id)

    assert stats.total_results == 0
    assert stats.average_score is None
    assert stats.pass_rate == Decimal("0")


def test_student_report_lists_subjects_and_class_size(db, make_student, save_result, term, english):
    student = make_student()
    save_result(student, "30", "50")
    save_result(student, "25", "35", subject_id=english.id)
    save_result(make_student(), "10", "10")
    service = TermResultService(db)
    service.compile_class("JSS1", term.id)

    report = service.get_student_report(student.id, term.id)

    assert report.class_size == 2
    assert report.term_result.position == 1
    assert [(s.subject_name, s.total_score, s.grade) for s in report.subjects] == [
        ("English", Decimal("60"), "B"),
        ("Mathematics", Decimal("80"), "A"),
    ]

    with pytest.raises(NotFoundError):
        service.get_student_report(student.id, 9999)


def test_update_comments(db, make_student, save_result, term):
    save_result(make_student(), "30", "40")
    service = TermResultService(db)
    compiled = service.compile_class("JSS1", term.id)

    updated = service.update_comments(
        compiled.results[0].id, TermResultUpdate(principal_comment="Keep it up")
    )

    assert updated.principal_comment == "Keep it up"
    assert updated.teacher_comment is None


def test_compile_and_report_over_http(client, admin, teacher, auth_headers, make_student, save_result, term, db):
    student = make_student()
    save_result(student, "30", "50")
    save_result(make_student(), "20", "20")

    compiled = client.post(
        f"{API}/term-results/compile",
        json={"class_name": "JSS1", "term_id": term.id},
        headers=auth_headers(teacher),
    )
    assert compiled.status_code == 200
    assert compiled.json()["compiled"] == 2

    listing = client.get(
        f"{API}/term-results", params={"class_name": "JSS1", "term_id": term.id}, headers=auth_headers(teacher)
    ).json()
    assert listing[0]["student_id"] == student.id
    assert [r["position"] for r in listing] == [1, 2]

    mine = client.get(
        f"{API}/term-results/me", params={"term_id": term.id}, headers=auth_headers(db.get(User, student.user_id))
    )
    assert mine.status_code == 200
    assert mine.json()["term_result"]["grade"] == "A"

    history = client.get(
        f"{API}/audit", params={"resource_type": "term_result"}, headers=auth_headers(admin)
    ).json()
    assert [e["action"] for e in history["items"]] == ["TERM_RESULTS_COMPILED"]


def test_compile_without_results_over_http(client, teacher, auth_headers, make_student, term):
    make_student()
    response = client.post(
        f"{API}/term-results/compile",
        json={"class_name": "JSS1", "term_id": term.id},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
