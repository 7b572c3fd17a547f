"""Result service: CRUD, notifications, bulk save and export."""

from decimal import Decimal
from io import BytesIO

import pytest
from openpyxl import load_workbook
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.notification import Notification
from app.schemas.result import BulkResultCreate, ResultCreate, ResultFilter, ResultUpdate
from app.services.result import ResultService, grade_info


def notifications_for(db, user_id):
    return db.execute(
        select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)
    ).scalars().all()


@pytest.mark.parametrize(
    "total, grade",
    [("100", "A"), ("70", "A"), ("69.99", "B"), ("60", "B"), ("50", "C"), ("45", "D"), ("40", "E"), ("39.5", "F")],
)
def test_grade_boundaries(total, grade):
    assert grade_info(Decimal(total)).grade == grade


@pytest.mark.parametrize(
    "total, grade, remark, points",
    [
        ("85", "A", "Excellent", 5),
        ("64.5", "B", "Very Good", 4),
        ("55", "C", "Good", 3),
        ("45", "D", "Fair", 2),
        ("44.99", "E", "Pass", 1),
        ("39.99", "F", "Fail", 0),
        ("0", "F", "Fail", 0),
    ],
)
def test_grade_info_bands(total, grade, remark, points):
    assert grade_info(Decimal(total)) == (grade, remark, points)


def test_scores_with_more_than_two_decimals_are_rejected():
    with pytest.raises(PydanticValidationError):
        ResultCreate(
            student_id=1,
            subject_id=1,
            term_id=1,
            ca_score=Decimal("10.004"),
            exam_score=Decimal("20"),
        )


def test_create_result_derives_total_grade_and_position(db, make_student, subject, term, teacher):
    student = make_student()
    response = ResultService(db).create_result(
        ResultCreate(
            student_id=student.id,
            subject_id=subject.id,
            term_id=term.id,
            ca_score=Decimal("35"),
            exam_score=Decimal("40"),
        ),
        teacher,
    )

    assert response.total_score == Decimal("75")
    assert response.position == 1
    assert response.grade == "A"
    assert response.grade_remark == "Excellent"
    assert response.grade_points == 5
    assert response.teacher_id == teacher.id


def test_create_duplicate_result_conflicts(db, make_student, subject, term, teacher, save_result):
    student = make_student()
    save_result(student, "10", "10")

    with pytest.raises(ConflictError):
        ResultService(db).create_result(
            ResultCreate(
                student_id=student.id,
                subject_id=subject.id,
                term_id=term.id,
                ca_score=Decimal("20"),
                exam_score=Decimal("20"),
            ),
            teacher,
        )


def test_create_result_for_unknown_student(db, subject, term, teacher):
    with pytest.raises(NotFoundError):
        ResultService(db).create_result(
            ResultCreate(student_id=999, subject_id=subject.id, term_id=term.id, ca_score=1, exam_score=1),
            teacher,
        )


def test_update_result_recomputes_total_and_positions(db, make_student, save_result, teacher):
    first = save_result(make_student(), "30", "50")  # 80
    second = save_result(make_student(), "20", "40")  # 60

    response = ResultService(db).update_result(second.id, ResultUpdate(exam_score=Decimal("60")), teacher)

    assert response.total_score == Decimal("80")
    assert response.position == 1
    assert first.position == 1


def test_update_rejects_null_component(db, make_student, save_result, teacher):
    result = save_result(make_student(), "30", "50")
    with pytest.raises(ValidationError):
        ResultService(db).update_result(result.id, ResultUpdate(ca_score=None), teacher)


def test_delete_reranks_remaining_cohort(db, make_student, save_result, teacher):
    top = save_result(make_student(), "40", "55")
    middle = save_result(make_student(), "30", "50")
    bottom = save_result(make_student(), "20", "40")

    ResultService(db).delete_result(top.id, teacher)

    assert middle.position == 1
    assert bottom.position == 2


def test_create_notifies_student_and_admins(db, make_student, save_result, admin, teacher):
    student = make_student()
    result = save_result(student, "30", "40")

    student_notes = notifications_for(db, student.user_id)
    admin_notes = notifications_for(db, admin.id)

    assert [n.notification_type for n in student_notes] == ["result"]
    assert student_notes[0].reference_id == result.id
    assert student_notes[0].sender_id == teacher.id
    assert [n.notification_type for n in admin_notes] == ["result_entry"]


def test_update_notifies_only_when_scores_change(db, make_student, save_result, teacher):
    student = make_student()
    result = save_result(student, "30", "40")
    service = ResultService(db)

    service.update_result(result.id, ResultUpdate(teacher_comment="Good effort"), teacher)
    assert [n.notification_type for n in notifications_for(db, student.user_id)] == ["result"]

    service.update_result(result.id, ResultUpdate(ca_score=Decimal("35")), teacher)
    assert [n.notification_type for n in notifications_for(db, student.user_id)] == ["result", "result_update"]


def test_delete_notifies_student_without_reference(db, make_student, save_result, teacher):
    student = make_student()
    result = save_result(student, "30", "40")

    ResultService(db).delete_result(result.id, teacher)

    last = notifications_for(db, student.user_id)[-1]
    assert last.notification_type == "result_delete"
    assert last.reference_id is None


def test_student_without_account_gets_no_notification(db, make_student, save_result):
    save_result(make_student(with_account=False), "30", "40")
    types = db.execute(select(Notification.notification_type)).scalars().all()
    assert "result" not in types


def test_bulk_upsert_creates_updates_and_ranks_once(db, make_student, save_result, subject, term, teacher):
    existing_student = make_student()
    save_result(existing_student, "10", "10")
    new_student = make_student()

    response = ResultService(db).bulk_upsert(
        BulkResultCreate(
            subject_id=subject.id,
            term_id=term.id,
            records=[
                {"student_id": existing_student.id, "ca_score": "40", "exam_score": "50"},
                {"student_id": new_student.id, "ca_score": "20", "exam_score": "30"},
            ],
        ),
        teacher,
    )

    assert (response.created, response.updated, response.failed) == (1, 1, 0)
    cohort = ResultService(db).get_cohort(subject.id, term.id)
    assert [(e.student_id, e.position) for e in cohort.entries] == [
        (existing_student.id, 1),
        (new_student.id, 2),
    ]


def test_bulk_upsert_saves_nothing_when_a_student_is_unknown(db, make_student, subject, term, teacher):
    student = make_student()
    response = ResultService(db).bulk_upsert(
        BulkResultCreate(
            subject_id=subject.id,
            term_id=term.id,
            records=[
                {"student_id": student.id, "ca_score": "40", "exam_score": "50"},
                {"student_id": 4242, "ca_score": "20", "exam_score": "30"},
            ],
        ),
        teacher,
    )

    assert response.failed == 1
    assert response.errors[0]["student_id"] == 4242
    assert ResultService(db).find_result(student.id, subject.id, term.id) is None


def test_cohort_statistics(db, make_student, save_result, subject, term):
    save_result(make_student(), "40", "50")  # 90
    save_result(make_student(), "20", "40")  # 60

    cohort = ResultService(db).get_cohort(subject.id, term.id)

    assert cohort.total_students == 2
    assert cohort.average_score == Decimal("75.00")
    assert cohort.highest_score == Decimal("90")
    assert cohort.lowest_score == Decimal("60")


def test_list_results_filters_by_class_and_score(db, make_student, save_result):
    save_result(make_student(class_name="JSS1"), "40", "50")
    save_result(make_student(class_name="JSS2"), "20", "40")
    save_result(make_student(class_name="JSS2"), "10", "10")

    items, total = ResultService(db).list_results(ResultFilter(class_name="JSS2", min_score=Decimal("50")))

    assert total == 1
    assert items[0].class_name == "JSS2"
    assert items[0].total_score == Decimal("60")


def test_export_results_writes_workbook(db, make_student, save_result):
    save_result(make_student(name="Ada Obi"), "30", "45")

    content = ResultService(db).export_results()
    ws = load_workbook(BytesIO(content)).active

    assert ws.cell(row=1, column=1).value == "Student Name"
    assert ws.cell(row=2, column=1).value == "Ada Obi"
    assert ws.cell(row=2, column=9).value == 75
    assert ws.cell(row=2, column=11).value == "A"
    assert ws.cell(row=2, column=12).value == "Excellent"
    assert ws.cell(row=2, column=13).value == 5
