"""Totals and competition ranking of subject/term cohorts."""

from decimal import Decimal

import pytest

from app.core.database import SessionLocal
from app.models.result import Result
from app.services.ranking import assign_positions, compute_total, load_cohort, recompute_cohort
from app.services.result import ResultService


@pytest.mark.parametrize(
    "totals, expected",
    [
        ([90, 80, 80, 70], [1, 2, 2, 4]),
        ([95, 90, 88, 88], [1, 2, 3, 3]),
        ([50, 50, 50], [1, 1, 1]),
        ([100], [1]),
        ([], []),
    ],
)
def test_assign_positions_uses_competition_ranking(totals, expected):
    assert assign_positions([Decimal(t) for t in totals]) == expected


def test_compute_total_adds_components():
    result = Result(ca_score=Decimal("32.5"), exam_score=Decimal("41.25"))
    assert compute_total(result) == Decimal("73.75")
    assert result.total_score == Decimal("73.75")


def test_compute_total_rounds_components_to_stored_precision():
    result = Result(ca_score=Decimal("10.004"), exam_score=Decimal("20.005"))

    assert compute_total(result) == Decimal("30.01")
    assert result.ca_score == Decimal("10.00")
    assert result.exam_score == Decimal("20.01")


def test_save_sets_total_and_first_position(make_student, save_result):
    result = save_result(make_student(), "30", "45")

    assert result.total_score == Decimal("75")
    assert result.position == 1


def test_new_record_slots_between_existing_totals(make_student, save_result):
    a = save_result(make_student(), "35", "60")  # 95
    b = save_result(make_student(), "30", "58")  # 88
    c = save_result(make_student(), "28", "60")  # 88
    assert [a.position, b.position, c.position] == [1, 2, 2]

    d = save_result(make_student(), "30", "60")  # 90

    assert (a.position, d.position, b.position, c.position) == (1, 2, 3, 3)


def test_tied_totals_skip_the_next_position(make_student, save_result):
    records = [
        save_result(make_student(), "30", "60"),  # 90
        save_result(make_student(), "20", "60"),  # 80
        save_result(make_student(), "40", "40"),  # 80
        save_result(make_student(), "10", "60"),  # 70
    ]
    assert [r.position for r in records] == [1, 2, 2, 4]


def test_resaving_unchanged_values_keeps_positions(db, make_student, save_result, subject, term, teacher):
    records = [
        save_result(make_student(), "30", "60"),
        save_result(make_student(), "20", "60"),
        save_result(make_student(), "40", "40"),
    ]
    before = [r.position for r in records]

    ResultService(db).save_score(records[1], teacher)

    assert [r.position for r in records] == before
    assert recompute_cohort(db, subject.id, term.id) == 0


def test_lowering_a_score_reranks_the_cohort(db, make_student, save_result, teacher):
    top = save_result(make_student(), "40", "55")  # 95
    second = save_result(make_student(), "30", "50")  # 80

    top.exam_score = Decimal("10")  # 50
    ResultService(db).save_score(top, teacher)

    assert second.position == 1
    assert top.position == 2


def test_cohorts_are_ranked_independently(db, make_student, save_result, term):
    from app.models.academic import Subject

    english = Subject(name="English", code="ENG")
    db.add(english)
    db.flush()

    student = make_student()
    maths = save_result(student, "10", "10")
    save_result(make_student(), "40", "60")
    eng = save_result(student, "10", "10", subject_id=english.id)

    assert maths.position == 2
    assert eng.position == 1


def test_load_cohort_orders_by_total_descending(db, make_student, save_result, subject, term):
    save_result(make_student(), "10", "20")
    save_result(make_student(), "40", "60")
    save_result(make_student(), "20", "30")

    totals = [r.total_score for r in load_cohort(db, subject.id, term.id)]
    assert totals == sorted(totals, reverse=True)


def test_sub_cent_scores_tie_once_stored(db, make_student, save_result, subject, term):
    first = save_result(make_student(), "10.004", "0")
    second = save_result(make_student(), "10.001", "0")

    assert first.total_score == second.total_score == Decimal("10.00")
    assert first.position == second.position == 1


def test_positions_survive_commit_and_reload(db, make_student, save_result, subject, term):
    save_result(make_student(), "10.004", "0")
    save_result(make_student(), "10.001", "0")
    save_result(make_student(), "30", "45.5")
    subject_id, term_id = subject.id, term.id
    db.commit()

    fresh = SessionLocal()
    try:
        cohort = load_cohort(fresh, subject_id, term_id)
        assert [(r.total_score, r.position) for r in cohort] == [
            (Decimal("75.50"), 1),
            (Decimal("10.00"), 2),
            (Decimal("10.00"), 2),
        ]
        assert recompute_cohort(fresh, subject_id, term_id) == 0
    finally:
        fresh.close()
