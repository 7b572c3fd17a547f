"""Score total and cohort position computation.

A cohort is every result sharing one (subject, term) pair. Positions use
standard competition ranking: equal totals share a position and the next
distinct total skips ahead, so totals [90, 80, 80, 70] rank [1, 2, 2, 4].

Re-ranking reloads and sorts the whole cohort on every write. There is no
cohort-level locking; callers are expected to write one cohort at a time.
"""

import logging
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.result import Result

logger = logging.getLogger(__name__)


SCORE_PLACES = Decimal("0.01")


def quantize_score(value: Decimal | None) -> Decimal:
    """Round a score to the two places the score columns store."""
    return (value or Decimal("0")).quantize(SCORE_PLACES, rounding=ROUND_HALF_UP)


def compute_total(result: Result) -> Decimal:
    """Derive total_score from the CA and exam components.

    Components are rounded to the stored precision first, so the values
    ranked in the session are the values the database keeps.
    """
    ca = quantize_score(result.ca_score)
    exam = quantize_score(result.exam_score)
    if result.ca_score != ca:
        result.ca_score = ca
    if result.exam_score != exam:
        result.exam_score = exam
    result.total_score = ca + exam
    return result.total_score


def assign_positions(totals: Sequence[Decimal]) -> list[int]:
    """Rank totals already sorted in descending order."""
    positions: list[int] = []
    last_total = None
    last_position = 0
    for index, total in enumerate(totals, start=1):
        if last_total is not None and total == last_total:
            positions.append(last_position)
        else:
            positions.append(index)
            last_position = index
        last_total = total
    return positions


def load_cohort(db: Session, subject_id: int, term_id: int) -> list[Result]:
    """Every result of a (subject, term) cohort, best total first."""
    result = db.execute(
        select(Result)
        .where(Result.subject_id == subject_id, Result.term_id == term_id)
        .order_by(Result.total_score.desc(), Result.id)
    )
    return list(result.scalars().all())


def recompute_cohort(db: Session, subject_id: int, term_id: int) -> int:
    """Re-rank a cohort and persist changed positions.

    Only positions are written here, so the writes never feed back into
    compute_total or another re-rank. Returns the number of positions changed.
    """
    cohort = load_cohort(db, subject_id, term_id)
    positions = assign_positions([r.total_score for r in cohort])

    changed = 0
    for record, position in zip(cohort, positions):
        if record.position != position:
            record.position = position
            changed += 1

    db.flush()
    logger.debug(
        f"Re-ranked cohort subject={subject_id} term={term_id}: "
        f"{len(cohort)} records, {changed} positions changed"
    )
    return changed
