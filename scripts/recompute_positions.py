"""Re-rank every subject cohort of a term.

Usage: python -m scripts.recompute_positions <term_id>
"""
import argparse

from sqlalchemy import select

from app.core.database import SessionLocal
from app.models.result import Result
from app.services.ranking import recompute_cohort


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("term_id", type=int)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        subject_ids = db.execute(
            select(Result.subject_id).where(Result.term_id == args.term_id).distinct()
        ).scalars().all()

        for subject_id in subject_ids:
            changed = recompute_cohort(db, subject_id, args.term_id)
            print(f"Subject {subject_id}: {changed} positions changed")

        db.commit()
        print(f"Re-ranked {len(subject_ids)} cohorts for term {args.term_id}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
