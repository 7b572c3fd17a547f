"""Sync completed CBT attempts of a term that have no linked result yet.

Usage: python -m scripts.resync_cbt <term_id> [--subject-id N]
"""
import argparse

from app.core.database import SessionLocal
from app.services.cbt_sync import CBTResultIntegrationService


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("term_id", type=int)
    parser.add_argument("--subject-id", type=int, default=None)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        response = CBTResultIntegrationService(db).bulk_sync(args.term_id, args.subject_id, actor=None)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print(f"Processed {response.total_processed} attempts: {len(response.synced)} synced")
    for failure in response.failed:
        print(f"  attempt {failure['attempt_id']} failed: {failure['error']}")


if __name__ == "__main__":
    main()
