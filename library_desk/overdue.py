# Overdue sweep, run from cron: python -m library_desk.overdue
import argparse
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from library_desk import models, notifications, procedures
from library_desk.config import LOG_LEVEL
from library_desk.database import Base, SessionLocal, engine

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    count: int
    borrow_ids: List[int] = field(default_factory=list)
    notified: int = 0


def sweep_overdue(db: Session, now: datetime = None) -> SweepResult:
    rows = procedures.mark_overdue_borrows(db, now)
    result = SweepResult(count=len(rows), borrow_ids=[row.id for row in rows])
    logger.info("Marked %d borrow records as overdue", result.count)

    for row in rows:
        if _send_reminder(db, row):
            result.notified += 1
    return result


def _send_reminder(db: Session, row) -> bool:
    # One failed reminder must not stop the others
    try:
        book = db.query(models.Book).filter(models.Book.id == row.book_id).first()
        title = book.title if book else "a library book"
        return notifications.notify(
            db,
            row.user_id,
            notifications.BORROW_OVERDUE,
            f"Overdue book reminder: {title}",
            f"\"{title}\" was due on {row.due_at:%Y-%m-%d}. Please return it at your earliest convenience.",
            {"borrow_id": row.id, "book_id": row.book_id},
        )
    except Exception:
        db.rollback()
        logger.warning("Could not send overdue reminder for borrow %s", row.id, exc_info=True)
        return False


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Mark active borrows past their due date as overdue.")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="Treat this ISO timestamp as the current time (UTC).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        result = sweep_overdue(db, args.now)
    except Exception:
        logger.exception("Failed to run overdue job")
        return 1
    finally:
        db.close()

    print(f"Marked {result.count} borrow records as overdue ({result.notified} reminders sent)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
