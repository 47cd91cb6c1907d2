# Atomic transactions; available_copies is only changed here
import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from library_desk import models
from library_desk.config import LOAN_DAYS
from library_desk.errors import AvailabilityError, InvalidStateError, LibraryError, NotFoundError
from library_desk.models import AdminRequestStatus, BorrowStatus, RequestStatus

logger = logging.getLogger(__name__)

OUTSTANDING = (BorrowStatus.ACTIVE.value, BorrowStatus.OVERDUE.value)


def _take_copy(db, book_id: int) -> bool:
    result = db.execute(
        update(models.Book)
        .where(models.Book.id == book_id, models.Book.available_copies > 0)
        .values(available_copies=models.Book.available_copies - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _put_back_copy(db, book_id: int) -> bool:
    result = db.execute(
        update(models.Book)
        .where(models.Book.id == book_id, models.Book.available_copies < models.Book.total_copies)
        .values(available_copies=models.Book.available_copies + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def decrement_book_available(db, book_id: int) -> None:
    if db.get(models.Book, book_id) is None:
        raise NotFoundError("Book not found")
    if not _take_copy(db, book_id):
        db.rollback()
        raise AvailabilityError("Book is not available")
    db.commit()


def increment_book_available(db, book_id: int) -> None:
    if db.get(models.Book, book_id) is None:
        raise NotFoundError("Book not found")
    if not _put_back_copy(db, book_id):
        db.rollback()
        raise InvalidStateError("All copies of this book are already on the shelf")
    db.commit()


def resize_book_stock(db, book_id: int, total_copies: int) -> None:
    """Change a book's total copies, moving the shelf count by the same amount.

    Not committed here so the caller can fold it into a wider edit. Refused if
    more copies are on loan than the new total allows.
    """
    delta = total_copies - models.Book.total_copies
    result = db.execute(
        update(models.Book)
        .where(models.Book.id == book_id, models.Book.available_copies + delta >= 0)
        .values(total_copies=total_copies, available_copies=models.Book.available_copies + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidStateError(f"Cannot reduce to {total_copies} copies while copies are on loan")


def approve_book_request(db, request_id: int, approved_by: int, due_days: int = LOAN_DAYS, now: datetime = None):
    """Approve a pending request: claim it, take a copy, issue the borrow.

    Returns the new ``BorrowRecord``. Raises ``NotFoundError``,
    ``InvalidStateError`` (not pending) or ``AvailabilityError`` (no copy left)
    with no side effects.
    """
    now = now or datetime.utcnow()
    request = db.get(models.BookRequest, request_id)
    if request is None:
        raise NotFoundError("Request not found")
    user_id, book_id = request.user_id, request.book_id

    try:
        claimed = db.execute(
            update(models.BookRequest)
            .where(models.BookRequest.id == request_id,
                   models.BookRequest.status == RequestStatus.PENDING.value)
            .values(status=RequestStatus.APPROVED.value, reviewed_at=now, reviewed_by=approved_by)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidStateError("Request is no longer pending")

        if not _take_copy(db, book_id):
            raise AvailabilityError("Book is no longer available")

        borrow = models.BorrowRecord(
            user_id=user_id,
            book_id=book_id,
            request_id=request_id,
            issued_at=now,
            due_at=now + timedelta(days=due_days),
            status=BorrowStatus.ACTIVE.value,
        )
        db.add(borrow)
        db.flush()
    except LibraryError:
        db.rollback()
        raise
    except IntegrityError as exc:
        # request_id is unique on borrow_records
        db.rollback()
        raise InvalidStateError("A borrow was already issued for this request") from exc

    db.commit()
    db.refresh(borrow)
    logger.info("Approved request %s: borrow %s issued to user %s for book %s, due %s",
                request_id, borrow.id, user_id, book_id, borrow.due_at.isoformat())
    return borrow


def reject_book_request(db, request_id: int, rejected_by: int, reason: str = None, now: datetime = None):
    now = now or datetime.utcnow()
    request = db.get(models.BookRequest, request_id)
    if request is None:
        raise NotFoundError("Request not found")

    result = db.execute(
        update(models.BookRequest)
        .where(models.BookRequest.id == request_id,
               models.BookRequest.status == RequestStatus.PENDING.value)
        .values(status=RequestStatus.REJECTED.value, reviewed_at=now, reviewed_by=rejected_by,
                rejection_reason=reason or None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidStateError("Request is no longer pending")

    db.commit()
    db.refresh(request)
    logger.info("Rejected request %s", request_id)
    return request


def return_book_borrow(db, borrow_id: int, returned_by: int, now: datetime = None):
    """Close an active or overdue borrow and put its copy back on the shelf."""
    now = now or datetime.utcnow()
    borrow = db.get(models.BorrowRecord, borrow_id)
    if borrow is None:
        raise NotFoundError("Borrow record not found")
    book_id = borrow.book_id

    closed = db.execute(
        update(models.BorrowRecord)
        .where(models.BorrowRecord.id == borrow_id, models.BorrowRecord.status.in_(OUTSTANDING))
        .values(status=BorrowStatus.RETURNED.value, returned_at=now, returned_by=returned_by)
        .execution_options(synchronize_session=False)
    )
    if closed.rowcount != 1:
        db.rollback()
        raise InvalidStateError("Book already returned")

    if not _put_back_copy(db, book_id):
        db.rollback()
        logger.error("Book %s has no outstanding copy to take back for borrow %s", book_id, borrow_id)
        raise InvalidStateError("All copies of this book are already on the shelf")

    db.commit()
    db.refresh(borrow)
    logger.info("Borrow %s returned, book %s copy restored", borrow_id, book_id)
    return borrow


def mark_overdue_borrows(db, now: datetime = None):
    """Flip every active borrow past its due date to overdue in one statement.

    Returns the transitioned rows as ``(id, user_id, book_id, due_at)``. Rows
    that are already overdue are not touched, so running this twice is safe.
    """
    now = now or datetime.utcnow()
    result = db.execute(
        update(models.BorrowRecord)
        .where(models.BorrowRecord.status == BorrowStatus.ACTIVE.value,
               models.BorrowRecord.due_at < now)
        .values(status=BorrowStatus.OVERDUE.value)
        .returning(models.BorrowRecord.id, models.BorrowRecord.user_id,
                   models.BorrowRecord.book_id, models.BorrowRecord.due_at)
        .execution_options(synchronize_session=False)
    )
    rows = result.all()
    db.commit()
    return rows


def approve_admin_request(db, request_id: int, reviewed_by: int, now: datetime = None):
    """Approve a pending admin request and promote its user, in one transaction."""
    now = now or datetime.utcnow()
    admin_request = db.get(models.AdminApprovalRequest, request_id)
    if admin_request is None:
        raise NotFoundError("Admin request not found")
    user_id = admin_request.user_id

    result = db.execute(
        update(models.AdminApprovalRequest)
        .where(models.AdminApprovalRequest.id == request_id,
               models.AdminApprovalRequest.status == AdminRequestStatus.PENDING.value)
        .values(status=AdminRequestStatus.APPROVED.value, reviewed_at=now, reviewed_by=reviewed_by)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidStateError("Admin request is no longer pending")

    db.execute(
        update(models.Profile)
        .where(models.Profile.id == user_id)
        .values(role=models.Role.ADMIN.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(admin_request)
    logger.info("User %s promoted to admin by %s", user_id, reviewed_by)
    return admin_request


def reject_admin_request(db, request_id: int, reviewed_by: int, now: datetime = None):
    now = now or datetime.utcnow()
    admin_request = db.get(models.AdminApprovalRequest, request_id)
    if admin_request is None:
        raise NotFoundError("Admin request not found")

    result = db.execute(
        update(models.AdminApprovalRequest)
        .where(models.AdminApprovalRequest.id == request_id,
               models.AdminApprovalRequest.status == AdminRequestStatus.PENDING.value)
        .values(status=AdminRequestStatus.REJECTED.value, reviewed_at=now, reviewed_by=reviewed_by)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidStateError("Admin request is no longer pending")

    db.commit()
    db.refresh(admin_request)
    return admin_request
