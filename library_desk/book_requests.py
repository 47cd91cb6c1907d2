# Borrow requests (one pending per user and book, backed by a partial unique index)
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from library_desk import models, notifications
from library_desk.errors import (
    AvailabilityError, DuplicateRequestError, InvalidStateError, NotFoundError,
)
from library_desk.models import RequestStatus

logger = logging.getLogger(__name__)


def create_request(db: Session, user_id: int, book_id: int):
    profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError("User profile not found. Please contact support.")

    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if book is None:
        raise NotFoundError("Book not found")
    if book.available_copies < 1:
        raise AvailabilityError("Book is not available")

    existing = (
        db.query(models.BookRequest.id)
        .filter(
            models.BookRequest.user_id == user_id,
            models.BookRequest.book_id == book_id,
            models.BookRequest.status == RequestStatus.PENDING.value,
        )
        .first()
    )
    if existing:
        raise DuplicateRequestError("You already have a pending request for this book")

    request = models.BookRequest(user_id=user_id, book_id=book_id, status=RequestStatus.PENDING.value)
    db.add(request)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateRequestError("You already have a pending request for this book") from exc
    db.refresh(request)
    logger.info("User %s requested book %s (request %s)", user_id, book_id, request.id)

    notifications.notify(
        db,
        user_id,
        notifications.REQUEST_CREATED,
        "Book Request Created",
        f"Your request for \"{book.title}\" has been submitted.",
        {"request_id": request.id, "book_id": book_id},
    )
    return request


def cancel_request(db: Session, request_id: int, user_id: int):
    # Scoped to the owner: someone else's request reads as missing
    request = (
        db.query(models.BookRequest)
        .filter(models.BookRequest.id == request_id, models.BookRequest.user_id == user_id)
        .first()
    )
    if request is None:
        raise NotFoundError("Request not found")
    if request.status != RequestStatus.PENDING.value:
        raise InvalidStateError("Only pending requests can be cancelled")

    result = db.execute(
        update(models.BookRequest)
        .where(models.BookRequest.id == request_id,
               models.BookRequest.status == RequestStatus.PENDING.value)
        .values(status=RequestStatus.CANCELLED.value, cancelled_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Reviewed between the read and the write
        db.rollback()
        raise InvalidStateError("Only pending requests can be cancelled")

    db.commit()
    db.refresh(request)
    logger.info("Request %s cancelled by user %s", request_id, user_id)
    return request


def get_request(db: Session, request_id: int):
    request = (
        db.query(models.BookRequest)
        .options(joinedload(models.BookRequest.user), joinedload(models.BookRequest.book))
        .filter(models.BookRequest.id == request_id)
        .first()
    )
    if request is None:
        raise NotFoundError("Request not found")
    return request


def list_for_user(db: Session, user_id: int):
    return (
        db.query(models.BookRequest)
        .options(joinedload(models.BookRequest.book))
        .filter(models.BookRequest.user_id == user_id)
        .order_by(models.BookRequest.requested_at.desc(), models.BookRequest.id.desc())
        .all()
    )


def list_all(db: Session, status: Optional[RequestStatus] = None):
    query = db.query(models.BookRequest).options(
        joinedload(models.BookRequest.user), joinedload(models.BookRequest.book)
    )
    if status is not None:
        query = query.filter(models.BookRequest.status == status.value)
    return query.order_by(models.BookRequest.requested_at.desc(), models.BookRequest.id.desc()).all()


def list_all_pending(db: Session):
    return list_all(db, RequestStatus.PENDING)
