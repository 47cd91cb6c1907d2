# Admin decisions on borrow requests and admin-role requests
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from library_desk import book_requests, models, notifications, procedures
from library_desk.config import LOAN_DAYS
from library_desk.errors import InvalidStateError, NotFoundError
from library_desk.models import AdminRequestStatus, Role

logger = logging.getLogger(__name__)


def approve(db: Session, request_id: int, approved_by: int, due_days: int = LOAN_DAYS):
    borrow = procedures.approve_book_request(db, request_id, approved_by, due_days)
    request = book_requests.get_request(db, request_id)

    notifications.notify(
        db,
        request.user_id,
        notifications.REQUEST_APPROVED,
        "Book Request Approved",
        f"Your request for \"{request.book.title}\" was approved. "
        f"Please return it by {borrow.due_at:%Y-%m-%d}.",
        {"request_id": request.id, "book_id": request.book_id, "borrow_id": borrow.id},
    )
    return request


def reject(db: Session, request_id: int, rejected_by: int, reason: str = None):
    procedures.reject_book_request(db, request_id, rejected_by, reason)
    request = book_requests.get_request(db, request_id)

    message = f"Your request for \"{request.book.title}\" was rejected."
    if request.rejection_reason:
        message += f" Reason: {request.rejection_reason}"
    notifications.notify(
        db,
        request.user_id,
        notifications.REQUEST_REJECTED,
        "Book Request Rejected",
        message,
        {"request_id": request.id, "book_id": request.book_id},
    )
    return request


def get_admin_request_status(db: Session, user_id: int):
    """Latest admin-role request for the user, or None if they never asked."""
    return (
        db.query(models.AdminApprovalRequest)
        .filter(models.AdminApprovalRequest.user_id == user_id)
        .order_by(models.AdminApprovalRequest.requested_at.desc(), models.AdminApprovalRequest.id.desc())
        .first()
    )


def _pending_admin_request(db: Session, user_id: int):
    return (
        db.query(models.AdminApprovalRequest)
        .filter(
            models.AdminApprovalRequest.user_id == user_id,
            models.AdminApprovalRequest.status == AdminRequestStatus.PENDING.value,
        )
        .first()
    )


def create_admin_request(db: Session, user_id: int):
    profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError("User profile not found. Please contact support.")
    if profile.role == Role.ADMIN.value:
        raise InvalidStateError("You are already an administrator")

    # Asking twice returns the request already in the queue
    existing = _pending_admin_request(db, user_id)
    if existing is not None:
        return existing

    admin_request = models.AdminApprovalRequest(user_id=user_id, status=AdminRequestStatus.PENDING.value)
    db.add(admin_request)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return _pending_admin_request(db, user_id)
    db.refresh(admin_request)
    logger.info("User %s asked for the admin role (request %s)", user_id, admin_request.id)
    return admin_request


def list_pending_admin_requests(db: Session):
    return (
        db.query(models.AdminApprovalRequest)
        .options(joinedload(models.AdminApprovalRequest.user))
        .filter(models.AdminApprovalRequest.status == AdminRequestStatus.PENDING.value)
        .order_by(models.AdminApprovalRequest.requested_at.desc(), models.AdminApprovalRequest.id.desc())
        .all()
    )


def approve_admin_request(db: Session, request_id: int, reviewed_by: int):
    admin_request = procedures.approve_admin_request(db, request_id, reviewed_by)
    notifications.notify(
        db,
        admin_request.user_id,
        notifications.ADMIN_REQUEST_APPROVED,
        "Admin Access Granted",
        "Your request for administrator access was approved.",
        {"admin_request_id": admin_request.id},
    )
    return admin_request


def reject_admin_request(db: Session, request_id: int, reviewed_by: int):
    admin_request = procedures.reject_admin_request(db, request_id, reviewed_by)
    notifications.notify(
        db,
        admin_request.user_id,
        notifications.ADMIN_REQUEST_REJECTED,
        "Admin Access Declined",
        "Your request for administrator access was declined.",
        {"admin_request_id": admin_request.id},
    )
    return admin_request
