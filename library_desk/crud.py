from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from typing import List
from library_desk import models, procedures, schemas
from library_desk.errors import AccountExistsError, InvalidStateError, NotFoundError
from library_desk.models import BorrowStatus, RequestStatus, Role
from library_desk.procedures import OUTSTANDING
from library_desk.retry import transient_on_operational_error
from library_desk.security import hash_password, verify_password


def create_book(db: Session, book_data: schemas.BookCreate):
    # A new title starts with every copy on the shelf
    new_book = models.Book(**book_data.model_dump(), available_copies=book_data.total_copies)
    db.add(new_book)
    db.commit()
    db.refresh(new_book)
    return new_book


def get_books(db: Session):
    return db.query(models.Book).order_by(models.Book.created_at.desc(), models.Book.id.desc()).all()


def get_book(db: Session, book_id: int):
    book = db.query(models.Book).filter(models.Book.id == book_id).first()
    if book is None:
        raise NotFoundError("Book not found")
    return book


def search_books(db: Session, term: str):
    pattern = f"%{term}%"
    return (
        db.query(models.Book)
        .filter(or_(models.Book.title.ilike(pattern), models.Book.author.ilike(pattern)))
        .order_by(models.Book.title.asc())
        .all()
    )


def partial_update_book(
        db: Session,
        book_id: int,
        book_data: schemas.BookUpdate,
):
    book = get_book(db, book_id)
    changes = book_data.model_dump(exclude_unset=True)

    new_total = changes.pop("total_copies", None)
    if new_total is not None and new_total != book.total_copies:
        procedures.resize_book_stock(db, book_id, new_total)

    for key, value in changes.items():
        setattr(book, key, value)

    db.commit()
    db.refresh(book)

    return book


def delete_book(db: Session, book_id: int):
    book = get_book(db, book_id)
    outstanding = (
        db.query(func.count(models.BorrowRecord.id))
        .filter(models.BorrowRecord.book_id == book_id, models.BorrowRecord.status.in_(OUTSTANDING))
        .scalar()
    )
    if outstanding:
        raise InvalidStateError("Book cannot be deleted while copies are on loan")
    db.delete(book)
    db.commit()
    return {"message": "Book deleted successfully"}


def bulk_delete_books(db: Session, book_ids: List[int]):
    # All or nothing: one missing book or one copy on loan keeps every book
    book_ids = list(dict.fromkeys(book_ids))
    books = db.query(models.Book).filter(models.Book.id.in_(book_ids)).all()
    found = {book.id for book in books}
    missing = [book_id for book_id in book_ids if book_id not in found]
    if missing:
        raise NotFoundError(f"Books not found: {', '.join(str(book_id) for book_id in missing)}")

    on_loan = (
        db.query(models.BorrowRecord.book_id)
        .filter(models.BorrowRecord.book_id.in_(book_ids), models.BorrowRecord.status.in_(OUTSTANDING))
        .distinct()
        .all()
    )
    if on_loan:
        titles = sorted(book.title for book in books if book.id in {row.book_id for row in on_loan})
        raise InvalidStateError(f"Books cannot be deleted while copies are on loan: {', '.join(titles)}")

    for book in books:
        db.delete(book)
    db.commit()
    return {"message": f"{len(books)} books deleted successfully", "deleted": book_ids}


def get_profile(db: Session, user_id: int):
    return transient_on_operational_error(
        db, lambda: db.query(models.Profile).filter(models.Profile.id == user_id).first()
    )


def get_profile_by_username(db: Session, username: str):
    return db.query(models.Profile).filter(models.Profile.username == username).first()


def get_profile_by_email(db: Session, email: str):
    return db.query(models.Profile).filter(models.Profile.email == email).first()


def _commit_profile(db: Session):
    # username and email are unique columns; a concurrent signup lands here
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AccountExistsError() from exc


def create_profile(db: Session, user_data: schemas.ProfileCreate, role: Role = Role.USER):
    new_profile = models.Profile(
        username=user_data.username,
        email=user_data.email,
        name=user_data.name,
        department=user_data.department,
        hashed_password=hash_password(user_data.password),
        role=role.value,
    )
    db.add(new_profile)
    _commit_profile(db)
    db.refresh(new_profile)
    return new_profile


def update_profile(db: Session, user_id: int, profile_data: schemas.ProfileUpdate):
    profile = db.query(models.Profile).filter(models.Profile.id == user_id).first()
    if profile is None:
        raise NotFoundError("User profile not found. Please contact support.")

    # role only changes through an approved admin request
    changes = profile_data.model_dump(exclude_unset=True)
    changes.pop("role", None)
    new_email = changes.pop("email", None)
    if new_email is not None:
        changes["email"] = new_email

    if new_email is not None and new_email != profile.email and get_profile_by_email(db, new_email):
        raise AccountExistsError("Email already registered.")

    for key, value in changes.items():
        setattr(profile, key, value)

    _commit_profile(db)
    db.refresh(profile)
    return profile


def authenticate_user(db: Session, username: str, password: str):
    profile = get_profile_by_username(db, username)
    if not profile:
        return None
    if not verify_password(password, profile.hashed_password):
        return None
    return profile


def get_admin_dashboard_stats(db: Session):
    total_users = db.query(func.count(models.Profile.id)).scalar()
    total_books = db.query(func.count(models.Book.id)).scalar()
    pending_requests = db.query(func.count(models.BookRequest.id)).filter(
        models.BookRequest.status == RequestStatus.PENDING.value
    ).scalar()
    active_borrows = db.query(func.count(models.BorrowRecord.id)).filter(
        models.BorrowRecord.status == BorrowStatus.ACTIVE.value
    ).scalar()
    overdue_borrows = db.query(func.count(models.BorrowRecord.id)).filter(
        models.BorrowRecord.status == BorrowStatus.OVERDUE.value
    ).scalar()

    return {
        "total_users": total_users,
        "total_books": total_books,
        "pending_requests": pending_requests,
        "active_borrows": active_borrows,
        "overdue_borrows": overdue_borrows,
    }
