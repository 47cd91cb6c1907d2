from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import timedelta

from library_desk import approvals, book_requests, borrows, crud, notifications, overdue, schemas
from library_desk.auth import create_access_token
from library_desk.config import ACCESS_TOKEN_EXPIRE_MINUTES
from library_desk.database import get_db
from library_desk.dependencies import get_current_admin, get_current_user
from library_desk.errors import AuthorizationError
from library_desk.models import BorrowStatus, Profile, RequestStatus

router = APIRouter()


# Books

@router.get("/books/", response_model=List[schemas.BookConfig])
def read_all_books(db: Session = Depends(get_db)):
    return crud.get_books(db)


@router.get("/books/search/{term}", response_model=List[schemas.BookConfig])
def search_books(term: str, db: Session = Depends(get_db)):
    books = crud.search_books(db, term)
    if not books:
        raise HTTPException(status_code=404, detail="No books found")
    return books


@router.get("/books/{book_id}", response_model=schemas.BookConfig)
def read_book(book_id: int, db: Session = Depends(get_db)):
    return crud.get_book(db, book_id)


@router.post("/books/", response_model=schemas.BookConfig, status_code=status.HTTP_201_CREATED)
def create_book(book: schemas.BookCreate,
                db: Session = Depends(get_db),
                current_admin: Profile = Depends(get_current_admin)
                ):
    return crud.create_book(db, book)


@router.patch("/books/{book_id}", response_model=schemas.BookConfig)
def update_book(
        book_id: int,
        book_data: schemas.BookUpdate,
        db: Session = Depends(get_db),
        current_admin: Profile = Depends(get_current_admin)
):
    return crud.partial_update_book(db, book_id, book_data)


@router.post("/books/bulk-delete")
def bulk_delete_books(
        payload: schemas.BookBulkDelete,
        db: Session = Depends(get_db),
        current_admin: Profile = Depends(get_current_admin)
):
    return crud.bulk_delete_books(db, payload.book_ids)


@router.delete("/books/{book_id}")
def delete_book(
        book_id: int,
        db: Session = Depends(get_db),
        current_admin: Profile = Depends(get_current_admin)
):
    return crud.delete_book(db, book_id)


# Accounts

@router.post("/register", response_model=schemas.ProfileConfig, status_code=status.HTTP_201_CREATED)
def register_user(user: schemas.ProfileCreate, db: Session = Depends(get_db)):
    if crud.get_profile_by_username(db, user.username):
        raise HTTPException(status_code=400, detail="Username already taken.")
    if crud.get_profile_by_email(db, user.email):
        raise HTTPException(status_code=400, detail="Email already registered.")
    return crud.create_profile(db, user)


@router.post("/token", response_model=schemas.Token)
def login_for_access_token(
        form_data: OAuth2PasswordRequestForm = Depends(),
        db: Session = Depends(get_db)
):
    user = crud.authenticate_user(db, form_data.username, form_data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"}
        )

    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/users/me", response_model=schemas.ProfileConfig)
def read_me(current_user: Profile = Depends(get_current_user)):
    return current_user


@router.patch("/users/me", response_model=schemas.ProfileConfig)
def update_me(
        profile_data: schemas.ProfileUpdate,
        db: Session = Depends(get_db),
        current_user: Profile = Depends(get_current_user)
):
    return crud.update_profile(db, current_user.id, profile_data)


# Borrow requests

@router.post("/requests/", response_model=schemas.RequestWithBook, status_code=status.HTTP_201_CREATED)
def create_request(
    request_data: schemas.RequestCreate,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    request = book_requests.create_request(db, current_user.id, request_data.book_id)
    return book_requests.get_request(db, request.id)


@router.get("/requests/me", response_model=List[schemas.RequestWithBook])
def get_my_requests(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return book_requests.list_for_user(db, current_user.id)


@router.post("/requests/{request_id}/cancel", response_model=schemas.RequestBare)
def cancel_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return book_requests.cancel_request(db, request_id, current_user.id)


@router.get("/requests/", response_model=List[schemas.RequestWithUserAndBook])
def get_all_requests(
    status: Optional[RequestStatus] = None,
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return book_requests.list_all(db, status)


@router.get("/requests/pending", response_model=List[schemas.RequestWithUserAndBook])
def get_pending_requests(
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return book_requests.list_all_pending(db)


@router.post("/requests/{request_id}/approve", response_model=schemas.RequestWithUserAndBook)
def approve_request(
    request_id: int,
    approval: Optional[schemas.RequestApprove] = None,
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    approval = approval or schemas.RequestApprove()
    return approvals.approve(db, request_id, current_admin.id, approval.due_days)


@router.post("/requests/{request_id}/reject", response_model=schemas.RequestWithUserAndBook)
def reject_request(
    request_id: int,
    rejection: Optional[schemas.RequestReject] = None,
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    reason = rejection.reason if rejection else None
    return approvals.reject(db, request_id, current_admin.id, reason)


# Borrow records

@router.get("/borrows/me", response_model=List[schemas.BorrowWithBook])
def get_my_borrows(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return borrows.list_for_user(db, current_user.id)


@router.get("/borrows/me/export")
def export_my_borrows_csv(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    content = borrows.export_history_csv(db, current_user.id)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=borrow_history.csv"}
    )


@router.get("/borrows/me/export/pdf")
def export_my_borrows_pdf(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    content = borrows.export_history_pdf(db, current_user.id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=borrow_history.pdf"}
    )


@router.get("/borrows/due-soon", response_model=List[schemas.BorrowWithContext])
def get_due_soon_borrows(
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return borrows.list_due_soon(db)


@router.get("/borrows/", response_model=List[schemas.BorrowWithContext])
def get_all_borrows(
    status: Optional[BorrowStatus] = None,
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return borrows.list_all(db, status)


@router.post("/borrows/{borrow_id}/return", response_model=schemas.BorrowWithContext)
def return_borrow(
    borrow_id: int,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    borrow = borrows.get_borrow(db, borrow_id)

    if borrow.user_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("You can't return another user's book.")

    return borrows.return_borrow(db, borrow_id, current_user.id)


# Admin role requests

@router.post("/admin-requests/", response_model=schemas.AdminRequestConfig)
def create_admin_request(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return approvals.create_admin_request(db, current_user.id)


@router.get("/admin-requests/me", response_model=Optional[schemas.AdminRequestConfig])
def get_my_admin_request(
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return approvals.get_admin_request_status(db, current_user.id)


@router.get("/admin-requests/pending", response_model=List[schemas.AdminRequestWithUser])
def get_pending_admin_requests(
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return approvals.list_pending_admin_requests(db)


@router.post("/admin-requests/{request_id}/approve", response_model=schemas.AdminRequestConfig)
def approve_admin_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return approvals.approve_admin_request(db, request_id, current_admin.id)


@router.post("/admin-requests/{request_id}/reject", response_model=schemas.AdminRequestConfig)
def reject_admin_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return approvals.reject_admin_request(db, request_id, current_admin.id)


# Operations

@router.post("/admin/overdue/sweep", response_model=schemas.SweepReport)
def sweep_overdue(
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    result = overdue.sweep_overdue(db)
    return {"count": result.count, "borrow_ids": result.borrow_ids, "notified": result.notified}


@router.get("/admin/stats", response_model=schemas.DashboardStats)
def get_admin_stats(
    db: Session = Depends(get_db),
    current_admin: Profile = Depends(get_current_admin)
):
    return crud.get_admin_dashboard_stats(db)


# Notifications

@router.get("/notifications/me", response_model=List[schemas.NotificationConfig])
def get_my_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return notifications.get_notifications_for_user(db, current_user.id, unread_only)


@router.post("/notifications/{notification_id}/read", response_model=schemas.NotificationConfig)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: Profile = Depends(get_current_user)
):
    return notifications.mark_read(db, notification_id, current_user.id)
