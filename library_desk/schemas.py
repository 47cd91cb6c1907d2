from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal

from library_desk.config import LOAN_DAYS


class ProfileBase(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(min_length=3, max_length=255)
    name: Optional[str] = None
    department: Optional[str] = None


class ProfileCreate(ProfileBase):
    password: str = Field(min_length=6)


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    department: Optional[str] = None
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)


class ProfileConfig(ProfileBase):
    id: int
    role: Literal["admin", "user"]
    created_at: datetime

    model_config = {
        "from_attributes": True
    }


class BookBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    author: str = Field(min_length=1, max_length=255)
    category: Optional[str] = None
    isbn: Optional[str] = None
    description: Optional[str] = None


class BookCreate(BookBase):
    total_copies: int = Field(default=1, ge=1)


class BookUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    author: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = None
    isbn: Optional[str] = None
    description: Optional[str] = None
    total_copies: Optional[int] = Field(default=None, ge=1)


class BookBulkDelete(BaseModel):
    book_ids: List[int] = Field(min_length=1)


class BookConfig(BookBase):
    id: int
    total_copies: int
    available_copies: int
    created_at: datetime

    model_config = {
        "from_attributes": True
    }


# Requests

class RequestCreate(BaseModel):
    book_id: int


class RequestReject(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class RequestApprove(BaseModel):
    due_days: int = Field(default=LOAN_DAYS, ge=1, le=365)


class RequestBare(BaseModel):
    id: int
    user_id: int
    book_id: int
    status: Literal["pending", "approved", "rejected", "cancelled"]
    requested_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class RequestWithBook(RequestBare):
    book: BookConfig


class RequestWithUserAndBook(RequestWithBook):
    user: ProfileConfig


# Borrow records

class BorrowBare(BaseModel):
    id: int
    user_id: int
    book_id: int
    request_id: Optional[int] = None
    issued_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None
    returned_by: Optional[int] = None
    status: Literal["active", "overdue", "returned"]

    model_config = {
        "from_attributes": True
    }


class BorrowWithBook(BorrowBare):
    book: BookConfig


class BorrowWithContext(BorrowWithBook):
    user: ProfileConfig
    request: Optional[RequestBare] = None


class SweepReport(BaseModel):
    count: int
    borrow_ids: List[int]
    notified: int


# Admin role requests

class AdminRequestConfig(BaseModel):
    id: int
    user_id: int
    status: Literal["pending", "approved", "rejected"]
    requested_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[int] = None

    model_config = {
        "from_attributes": True
    }


class AdminRequestWithUser(AdminRequestConfig):
    user: ProfileConfig


class NotificationConfig(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    payload: Optional[dict] = None
    is_read: bool
    created_at: datetime

    model_config = {
        "from_attributes": True
    }


class DashboardStats(BaseModel):
    total_users: int
    total_books: int
    pending_requests: int
    active_borrows: int
    overdue_borrows: int


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
