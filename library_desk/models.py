import enum
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, text,
)
from sqlalchemy.orm import relationship

from library_desk.database import Base


class Role(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class RequestStatus(str, enum.Enum):
    """Lifecycle of a borrow request. Everything but PENDING is terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class BorrowStatus(str, enum.Enum):
    """
    Lifecycle of a loan.

        ACTIVE -> OVERDUE   (overdue sweep)
        ACTIVE -> RETURNED
        OVERDUE -> RETURNED
    """
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"


class AdminRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Profile model (account + role)
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=False, unique=True)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=True)
    department = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.USER.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    requests = relationship("BookRequest", back_populates="user", foreign_keys="BookRequest.user_id")
    borrow_records = relationship("BorrowRecord", back_populates="user", foreign_keys="BorrowRecord.user_id")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="chk_profile_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


# Book model
class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False)
    category = Column(String, nullable=True)
    isbn = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    total_copies = Column(Integer, nullable=False)
    available_copies = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    requests = relationship("BookRequest", back_populates="book", cascade="all, delete-orphan")
    borrow_records = relationship("BorrowRecord", back_populates="book", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="chk_book_total_copies"),
        CheckConstraint("available_copies >= 0", name="chk_book_available_non_negative"),
        CheckConstraint("available_copies <= total_copies", name="chk_book_available_le_total"),
    )


# Request model: a user's ask to borrow a book, pending admin decision
class BookRequest(Base):
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=RequestStatus.PENDING.value)
    requested_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    user = relationship("Profile", back_populates="requests", foreign_keys=[user_id])
    reviewer = relationship("Profile", foreign_keys=[reviewed_by])
    book = relationship("Book", back_populates="requests")
    borrow_record = relationship("BorrowRecord", back_populates="request", uselist=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')", name="chk_request_status"
        ),
        Index(
            "uq_requests_one_pending_per_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )


# Borrow record model (the loan itself)
class BorrowRecord(Base):
    __tablename__ = "borrow_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    request_id = Column(Integer, ForeignKey("requests.id"), nullable=True, unique=True)
    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    due_at = Column(DateTime, nullable=False, index=True)
    returned_at = Column(DateTime, nullable=True)
    returned_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    status = Column(String, nullable=False, default=BorrowStatus.ACTIVE.value, index=True)

    user = relationship("Profile", back_populates="borrow_records", foreign_keys=[user_id])
    book = relationship("Book", back_populates="borrow_records")
    request = relationship("BookRequest", back_populates="borrow_record")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'overdue', 'returned')", name="chk_borrow_status"),
    )


# Ask to promote an account to the admin role
class AdminApprovalRequest(Base):
    __tablename__ = "admin_approval_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=AdminRequestStatus.PENDING.value)
    requested_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    user = relationship("Profile", foreign_keys=[user_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="chk_admin_request_status"
        ),
        Index(
            "uq_admin_requests_one_pending_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
