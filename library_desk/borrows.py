from sqlalchemy.orm import Session, joinedload
from datetime import datetime, timedelta
from typing import Optional
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
import csv
import io

from library_desk import models, procedures
from library_desk.config import DUE_SOON_DAYS
from library_desk.errors import NotFoundError
from library_desk.models import BorrowStatus


def _with_context(query):
    return query.options(
        joinedload(models.BorrowRecord.book),
        joinedload(models.BorrowRecord.user),
        joinedload(models.BorrowRecord.request),
    )


def return_borrow(db: Session, borrow_id: int, returned_by: int):
    procedures.return_book_borrow(db, borrow_id, returned_by)
    return get_borrow(db, borrow_id)


def get_borrow(db: Session, borrow_id: int):
    borrow = _with_context(db.query(models.BorrowRecord)).filter(models.BorrowRecord.id == borrow_id).first()
    if borrow is None:
        raise NotFoundError("Borrow record not found")
    return borrow


def list_for_user(db: Session, user_id: int):
    return (
        _with_context(db.query(models.BorrowRecord))
        .filter(models.BorrowRecord.user_id == user_id)
        .order_by(models.BorrowRecord.issued_at.desc(), models.BorrowRecord.id.desc())
        .all()
    )


def list_all(db: Session, status: Optional[BorrowStatus] = None):
    query = _with_context(db.query(models.BorrowRecord))
    if status is not None:
        query = query.filter(models.BorrowRecord.status == status.value)
    return query.order_by(models.BorrowRecord.issued_at.desc(), models.BorrowRecord.id.desc()).all()


def list_due_soon(db: Session, days_ahead: int = DUE_SOON_DAYS):
    now = datetime.utcnow()
    upcoming = now + timedelta(days=days_ahead)

    return (
        _with_context(db.query(models.BorrowRecord))
        .filter(
            models.BorrowRecord.status == BorrowStatus.ACTIVE.value,
            models.BorrowRecord.due_at <= upcoming,
            models.BorrowRecord.due_at >= now,
        )
        .order_by(models.BorrowRecord.due_at.asc())
        .all()
    )


def export_history_csv(db: Session, user_id: int) -> str:
    borrows = list_for_user(db, user_id)

    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow(["Borrow ID", "Book Title", "Issued", "Due", "Returned", "Status"])

    for borrow in borrows:
        writer.writerow([
            borrow.id,
            borrow.book.title,
            borrow.issued_at.date(),
            borrow.due_at.date(),
            borrow.returned_at.date() if borrow.returned_at else "",
            borrow.status,
        ])

    return output.getvalue()


def _pdf_line(borrow, now: datetime) -> str:
    late = borrow.status == BorrowStatus.OVERDUE.value or (
        borrow.status == BorrowStatus.ACTIVE.value and borrow.due_at < now
    )
    if borrow.returned_at:
        state = f"returned {borrow.returned_at:%Y-%m-%d}"
    elif late:
        state = f"OVERDUE by {(now - borrow.due_at).days} days"
    else:
        state = f"on loan, {(borrow.due_at - now).days} days left"
    return (f"#{borrow.id} {borrow.book.title} ({borrow.book.author}) | "
            f"issued {borrow.issued_at:%Y-%m-%d}, due {borrow.due_at:%Y-%m-%d} | {state}")


def export_history_pdf(db: Session, user_id: int, now: datetime = None) -> bytes:
    now = now or datetime.utcnow()
    borrows = list_for_user(db, user_id)
    outstanding = [b for b in borrows if b.status in procedures.OUTSTANDING]
    overdue = [b for b in outstanding if b.status == BorrowStatus.OVERDUE.value or b.due_at < now]

    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=letter)
    width, height = letter

    y = height - 40
    pdf.setFont("Helvetica-Bold", 14)
    owner = (borrows[0].user.name or borrows[0].user.username) if borrows else f"user {user_id}"
    pdf.drawString(40, y, f"Borrow History for {owner}")
    y -= 18
    pdf.setFont("Helvetica", 9)
    pdf.drawString(40, y, f"Generated {now:%Y-%m-%d %H:%M} UTC. "
                          f"{len(borrows)} borrows, {len(outstanding)} on loan, {len(overdue)} overdue.")
    y -= 24

    pdf.setFont("Helvetica", 10)
    for borrow in borrows:
        pdf.drawString(40, y, _pdf_line(borrow, now))
        y -= 18
        if y < 50:
            pdf.showPage()
            y = height - 40
            pdf.setFont("Helvetica", 10)

    pdf.save()
    buffer.seek(0)
    return buffer.read()
