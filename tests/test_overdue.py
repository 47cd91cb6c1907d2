from datetime import datetime, timedelta

import pytest

from library_desk import book_requests, borrows, models, notifications, overdue, procedures
from library_desk.models import Role


@pytest.fixture
def issue(db, make_user):
    admin = make_user("librarian", role=Role.ADMIN)

    def _issue(user, book, days_ago=0):
        request = book_requests.create_request(db, user.id, book.id)
        issued_at = datetime.utcnow() - timedelta(days=days_ago)
        return procedures.approve_book_request(db, request.id, admin.id, now=issued_at)
    return _issue


def _reminders(db, user_id):
    return [n for n in notifications.get_notifications_for_user(db, user_id)
            if n.type == notifications.BORROW_OVERDUE]


def test_sweep_marks_past_due_borrow_overdue_once(db, make_user, make_book, issue):
    user = make_user("reader")
    late = issue(user, make_book("Dune"), days_ago=20)

    result = overdue.sweep_overdue(db)

    assert result.count == 1
    assert result.borrow_ids == [late.id]
    assert result.notified == 1
    assert borrows.get_borrow(db, late.id).status == "overdue"


def test_sweep_leaves_inventory_alone(db, make_user, make_book, issue):
    book = make_book(total_copies=2)
    issue(make_user("reader"), book, days_ago=20)

    overdue.sweep_overdue(db)

    db.refresh(book)
    assert book.available_copies == 1


def test_second_sweep_is_a_no_op(db, make_user, make_book, issue):
    user = make_user("reader")
    issue(user, make_book("Dune"), days_ago=20)

    first = overdue.sweep_overdue(db)
    second = overdue.sweep_overdue(db)

    assert first.count == 1
    assert second.count == 0
    assert second.borrow_ids == []
    assert len(_reminders(db, user.id)) == 1


def test_sweep_skips_borrows_not_yet_due_and_returned(db, make_user, make_book, issue):
    user = make_user("reader")
    on_time = issue(user, make_book("Dune"), days_ago=3)
    returned = issue(user, make_book("Emma"), days_ago=30)
    borrows.return_borrow(db, returned.id, user.id)

    result = overdue.sweep_overdue(db)

    assert result.count == 0
    assert borrows.get_borrow(db, on_time.id).status == "active"
    assert borrows.get_borrow(db, returned.id).status == "returned"


def test_sweep_honours_the_given_clock(db, make_user, make_book, issue):
    borrow = issue(make_user("reader"), make_book(), days_ago=0)

    assert overdue.sweep_overdue(db, now=datetime.utcnow()).count == 0
    result = overdue.sweep_overdue(db, now=datetime.utcnow() + timedelta(days=15))

    assert result.borrow_ids == [borrow.id]


def test_one_failed_reminder_does_not_stop_the_sweep(db, make_user, make_book, issue, monkeypatch):
    first = make_user("reader1")
    second = make_user("reader2")
    issue(first, make_book("Dune"), days_ago=20)
    issue(second, make_book("Emma"), days_ago=20)
    real_notify = notifications.notify
    calls = []

    def flaky_notify(db, user_id, *args, **kwargs):
        calls.append(user_id)
        if len(calls) == 1:
            raise RuntimeError("mail relay down")
        return real_notify(db, user_id, *args, **kwargs)

    monkeypatch.setattr(overdue.notifications, "notify", flaky_notify)

    result = overdue.sweep_overdue(db)

    assert result.count == 2
    assert result.notified == 1
    assert len(calls) == 2
    statuses = {b.status for b in db.query(models.BorrowRecord).all()}
    assert statuses == {"overdue"}


def test_reminder_mentions_title_and_due_date(db, make_user, make_book, issue):
    user = make_user("reader")
    borrow = issue(user, make_book("Solaris"), days_ago=20)

    overdue.sweep_overdue(db)

    reminder = _reminders(db, user.id)[0]
    assert "Solaris" in reminder.title
    assert f"{borrow.due_at:%Y-%m-%d}" in reminder.message
    assert reminder.payload == {"borrow_id": borrow.id, "book_id": borrow.book_id}


def test_command_line_entry_point(db, make_user, make_book, issue, capsys):
    issue(make_user("reader"), make_book(), days_ago=0)
    later = (datetime.utcnow() + timedelta(days=30)).isoformat()

    assert overdue.main(["--now", later]) == 0

    assert "Marked 1 borrow records as overdue" in capsys.readouterr().out
