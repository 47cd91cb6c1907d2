import pytest
from sqlalchemy.exc import IntegrityError

from library_desk import book_requests, models, notifications
from library_desk.errors import AvailabilityError, DuplicateRequestError, InvalidStateError, NotFoundError


def test_create_request_is_pending(db, make_user, make_book):
    user = make_user("reader")
    book = make_book()

    request = book_requests.create_request(db, user.id, book.id)

    assert request.status == "pending"
    assert request.user_id == user.id
    assert request.book_id == book.id
    assert request.requested_at is not None
    assert request.reviewed_at is None


def test_create_request_does_not_touch_inventory(db, make_user, make_book):
    user = make_user("reader")
    book = make_book(total_copies=3)

    book_requests.create_request(db, user.id, book.id)

    db.refresh(book)
    assert book.available_copies == 3


def test_second_pending_request_for_same_book_is_duplicate(db, make_user, make_book):
    user = make_user("reader")
    book = make_book()
    book_requests.create_request(db, user.id, book.id)

    with pytest.raises(DuplicateRequestError):
        book_requests.create_request(db, user.id, book.id)

    pending = db.query(models.BookRequest).filter_by(user_id=user.id, book_id=book.id, status="pending").count()
    assert pending == 1


def test_other_users_can_request_the_same_book(db, make_user, make_book):
    book = make_book()
    first = book_requests.create_request(db, make_user("reader1").id, book.id)
    second = book_requests.create_request(db, make_user("reader2").id, book.id)

    assert first.id != second.id


def test_request_for_book_without_copies_fails_and_creates_nothing(db, make_user, make_book):
    user = make_user("reader")
    book = make_book(total_copies=2, available_copies=0)

    with pytest.raises(AvailabilityError):
        book_requests.create_request(db, user.id, book.id)

    assert db.query(models.BookRequest).count() == 0


def test_request_for_missing_book_or_profile(db, make_user, make_book):
    user = make_user("reader")
    book = make_book()

    with pytest.raises(NotFoundError, match="Book not found"):
        book_requests.create_request(db, user.id, 9999)
    with pytest.raises(NotFoundError, match="profile"):
        book_requests.create_request(db, 9999, book.id)


def test_database_rejects_second_pending_row_for_pair(db, make_user, make_book):
    user = make_user("reader")
    book = make_book()
    db.add(models.BookRequest(user_id=user.id, book_id=book.id, status="pending"))
    db.commit()

    db.add(models.BookRequest(user_id=user.id, book_id=book.id, status="pending"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_create_request_notifies_requester(db, make_user, make_book):
    user = make_user("reader")
    book = make_book(title="Solaris")

    request = book_requests.create_request(db, user.id, book.id)

    notes = notifications.get_notifications_for_user(db, user.id)
    assert len(notes) == 1
    assert notes[0].type == notifications.REQUEST_CREATED
    assert "Solaris" in notes[0].message
    assert notes[0].payload["request_id"] == request.id


def test_notification_failure_does_not_fail_request(db, make_user, make_book, monkeypatch):
    user = make_user("reader")
    book = make_book()

    def broken(**kwargs):
        raise RuntimeError("notifications table unavailable")

    monkeypatch.setattr(notifications.models, "Notification", broken)

    request = book_requests.create_request(db, user.id, book.id)

    assert request.id is not None
    assert db.query(models.BookRequest).filter_by(id=request.id, status="pending").count() == 1


def test_cancel_own_pending_request(db, make_user, make_book):
    user = make_user("reader")
    book = make_book()
    request = book_requests.create_request(db, user.id, book.id)

    cancelled = book_requests.cancel_request(db, request.id, user.id)

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_at is not None


def test_cancel_frees_the_pair_for_a_new_request(db, make_user, make_book):
    user = make_user("reader")
    book = make_book()
    request = book_requests.create_request(db, user.id, book.id)
    book_requests.cancel_request(db, request.id, user.id)

    again = book_requests.create_request(db, user.id, book.id)

    assert again.status == "pending"


def test_cannot_cancel_someone_elses_request(db, make_user, make_book):
    owner = make_user("owner")
    other = make_user("other")
    request = book_requests.create_request(db, owner.id, make_book().id)

    with pytest.raises(NotFoundError):
        book_requests.cancel_request(db, request.id, other.id)

    db.refresh(request)
    assert request.status == "pending"


def test_cannot_cancel_twice(db, make_user, make_book):
    user = make_user("reader")
    request = book_requests.create_request(db, user.id, make_book().id)
    book_requests.cancel_request(db, request.id, user.id)

    with pytest.raises(InvalidStateError, match="Only pending requests"):
        book_requests.cancel_request(db, request.id, user.id)


def test_listings_are_newest_first(db, make_user, make_book):
    user = make_user("reader")
    first = book_requests.create_request(db, user.id, make_book("Dune").id)
    second = book_requests.create_request(db, user.id, make_book("Emma").id)

    mine = book_requests.list_for_user(db, user.id)
    assert [r.id for r in mine] == [second.id, first.id]
    assert mine[0].book.title == "Emma"

    pending = book_requests.list_all_pending(db)
    assert [r.id for r in pending] == [second.id, first.id]
    assert pending[0].user.username == "reader"


def test_list_all_pending_skips_resolved_requests(db, make_user, make_book):
    user = make_user("reader")
    kept = book_requests.create_request(db, user.id, make_book("Dune").id)
    dropped = book_requests.create_request(db, user.id, make_book("Emma").id)
    book_requests.cancel_request(db, dropped.id, user.id)

    assert [r.id for r in book_requests.list_all_pending(db)] == [kept.id]
    assert len(book_requests.list_all(db)) == 2
