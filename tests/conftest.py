import os
import sys
import tempfile

_db_dir = tempfile.mkdtemp(prefix="library-desk-tests-")
os.environ["LIBRARY_DATABASE_URL"] = "sqlite:///" + os.path.join(_db_dir, "test_library.db")
os.environ.setdefault("LIBRARY_BOOTSTRAP_TIMEOUT", "5")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest

from library_desk import crud, models, schemas
from library_desk.database import Base, SessionLocal, engine
from library_desk.models import Role


@pytest.fixture(autouse=True)
def fresh_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(username, role=Role.USER, password="secret-pass"):
        return crud.create_profile(
            db,
            schemas.ProfileCreate(username=username, email=f"{username}@example.com", password=password),
            role=role,
        )
    return _make_user


@pytest.fixture
def make_book(db):
    def _make_book(title="Dune", total_copies=3, available_copies=None):
        book = models.Book(
            title=title,
            author="Frank Herbert",
            total_copies=total_copies,
            available_copies=total_copies if available_copies is None else available_copies,
        )
        db.add(book)
        db.commit()
        db.refresh(book)
        return book
    return _make_book
