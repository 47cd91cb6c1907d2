import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from library_desk import bootstrap, models
from library_desk.bootstrap import Resolution, run_with_deadline
from library_desk.errors import TransientError
from library_desk.retry import retry_read, transient_on_operational_error


def test_first_resolution_wins():
    resolution = Resolution()

    assert resolution.resolve("session") is True
    assert resolution.resolve("other") is False
    assert resolution.wait(0.01) == "session"
    assert resolution.timed_out is False


def test_deadline_resolves_to_none_and_ignores_late_values():
    resolution = Resolution()

    assert resolution.wait(0.05) is None
    assert resolution.timed_out is True
    assert resolution.resolved is True
    assert resolution.resolve("too late") is False
    assert resolution.wait(0.01) is None


def test_resolution_from_another_thread_wakes_the_waiter():
    resolution = Resolution()
    threading.Timer(0.05, resolution.resolve, args=("ready",)).start()

    assert resolution.wait(2) == "ready"


def test_run_with_deadline_returns_task_result():
    assert run_with_deadline(lambda: 42, timeout=2) == 42


def test_run_with_deadline_gives_up_on_slow_task():
    started = time.monotonic()

    assert run_with_deadline(lambda: time.sleep(1) or "late", timeout=0.1) is None
    assert time.monotonic() - started < 0.9


def test_run_with_deadline_survives_failing_task():
    def broken():
        raise RuntimeError("database unreachable")

    assert run_with_deadline(broken, timeout=2) is None


def test_initialise_backend_seeds_one_admin(db):
    admin_id = bootstrap.initialise_backend()
    assert bootstrap.initialise_backend() == admin_id

    admins = db.query(models.Profile).filter_by(role="admin").all()
    assert [a.id for a in admins] == [admin_id]


def test_retry_read_retries_transient_errors():
    attempts = []
    delays = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientError()
        return "profile"

    assert retry_read(flaky, sleep=delays.append) == "profile"
    assert len(attempts) == 3
    assert delays == [0.2, 0.4]


def test_retry_read_gives_up_after_three_attempts():
    attempts = []

    def down():
        attempts.append(1)
        raise TransientError()

    with pytest.raises(TransientError):
        retry_read(down, sleep=lambda _: None)
    assert len(attempts) == 3


def test_retry_read_does_not_retry_other_errors():
    attempts = []

    def missing():
        attempts.append(1)
        raise LookupError("nope")

    with pytest.raises(LookupError):
        retry_read(missing, sleep=lambda _: None)
    assert len(attempts) == 1


def test_operational_errors_become_transient(db):
    def drop_connection():
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    with pytest.raises(TransientError):
        transient_on_operational_error(db, drop_connection)
