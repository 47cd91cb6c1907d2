# Startup initialisation with a hard time ceiling
import logging
import threading

from library_desk import crud, models, schemas
from library_desk.config import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_USERNAME, BOOTSTRAP_TIMEOUT
from library_desk.database import Base, SessionLocal, engine
from library_desk.models import Role

logger = logging.getLogger(__name__)


class Resolution:
    def __init__(self):
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._value = None
        self.timed_out = False

    @property
    def resolved(self) -> bool:
        return self._done.is_set()

    def resolve(self, value) -> bool:
        """Settle with ``value``. Returns False if it was already settled."""
        with self._lock:
            if self._done.is_set():
                return False
            self._value = value
            self._done.set()
            return True

    def wait(self, timeout: float):
        """Block until settled or ``timeout`` seconds pass, then return the value."""
        if not self._done.wait(timeout):
            with self._lock:
                if not self._done.is_set():
                    self.timed_out = True
                    self._done.set()
        return self._value


def ensure_default_admin(db):
    """Create the configured administrator profile if no admin exists yet."""
    admin = db.query(models.Profile).filter(models.Profile.role == Role.ADMIN.value).first()
    if admin is not None:
        return admin
    admin = crud.create_profile(
        db,
        schemas.ProfileCreate(username=ADMIN_USERNAME, email=ADMIN_EMAIL, password=ADMIN_PASSWORD),
        role=Role.ADMIN,
    )
    logger.info("Created default admin user '%s'", ADMIN_USERNAME)
    return admin


def initialise_backend():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        return ensure_default_admin(db).id
    finally:
        db.close()


def run_with_deadline(task, timeout: float = BOOTSTRAP_TIMEOUT):
    """Run ``task`` in a background thread and wait at most ``timeout`` seconds.

    Returns the task's result, or ``None`` if it failed or the deadline won.
    """
    resolution = Resolution()

    def worker():
        try:
            result = task()
        except Exception:
            logger.exception("Background initialisation failed")
            result = None
        resolution.resolve(result)

    threading.Thread(target=worker, name="library-bootstrap", daemon=True).start()
    value = resolution.wait(timeout)
    if resolution.timed_out:
        logger.warning("Initialisation did not finish within %.1fs, serving anyway", timeout)
    return value
