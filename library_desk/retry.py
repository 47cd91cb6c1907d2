import logging
import time

from sqlalchemy.exc import OperationalError

from library_desk.config import READ_RETRY_ATTEMPTS, READ_RETRY_BASE_DELAY
from library_desk.errors import TransientError

logger = logging.getLogger(__name__)


def retry_read(fn, *args, attempts: int = READ_RETRY_ATTEMPTS, base_delay: float = READ_RETRY_BASE_DELAY,
               sleep=time.sleep, **kwargs):
    """Call a read-only ``fn`` and retry it on ``TransientError``.

    Backoff doubles after each failed attempt. The last ``TransientError`` is
    re-raised once ``attempts`` is exhausted. Never wrap a write with this.
    """
    delay = base_delay
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except TransientError:
            if attempt == attempts:
                raise
            logger.warning("Read %s failed (attempt %d/%d), retrying in %.2fs",
                           getattr(fn, "__name__", fn), attempt, attempts, delay)
            sleep(delay)
            delay *= 2


def transient_on_operational_error(db, fn, *args, **kwargs):
    """Run a query and turn driver-level connection failures into ``TransientError``."""
    try:
        return fn(*args, **kwargs)
    except OperationalError as exc:
        db.rollback()
        raise TransientError() from exc
