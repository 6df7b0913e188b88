import time

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import StorageUnavailable
from core.logger import get_logger

logger = get_logger("auth.storage")


def is_transient(exc: Exception) -> bool:
    """True for errors that say the store is unreachable or busy, not that the query is wrong."""
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def with_storage_retry(db: Session, fn, *args, attempts: int | None = None, backoff: float | None = None, **kwargs):
    """
    Run fn(*args, **kwargs), retrying transient storage failures with exponential backoff.

    The SQLAlchemy session is rolled back between attempts so fn always starts
    from a clean transaction. Once the attempts are used up the last error is
    chained onto StorageUnavailable. Anything that is not transient (integrity
    violations included) propagates unchanged on the first occurrence.
    """
    attempts = attempts if attempts is not None else settings.STORAGE_RETRY_ATTEMPTS
    backoff = backoff if backoff is not None else settings.STORAGE_RETRY_BACKOFF_SECONDS
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except DBAPIError as exc:
            if not is_transient(exc):
                raise
            db.rollback()
            if attempt == attempts:
                logger.error("Identity store unavailable after %d attempts: %s", attempts, exc.__class__.__name__)
                raise StorageUnavailable() from exc
            delay = backoff * (2 ** (attempt - 1))
            logger.warning("Transient storage error (attempt %d/%d), retrying in %.2fs", attempt, attempts, delay)
            time.sleep(delay)
