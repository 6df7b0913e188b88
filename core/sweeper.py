import asyncio
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from core.logger import get_logger
from core.retry import with_storage_retry
from core.tokens import utcnow
from crud.session_crud import delete_expired_sessions
from crud.verification_crud import delete_expired_verifications

logger = get_logger("auth.sweeper")


@dataclass
class SweepStats:
    sessions: int = 0
    verifications: int = 0


def sweep_expired(db: Session, *, now: datetime | None = None) -> SweepStats:
    now = now or utcnow()
    stats = SweepStats(
        sessions=with_storage_retry(db, delete_expired_sessions, db, now),
        verifications=with_storage_retry(db, delete_expired_verifications, db, now),
    )
    if stats.sessions or stats.verifications:
        logger.info("Swept %d expired sessions, %d expired verifications", stats.sessions, stats.verifications)
    return stats


def _sweep_once(session_factory) -> SweepStats:
    db = session_factory()
    try:
        return sweep_expired(db)
    finally:
        db.close()


async def run_sweeper(session_factory, interval_seconds: int) -> None:
    """Background loop; validation never waits on it since expiry is checked on every read."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(_sweep_once, session_factory)
        except Exception:
            logger.exception("Expiry sweep failed; will retry next interval")
