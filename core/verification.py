import secrets
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from core.retry import with_storage_retry
from core.tokens import as_utc, utcnow
from crud.verification_crud import create_verification, delete_verification, get_by_identifier_value
from schemas.verification_schema import VerificationCreate


def issue_challenge(
    db: Session,
    identifier: str,
    *,
    ttl_seconds: int,
    value: str | None = None,
    now: datetime | None = None,
):
    now = now or utcnow()
    payload = VerificationCreate(
        identifier=identifier,
        value=value or secrets.token_urlsafe(32),
        expires_at=now + timedelta(seconds=ttl_seconds),
    )
    return with_storage_retry(db, create_verification, db, payload)


def _consume(db: Session, identifier: str, value: str, now: datetime) -> bool:
    ver = get_by_identifier_value(db, identifier=identifier, value=value)
    if not ver:
        return False
    expires_at = as_utc(ver.expires_at)
    # Whoever deletes the row owns the consumption; expired rows are dropped on sight too
    if not delete_verification(db, ver.id):
        return False
    return now < expires_at


def consume_challenge(db: Session, identifier: str, value: str | None, *, now: datetime | None = None) -> bool:
    """True exactly once for a live challenge; False for unknown, reused or expired values."""
    if not value:
        return False
    return with_storage_retry(db, _consume, db, identifier, value, now or utcnow())
