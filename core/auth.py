from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from core.config import settings
from core.database import get_db
from core.errors import LoginRequired
from core.logger import get_logger
from core.retry import with_storage_retry
from core.tokens import as_utc, is_well_formed, tokens_equal, utcnow
from crud.session_crud import delete_session, get_session_by_token
from crud.user_crud import get_user
from models.session import Session as SessionModel
from models.user import User

logger = get_logger("auth.session")


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ABSENT = "absent"
    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ValidationResult:
    status: SessionStatus
    user: Optional[User] = None
    session: Optional[SessionModel] = None

    @property
    def active(self) -> bool:
        return self.status is SessionStatus.ACTIVE


@dataclass(frozen=True)
class Allow:
    user: User
    session: SessionModel


@dataclass(frozen=True)
class Deny:
    reason: str = "unauthenticated"


def _lookup(db: Session, token: str):
    s = get_session_by_token(db, token)
    if s is None:
        return None, None
    return s, get_user(db, s.user_id)


def _renew_if_due(db: Session, s: SessionModel, now: datetime) -> None:
    lifetime = timedelta(seconds=settings.SESSION_LIFETIME_SECONDS)
    update_age = timedelta(seconds=settings.SESSION_UPDATE_AGE_SECONDS)
    if as_utc(s.expires_at) - lifetime + update_age <= now:
        s.expires_at = now + lifetime
        db.commit()
        db.refresh(s)


def validate_token(db: Session, token, *, now: datetime | None = None, renew: bool | None = None) -> ValidationResult:
    """
    Resolve a session token to its live session and user.

    Malformed tokens are rejected before touching storage. The only lookup
    key ever used is the exact token. Storage failures raise
    StorageUnavailable rather than reading as "no session".
    """
    if not is_well_formed(token):
        return ValidationResult(SessionStatus.MALFORMED)

    s, user = with_storage_retry(db, _lookup, db, token)
    if s is None or not tokens_equal(s.token, token):
        return ValidationResult(SessionStatus.ABSENT)

    now = now or utcnow()
    if now >= as_utc(s.expires_at):
        return ValidationResult(SessionStatus.EXPIRED)
    if user is None:
        return ValidationResult(SessionStatus.ABSENT)

    renew = settings.SESSION_RENEWAL_ENABLED if renew is None else renew
    if renew:
        with_storage_retry(db, _renew_if_due, db, s, now)
    return ValidationResult(SessionStatus.ACTIVE, user=user, session=s)


def guard(db: Session, token, *, now: datetime | None = None):
    """Allow(user, session) for a live session, Deny("unauthenticated") for anything else."""
    result = validate_token(db, token, now=now)
    if result.active:
        return Allow(user=result.user, session=result.session)
    if result.status is SessionStatus.EXPIRED:
        logger.debug("Denied request carrying an expired session")
    return Deny()


def _invalidate(db: Session, token: str) -> int:
    s = get_session_by_token(db, token)
    if s is None or not tokens_equal(s.token, token):
        return 0
    return delete_session(db, s.id)


def sign_out(db: Session, token) -> None:
    """Invalidate the session behind token. Succeeds whether or not one existed."""
    if not is_well_formed(token):
        return
    deleted = with_storage_retry(db, _invalidate, db, token)
    if deleted:
        logger.info("Session signed out")


def extract_session_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def session_cookie_kwargs(value: str, max_age: int | None = None) -> dict:
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "value": value,
        "max_age": settings.SESSION_LIFETIME_SECONDS if max_age is None else max_age,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs() -> dict:
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def require_session(request: Request, db: Session = Depends(get_db)) -> Allow:
    """Dependency for server-rendered pages: no live session means a redirect to sign in."""
    decision = guard(db, extract_session_token(request))
    if isinstance(decision, Deny):
        raise LoginRequired(next_path=request.url.path)
    return decision


def require_api_session(request: Request, db: Session = Depends(get_db)) -> Allow:
    decision = guard(db, extract_session_token(request))
    if isinstance(decision, Deny):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=decision.reason)
    return decision


def get_current_user(decision: Allow = Depends(require_api_session)) -> User:
    return decision.user
