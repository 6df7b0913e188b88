from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import IdentityConflict
from core.logger import get_logger
from core.retry import with_storage_retry
from core.tokens import generate_session_token, utcnow
from crud.account_crud import build_account, get_account_by_provider
from crud.session_crud import build_session
from crud.user_crud import build_user, get_user_by_email
from models.session import Session as SessionModel
from schemas.account_schema import AccountCreate
from schemas.auth_schema import VerifiedIdentity
from schemas.session_schema import SessionCreate
from schemas.user_schema import UserCreate

logger = get_logger("auth.issuer")

# Losing a uniqueness race resolves on the next pass; more than this means something else is wrong
RESOLVE_ATTEMPTS = 3
TOKEN_ATTEMPTS = 3


def _account_payload(user_id: str, identity: VerifiedIdentity) -> AccountCreate:
    return AccountCreate(
        user_id=user_id,
        provider_id=identity.provider,
        account_id=identity.subject,
        access_token=identity.access_token,
        refresh_token=identity.refresh_token,
        id_token=identity.id_token,
        scope=identity.scope,
        access_token_expires_at=identity.access_token_expires_at,
    )


def _sync_existing(db: Session, account, identity: VerifiedIdentity):
    """Refresh provider tokens and profile fields on a returning sign-in."""
    user = account.user
    changed = False
    for field in ("access_token", "refresh_token", "id_token", "scope", "access_token_expires_at"):
        value = getattr(identity, field)
        if value is not None and getattr(account, field) != value:
            setattr(account, field, value)
            changed = True
    if identity.name and user.name != identity.name:
        user.name = identity.name
        changed = True
    if identity.image and user.image != identity.image:
        user.image = identity.image
        changed = True
    if identity.email_verified and not user.email_verified and user.email == identity.email:
        user.email_verified = True
        changed = True
    if changed:
        db.commit()
    return user


def _link_to_existing(db: Session, user, identity: VerifiedIdentity, trusted: set[str]):
    if identity.provider not in trusted:
        logger.warning("Refused sign-in: email already owned by another identity (provider=%s)", identity.provider)
        raise IdentityConflict()
    if any(acc.provider_id == identity.provider for acc in user.accounts):
        # Same provider, different subject: the provider vouches for two people with one email
        logger.warning("Refused sign-in: second %s subject for one user", identity.provider)
        raise IdentityConflict()
    db.add(build_account(_account_payload(user.id, identity)))
    db.commit()
    logger.info("Linked %s identity to existing user %s", identity.provider, user.id)
    return user


def _create_user_with_account(db: Session, identity: VerifiedIdentity):
    user = build_user(
        UserCreate(
            email=identity.email,
            name=identity.name,
            image=identity.image,
            email_verified=identity.email_verified,
        )
    )
    db.add(user)
    db.flush()
    db.add(build_account(_account_payload(user.id, identity)))
    # User and account land in one commit; a failure leaves neither behind
    db.commit()
    logger.info("Created user %s from %s identity", user.id, identity.provider)
    return user


def resolve_user(db: Session, identity: VerifiedIdentity, trusted: set[str] | None = None):
    """
    Map a verified external identity onto exactly one User, creating or linking as needed.

    Uniqueness races (two first sign-ins for the same identity or email) are
    settled by the database constraints: the loser rolls back and re-reads,
    picking up the row the winner committed.
    """
    trusted = settings.trusted_linking_providers if trusted is None else trusted
    last_error = None
    for _ in range(RESOLVE_ATTEMPTS):
        try:
            account = get_account_by_provider(db, identity.provider, identity.subject)
            if account:
                return _sync_existing(db, account, identity)
            existing = get_user_by_email(db, identity.email)
            if existing:
                return _link_to_existing(db, existing, identity, trusted)
            return _create_user_with_account(db, identity)
        except IntegrityError as exc:
            db.rollback()
            last_error = exc
            logger.info("Concurrent sign-in for %s identity detected, re-resolving", identity.provider)
    raise last_error


def create_session_for(
    db: Session,
    user_id: str,
    *,
    now: datetime | None = None,
    lifetime_seconds: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SessionModel:
    now = now or utcnow()
    lifetime = lifetime_seconds if lifetime_seconds is not None else settings.SESSION_LIFETIME_SECONDS
    last_error = None
    for _ in range(TOKEN_ATTEMPTS):
        s = build_session(
            SessionCreate(
                user_id=user_id,
                token=generate_session_token(),
                expires_at=now + timedelta(seconds=lifetime),
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        db.add(s)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            last_error = exc
            continue
        db.refresh(s)
        return s
    raise last_error


def issue_session(
    db: Session,
    identity: VerifiedIdentity,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
    trusted: set[str] | None = None,
    lifetime_seconds: int | None = None,
) -> SessionModel:
    """Turn a verified identity into a fresh session. Raises IdentityConflict or StorageUnavailable."""
    user = with_storage_retry(db, resolve_user, db, identity, trusted)
    s = with_storage_retry(
        db,
        create_session_for,
        db,
        user.id,
        now=now,
        lifetime_seconds=lifetime_seconds,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
    )
    logger.info("Issued session %s for user %s", s.id, user.id)
    return s
