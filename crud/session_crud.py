from datetime import datetime

from sqlalchemy.orm import Session
from models.session import Session as SessionModel
from schemas.session_schema import SessionCreate


def get_session_by_token(db: Session, token: str):
    return db.query(SessionModel).filter(SessionModel.token == token).first()


def build_session(payload: SessionCreate) -> SessionModel:
    """Return an unsaved Session; the issuer owns the commit and the token-collision retry."""
    return SessionModel(**payload.model_dump())


def delete_session(db: Session, session_id: str) -> int:
    deleted = db.query(SessionModel).filter(SessionModel.id == session_id).delete(synchronize_session=False)
    db.commit()
    return deleted


def delete_expired_sessions(db: Session, now: datetime) -> int:
    deleted = db.query(SessionModel).filter(SessionModel.expires_at <= now).delete(synchronize_session=False)
    db.commit()
    return deleted
