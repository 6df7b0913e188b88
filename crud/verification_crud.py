from datetime import datetime

from sqlalchemy.orm import Session
from models.verification import Verification
from schemas.verification_schema import VerificationCreate


def create_verification(db: Session, payload: VerificationCreate):
    ver = Verification(**payload.model_dump())
    db.add(ver)
    db.commit()
    db.refresh(ver)
    return ver


def delete_verification(db: Session, verification_id: str) -> bool:
    deleted = db.query(Verification).filter(Verification.id == verification_id).delete(synchronize_session=False)
    db.commit()
    return deleted > 0


def get_by_identifier_value(db: Session, identifier: str, value: str):
    return (
        db.query(Verification)
        .filter(Verification.identifier == identifier, Verification.value == value)
        .first()
    )


def delete_expired_verifications(db: Session, now: datetime) -> int:
    deleted = db.query(Verification).filter(Verification.expires_at <= now).delete(synchronize_session=False)
    db.commit()
    return deleted
