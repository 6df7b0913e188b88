from sqlalchemy.orm import Session
from models.user import User
from schemas.user_schema import UserCreate, UserUpdate


def get_user(db: Session, user_id: str):
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str):
    return db.query(User).filter(User.email == email.strip().lower()).first()


def build_user(payload: UserCreate) -> User:
    """Return an unsaved User so callers can add it inside a wider transaction."""
    data = payload.model_dump()
    data["email"] = data["email"].strip().lower()
    return User(**data)


def create_user(db: Session, payload: UserCreate):
    user = build_user(payload)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_user(db: Session, user_id: str, payload: UserUpdate):
    user = get_user(db, user_id)
    if not user:
        return None
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(user, k, v)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: str) -> bool:
    """Delete a user together with every account and session it owns.

    The ORM cascade deletes the dependents in the same flush as the user, so
    the result does not hinge on the backend honouring ON DELETE CASCADE.
    """
    user = get_user(db, user_id)
    if not user:
        return False
    db.delete(user)
    db.commit()
    return True
