from sqlalchemy.orm import Session
from sqlalchemy import desc
from models.account import Account
from schemas.account_schema import AccountCreate


def get_account_by_provider(db: Session, provider_id: str, account_id: str):
    return (
        db.query(Account)
        .filter(Account.provider_id == provider_id, Account.account_id == account_id)
        .first()
    )


def list_accounts(db: Session, user_id: str | None = None, skip: int = 0, limit: int = 100):
    q = db.query(Account)
    if user_id:
        q = q.filter(Account.user_id == user_id)
    return q.order_by(desc(Account.created_at)).offset(skip).limit(limit).all()


def build_account(payload: AccountCreate) -> Account:
    return Account(**payload.model_dump())


def create_account(db: Session, payload: AccountCreate):
    acc = build_account(payload)
    db.add(acc)
    db.commit()
    db.refresh(acc)
    return acc


def delete_account(db: Session, account_id: str, user_id: str | None = None) -> bool:
    q = db.query(Account).filter(Account.id == account_id)
    if user_id is not None:
        q = q.filter(Account.user_id == user_id)
    acc = q.first()
    if not acc:
        return False
    db.delete(acc)
    db.commit()
    return True
