from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from core.auth import get_current_user
from core.database import get_db
from core.retry import with_storage_retry
from crud.account_crud import delete_account, list_accounts
from models.user import User
from schemas.account_schema import AccountResponse


router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.get("/", response_model=list[AccountResponse])
def list_mine(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return with_storage_retry(db, list_accounts, db, user_id=current_user.id)


@router.delete("/{account_id}", status_code=204)
def revoke(account_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # Scoped to the caller, so another user's link reads as missing
    ok = with_storage_retry(db, delete_account, db, account_id, user_id=current_user.id)
    if not ok:
        raise HTTPException(status_code=404, detail="Account not found")
    return None
