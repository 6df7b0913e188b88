from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from core.auth import get_current_user
from core.database import get_db
from core.logger import get_logger
from core.retry import with_storage_retry
from crud.user_crud import delete_user as delete_user_crud, update_user as update_user_crud
from models.user import User
from schemas.user_schema import UserResponse, UserUpdate

logger = get_logger("auth.users")

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=UserResponse)
def update_me(payload: UserUpdate, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # Verification state comes from providers, not from the profile form
    payload = UserUpdate(**payload.model_dump(exclude_unset=True, exclude={"email_verified"}))
    return with_storage_retry(db, update_user_crud, db, current_user.id, payload)


@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Administrative delete. Removes the user with every linked account and
    session. Role checks belong to the caller's authorization layer.
    """
    ok = with_storage_retry(db, delete_user_crud, db, user_id)
    if not ok:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("User %s deleted by %s", user_id, current_user.id)
    return None
