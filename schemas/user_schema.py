from datetime import datetime
from pydantic import BaseModel


class UserBase(BaseModel):
    email: str
    name: str | None = None
    image: str | None = None


class UserCreate(UserBase):
    email_verified: bool = False


class UserUpdate(BaseModel):
    name: str | None = None
    image: str | None = None
    email_verified: bool | None = None


class UserResponse(UserBase):
    id: str
    email_verified: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {
        "from_attributes": True,
    }
