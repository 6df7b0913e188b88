from datetime import datetime
from pydantic import BaseModel


class AccountTokens(BaseModel):
    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    access_token_expires_at: datetime | None = None
    refresh_token_expires_at: datetime | None = None
    scope: str | None = None


class AccountCreate(AccountTokens):
    user_id: str
    provider_id: str
    account_id: str


class AccountResponse(BaseModel):
    # Token material stays server side
    id: str
    user_id: str
    provider_id: str
    account_id: str
    scope: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
