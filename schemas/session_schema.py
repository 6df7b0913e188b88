from datetime import datetime
from pydantic import BaseModel


class SessionBase(BaseModel):
    user_id: str
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class SessionCreate(SessionBase):
    token: str


class SessionResponse(SessionBase):
    # The bearer token is never echoed back
    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
