from datetime import datetime
from pydantic import BaseModel


class VerificationBase(BaseModel):
    identifier: str
    value: str
    expires_at: datetime


class VerificationCreate(VerificationBase):
    pass
