from datetime import datetime
from pydantic import BaseModel, field_validator
from schemas.session_schema import SessionResponse
from schemas.user_schema import UserResponse


class VerifiedIdentity(BaseModel):
    """An identity the external provider has already vouched for."""

    provider: str
    subject: str
    email: str
    name: str | None = None
    image: str | None = None
    email_verified: bool = False
    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None
    access_token_expires_at: datetime | None = None

    @field_validator("provider")
    @classmethod
    def _lower_provider(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("provider must not be empty")
        return v

    @field_validator("subject")
    @classmethod
    def _require_subject(cls, v: str) -> str:
        if not v:
            raise ValueError("subject must not be empty")
        return v

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("email must be an address")
        return v


class CurrentSessionResponse(BaseModel):
    user: UserResponse
    session: SessionResponse
