import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin

class Account(Base, TimestampMixin):
    __tablename__ = "account"
    __table_args__ = (
        # One external identity maps to exactly one user
        UniqueConstraint("provider_id", "account_id", name="uq_account_provider_subject"),
    )

    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(String(255), nullable=False)
    provider_id = Column(String(255), nullable=False)
    user_id = Column(String(64), ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    access_token = Column(String(1024), nullable=True)
    refresh_token = Column(String(1024), nullable=True)
    id_token = Column(String(2048), nullable=True)
    access_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    refresh_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String(512), nullable=True)

    user = relationship("User", back_populates="accounts")

Index("idx_account_userId", Account.user_id)
