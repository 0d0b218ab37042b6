"""User directory models."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from authcore.core.database import Base
from authcore.utils.datetime_utils import utc_now_lambda, utc_now


class User(Base):
    """Minimal user identity known to the built-in directory."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Stored lower-cased; lookups are case-insensitive
    email = Column(String(255), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    second_factor = relationship(
        "SecondFactorProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User {self.id}>"


class MagicLinkToken(Base):
    """One-time passwordless sign-in token issued after a second factor succeeds."""

    __tablename__ = "magic_link_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # SHA-256 hex digest of the raw token; the raw token is never stored
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    redirect_to = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    user = relationship("User")

    def __repr__(self):
        return f"<MagicLinkToken user={self.user_id}>"

    @property
    def is_valid(self) -> bool:
        """Token is valid if it has not been used and has not expired."""
        return self.used_at is None and utc_now() < self.expires_at
