"""Second-factor models: TOTP profile, possession credentials, auth challenges."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from authcore.core.database import Base
from authcore.utils.datetime_utils import utc_now_lambda


class SecondFactorProfile(Base):
    """Per-user second-factor configuration, created lazily on first enrollment."""

    __tablename__ = "user_2fa"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # base64(IV || AES-GCM ciphertext+tag); null until enrollment begins
    totp_secret_ciphertext = Column(Text, nullable=True)
    totp_enabled = Column(Boolean, default=False, nullable=False)
    totp_verified_at = Column(DateTime, nullable=True)
    last_factor_at = Column(DateTime, nullable=True)

    # Base64 SHA-256 digests, one per unspent recovery code
    backup_codes_hash = Column(JSON, nullable=False, default=list)
    backup_codes_used = Column(Integer, default=0, nullable=False)

    webauthn_enabled = Column(Boolean, default=False, nullable=False)

    # Bumped by every conditional update of single-use state
    version = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)
    updated_at = Column(DateTime, default=utc_now_lambda, onupdate=utc_now_lambda, nullable=False)

    user = relationship("User", back_populates="second_factor")

    def __repr__(self):
        return f"<SecondFactorProfile user={self.user_id} totp={self.totp_enabled}>"

    @property
    def has_pending_secret(self) -> bool:
        return bool(self.totp_secret_ciphertext)


class PossessionCredential(Base):
    """A registered WebAuthn credential (platform authenticator or security key)."""

    __tablename__ = "webauthn_credentials"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    credential_id = Column(String(1024), nullable=False)
    # Stored as delivered by the registration ceremony; not interpreted here
    public_key = Column(Text, nullable=True)
    transports = Column(JSON, nullable=False, default=list)
    counter = Column(Integer, default=0, nullable=False)
    device_name = Column(String(255), default="Security Key", nullable=False)
    device_type = Column(String(50), default="platform", nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "credential_id", name="uq_webauthn_credentials_user_credential"),
    )

    def __repr__(self):
        return f"<PossessionCredential user={self.user_id} device={self.device_name!r}>"


class AuthChallenge(Base):
    """Server-issued random challenge for a single authentication ceremony."""

    __tablename__ = "auth_challenges"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    challenge = Column(String(128), nullable=False)
    # e.g. "smart_signin"; a challenge minted for one ceremony is useless in another
    challenge_type = Column(String(50), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now_lambda, nullable=False)

    __table_args__ = (
        Index("ix_auth_challenges_user_type_created", "user_id", "challenge_type", "created_at"),
    )

    def __repr__(self):
        return f"<AuthChallenge user={self.user_id} type={self.challenge_type} used={self.used}>"
