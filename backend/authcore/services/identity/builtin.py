"""Built-in user directory backed by the ``users`` and ``magic_link_tokens`` tables."""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config import settings
from authcore.crud.user import magic_link_token_crud, user_crud
from authcore.services.identity.base import DirectoryUser, PasswordlessSession, UserDirectory
from authcore.utils.datetime_utils import utc_now
from authcore.utils.logging_utils import redact_email

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(token.encode()).hexdigest()


class SqlUserDirectory(UserDirectory):
    """
    Directory for self-hosted deployments with no external identity provider.

    Passwordless sessions are magic links: a random token whose SHA-256 hash
    is stored, redeemable once before ``MAGIC_LINK_EXPIRE_MINUTES`` elapse.
    """

    def __init__(self, db: AsyncSession, base_url: Optional[str] = None):
        self.db = db
        self.base_url = (base_url or settings.APP_BASE_URL).rstrip("/")

    async def resolve_user_by_email(self, email: str) -> Optional[DirectoryUser]:
        if not email or not email.strip():
            return None
        user = await user_crud.get_by_email(self.db, email)
        if user is None:
            return None
        return DirectoryUser(id=user.id, email=user.email)

    async def issue_passwordless_session(
        self, user: DirectoryUser, redirect_to: str
    ) -> PasswordlessSession:
        raw_token = secrets.token_urlsafe(32)
        expires_at = utc_now() + timedelta(minutes=settings.MAGIC_LINK_EXPIRE_MINUTES)
        await magic_link_token_crud.create(
            self.db,
            user_id=user.id,
            token_hash=hash_token(raw_token),
            redirect_to=redirect_to,
            expires_at=expires_at,
        )
        query = urlencode({"token": raw_token, "redirect_to": redirect_to})
        logger.info("Magic link issued for %s", redact_email(user.email))
        return PasswordlessSession(
            session_token=raw_token,
            action_url=f"{self.base_url}/auth/magic-link?{query}",
            expires_at=expires_at,
        )

    async def consume_passwordless_session(self, raw_token: str) -> Optional[DirectoryUser]:
        """
        Redeem a magic-link token exactly once.

        Returns:
            The signed-in user, or ``None`` for unknown, expired or spent tokens
        """
        record = await magic_link_token_crud.get_by_hash(self.db, hash_token(raw_token))
        if record is None or not record.is_valid:
            return None
        if not await magic_link_token_crud.mark_used(self.db, record.id, utc_now()):
            return None

        user = await user_crud.get_by_id(self.db, record.user_id)
        if user is None or not user.is_active:
            return None
        return DirectoryUser(id=user.id, email=user.email)
