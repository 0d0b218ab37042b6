"""CRUD operations for directory users and magic-link tokens."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.models.user import MagicLinkToken, User


class UserCRUD:
    """CRUD operations for User model."""

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        """Get an active user by email, ignoring case."""
        result = await db.execute(
            select(User).where(
                func.lower(User.email) == email.strip().lower(),
                User.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: UUID) -> Optional[User]:
        """Get user by ID."""
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create(db: AsyncSession, email: str) -> User:
        """Create a new user."""
        user = User(email=email.strip().lower())
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


class MagicLinkTokenCRUD:
    """CRUD operations for MagicLinkToken model."""

    @staticmethod
    async def create(
        db: AsyncSession,
        user_id: UUID,
        token_hash: str,
        redirect_to: str,
        expires_at: datetime,
    ) -> MagicLinkToken:
        """Store the hash of a freshly issued token."""
        token = MagicLinkToken(
            user_id=user_id,
            token_hash=token_hash,
            redirect_to=redirect_to,
            expires_at=expires_at,
        )
        db.add(token)
        await db.commit()
        await db.refresh(token)
        return token

    @staticmethod
    async def get_by_hash(db: AsyncSession, token_hash: str) -> Optional[MagicLinkToken]:
        """Look up a token by the hash of its raw value."""
        result = await db.execute(
            select(MagicLinkToken)
            .where(MagicLinkToken.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_used(db: AsyncSession, token_id: UUID, used_at: datetime) -> bool:
        """Atomically mark a token used. False if it had already been used."""
        result = await db.execute(
            update(MagicLinkToken)
            .where(MagicLinkToken.id == token_id, MagicLinkToken.used_at.is_(None))
            .values(used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount == 1


user_crud = UserCRUD()
magic_link_token_crud = MagicLinkTokenCRUD()
