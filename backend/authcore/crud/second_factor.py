"""SQLAlchemy implementations of the second-factor repositories."""

from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.crud.base import ChallengeRepo, CredentialRepo, SecondFactorRepo
from authcore.models.second_factor import AuthChallenge, PossessionCredential, SecondFactorProfile


class SqlSecondFactorRepo(SecondFactorRepo):
    """Second-factor profiles stored in ``user_2fa``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: UUID) -> Optional[SecondFactorProfile]:
        result = await self.db.execute(
            select(SecondFactorProfile)
            .where(SecondFactorProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: UUID) -> SecondFactorProfile:
        profile = await self.get(user_id)
        if profile is not None:
            return profile

        self.db.add(SecondFactorProfile(user_id=user_id, backup_codes_hash=[]))
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent request created it first
            await self.db.rollback()
        return await self.get(user_id)

    async def _update(self, user_id: UUID, *criteria, **values) -> int:
        result = await self.db.execute(
            update(SecondFactorProfile)
            .where(SecondFactorProfile.user_id == user_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount

    async def store_pending_secret(self, user_id: UUID, ciphertext: str) -> bool:
        rows = await self._update(
            user_id,
            SecondFactorProfile.totp_enabled.is_(False),
            totp_secret_ciphertext=ciphertext,
            version=SecondFactorProfile.version + 1,
        )
        return rows == 1

    async def enable_totp(
        self,
        user_id: UUID,
        expected_version: int,
        backup_hashes: list[str],
        verified_at: datetime,
    ) -> bool:
        rows = await self._update(
            user_id,
            SecondFactorProfile.version == expected_version,
            SecondFactorProfile.totp_enabled.is_(False),
            totp_enabled=True,
            totp_verified_at=verified_at,
            backup_codes_hash=list(backup_hashes),
            backup_codes_used=0,
            version=SecondFactorProfile.version + 1,
        )
        return rows == 1

    async def clear_totp(self, user_id: UUID) -> None:
        await self._update(
            user_id,
            totp_secret_ciphertext=None,
            totp_enabled=False,
            totp_verified_at=None,
            backup_codes_hash=[],
            version=SecondFactorProfile.version + 1,
        )

    async def replace_backup_codes(self, user_id: UUID, backup_hashes: list[str]) -> None:
        await self._update(
            user_id,
            backup_codes_hash=list(backup_hashes),
            backup_codes_used=0,
            version=SecondFactorProfile.version + 1,
        )

    async def consume_backup_code(
        self, user_id: UUID, expected_version: int, remaining_hashes: list[str]
    ) -> bool:
        rows = await self._update(
            user_id,
            SecondFactorProfile.version == expected_version,
            backup_codes_hash=list(remaining_hashes),
            backup_codes_used=SecondFactorProfile.backup_codes_used + 1,
            version=SecondFactorProfile.version + 1,
        )
        return rows == 1

    async def stamp_last_factor(self, user_id: UUID, at: datetime) -> None:
        await self._update(user_id, last_factor_at=at)

    async def set_webauthn_enabled(self, user_id: UUID, enabled: bool) -> None:
        await self.get_or_create(user_id)
        await self._update(user_id, webauthn_enabled=enabled)


class SqlCredentialRepo(CredentialRepo):
    """Possession credentials stored in ``webauthn_credentials``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(self, user_id: UUID) -> Sequence[PossessionCredential]:
        result = await self.db.execute(
            select(PossessionCredential)
            .where(PossessionCredential.user_id == user_id)
            .order_by(PossessionCredential.created_at)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def get(self, user_id: UUID, credential_id: str) -> Optional[PossessionCredential]:
        result = await self.db.execute(
            select(PossessionCredential)
            .where(
                PossessionCredential.user_id == user_id,
                PossessionCredential.credential_id == credential_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add(
        self,
        user_id: UUID,
        credential_id: str,
        public_key: Optional[str],
        transports: list[str],
        device_name: str,
        device_type: str,
    ) -> PossessionCredential:
        credential = PossessionCredential(
            user_id=user_id,
            credential_id=credential_id,
            public_key=public_key,
            transports=list(transports),
            counter=0,
            device_name=device_name,
            device_type=device_type,
        )
        self.db.add(credential)
        await self.db.commit()
        await self.db.refresh(credential)
        return credential

    async def record_use(
        self, row_id: UUID, expected_counter: int, new_counter: int, used_at: datetime
    ) -> bool:
        result = await self.db.execute(
            update(PossessionCredential)
            .where(
                PossessionCredential.id == row_id,
                PossessionCredential.counter == expected_counter,
            )
            .values(counter=new_counter, last_used_at=used_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1


class SqlChallengeRepo(ChallengeRepo):
    """Authentication challenges stored in ``auth_challenges``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(
        self,
        user_id: UUID,
        challenge: str,
        challenge_type: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> AuthChallenge:
        record = AuthChallenge(
            user_id=user_id,
            challenge=challenge,
            challenge_type=challenge_type,
            created_at=created_at,
            expires_at=expires_at,
            used=False,
        )
        self.db.add(record)
        await self.db.commit()
        return record

    async def latest_unused(self, user_id: UUID, challenge_type: str) -> Optional[AuthChallenge]:
        result = await self.db.execute(
            select(AuthChallenge)
            .where(
                AuthChallenge.user_id == user_id,
                AuthChallenge.challenge_type == challenge_type,
                AuthChallenge.used.is_(False),
            )
            .order_by(AuthChallenge.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_used(self, row_id: UUID) -> bool:
        result = await self.db.execute(
            update(AuthChallenge)
            .where(AuthChallenge.id == row_id, AuthChallenge.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1
