"""Repository interfaces for second-factor state.

The orchestrator and services depend only on these interfaces, so the
crypto and state-machine logic can run against any store that honours them.
Methods documented as conditional must check their precondition and apply
the write in a single atomic statement.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from authcore.models.second_factor import AuthChallenge, PossessionCredential, SecondFactorProfile


class SecondFactorRepo(ABC):
    """Storage for ``SecondFactorProfile`` rows keyed by user id."""

    @abstractmethod
    async def get(self, user_id: UUID) -> Optional[SecondFactorProfile]:
        """Fresh read of the user's profile, or ``None``."""

    @abstractmethod
    async def get_or_create(self, user_id: UUID) -> SecondFactorProfile:
        """Return the profile, creating an empty one if absent."""

    @abstractmethod
    async def store_pending_secret(self, user_id: UUID, ciphertext: str) -> bool:
        """Conditional: replace the TOTP ciphertext only while TOTP is not enabled.

        Returns False when TOTP is already enabled (or the row is missing).
        """

    @abstractmethod
    async def enable_totp(
        self,
        user_id: UUID,
        expected_version: int,
        backup_hashes: list[str],
        verified_at: datetime,
    ) -> bool:
        """Conditional: activate TOTP, install a fresh backup batch and reset the used counter.

        Applies only while TOTP is disabled and the profile is still at
        ``expected_version`` (the version whose pending secret was verified).
        Returns False when a concurrent setup or confirm got there first.
        """

    @abstractmethod
    async def clear_totp(self, user_id: UUID) -> None:
        """Drop the secret, the enabled flag, the verification stamp and all backup hashes."""

    @abstractmethod
    async def replace_backup_codes(self, user_id: UUID, backup_hashes: list[str]) -> None:
        """Install a fresh backup batch and reset the used counter."""

    @abstractmethod
    async def consume_backup_code(
        self, user_id: UUID, expected_version: int, remaining_hashes: list[str]
    ) -> bool:
        """Conditional: store ``remaining_hashes`` and bump the used counter.

        Applies only if the profile is still at ``expected_version``. Returns
        False when another writer got there first.
        """

    @abstractmethod
    async def stamp_last_factor(self, user_id: UUID, at: datetime) -> None:
        """Record the time of the latest successful second-factor check."""

    @abstractmethod
    async def set_webauthn_enabled(self, user_id: UUID, enabled: bool) -> None:
        """Flip the WebAuthn flag, creating the profile if needed."""


class CredentialRepo(ABC):
    """Storage for ``PossessionCredential`` rows keyed by (user id, credential id)."""

    @abstractmethod
    async def list_for_user(self, user_id: UUID) -> Sequence[PossessionCredential]:
        """All credentials for the user, oldest first."""

    @abstractmethod
    async def get(self, user_id: UUID, credential_id: str) -> Optional[PossessionCredential]:
        """The user's credential with that external id, or ``None``."""

    @abstractmethod
    async def add(
        self,
        user_id: UUID,
        credential_id: str,
        public_key: Optional[str],
        transports: list[str],
        device_name: str,
        device_type: str,
    ) -> PossessionCredential:
        """Persist a trusted credential with a zero counter."""

    @abstractmethod
    async def record_use(
        self, row_id: UUID, expected_counter: int, new_counter: int, used_at: datetime
    ) -> bool:
        """Conditional: advance the counter only if it still equals ``expected_counter``."""


class ChallengeRepo(ABC):
    """Storage for ``AuthChallenge`` rows keyed by (user id, type, created_at)."""

    @abstractmethod
    async def add(
        self,
        user_id: UUID,
        challenge: str,
        challenge_type: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> AuthChallenge:
        """Persist a new unused challenge."""

    @abstractmethod
    async def latest_unused(self, user_id: UUID, challenge_type: str) -> Optional[AuthChallenge]:
        """Most recently created unused challenge of that type."""

    @abstractmethod
    async def mark_used(self, row_id: UUID) -> bool:
        """Conditional: set ``used`` only if it is still false. True if this call flipped it."""
