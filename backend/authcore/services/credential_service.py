"""Possession credential registry (WebAuthn credentials per user)."""

import logging
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from authcore.config import settings
from authcore.core.errors import InvalidCode
from authcore.crud.base import CredentialRepo, SecondFactorRepo
from authcore.models.second_factor import PossessionCredential
from authcore.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class CredentialService:
    """
    Catalogue of registered possession credentials.

    Signature verification against the stored public key happens before
    ``record_use`` is called; the registry only tracks identity and usage.
    """

    def __init__(
        self,
        credentials: CredentialRepo,
        profiles: SecondFactorRepo,
        enforce_sign_count: Optional[bool] = None,
    ):
        self.credentials = credentials
        self.profiles = profiles
        self.enforce_sign_count = (
            settings.WEBAUTHN_ENFORCE_SIGN_COUNT if enforce_sign_count is None else enforce_sign_count
        )

    async def list_credentials(self, user_id: UUID) -> Sequence[PossessionCredential]:
        return await self.credentials.list_for_user(user_id)

    async def get_credential(
        self, user_id: UUID, credential_id: str
    ) -> Optional[PossessionCredential]:
        return await self.credentials.get(user_id, credential_id)

    async def register(
        self,
        user_id: UUID,
        credential_id: str,
        public_key: Optional[str] = None,
        transports: Optional[list[str]] = None,
        device_name: str = "Security Key",
        device_type: str = "platform",
    ) -> PossessionCredential:
        """
        Persist a credential whose registration ceremony was already verified.

        Also marks WebAuthn as enabled on the user's profile.
        """
        credential = await self.credentials.add(
            user_id=user_id,
            credential_id=credential_id,
            public_key=public_key,
            transports=transports or [],
            device_name=device_name,
            device_type=device_type,
        )
        await self.profiles.set_webauthn_enabled(user_id, True)
        logger.info("Registered %s credential for user %s", device_type, user_id)
        return credential

    def next_counter(self, stored: int, presented: Optional[int]) -> int:
        """
        Counter value to persist after a successful assertion.

        Raises:
            InvalidCode: If enforcement is on and the presented counter did not advance
        """
        if presented is None:
            return stored + 1

        if self.enforce_sign_count and not (stored == 0 and presented == 0):
            if presented <= stored:
                raise InvalidCode("Signature counter did not advance")
        return max(stored, presented)

    async def record_use(
        self,
        credential: PossessionCredential,
        presented_sign_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Advance the counter and stamp ``last_used_at``.

        Returns:
            The stored counter value after the update

        Raises:
            InvalidCode: Counter regression, or a concurrent assertion already used this counter
        """
        now = now or utc_now()
        stored = credential.counter or 0
        new_counter = self.next_counter(stored, presented_sign_count)
        if not await self.credentials.record_use(credential.id, stored, new_counter, now):
            logger.warning("Concurrent use of credential for user %s", credential.user_id)
            raise InvalidCode("Credential was used concurrently")

        logger.info("Credential used for user %s (counter=%d)", credential.user_id, new_counter)
        return new_counter
