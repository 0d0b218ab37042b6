"""Challenge ledger: issue and redeem single-use authentication challenges."""

import base64
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from authcore.config import settings
from authcore.core.errors import ChallengeExpired, ChallengeNotFound
from authcore.crud.base import ChallengeRepo
from authcore.models.second_factor import AuthChallenge
from authcore.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
SMART_SIGNIN = "smart_signin"


def generate_challenge() -> str:
    """256 bits from the CSPRNG, standard base64."""
    return base64.b64encode(secrets.token_bytes(CHALLENGE_BYTES)).decode("ascii")


class ChallengeService:
    """
    Issues challenges and redeems them exactly once.

    Several challenges for the same (user, type) may be outstanding; redemption
    always takes the most recently issued one, so clients must answer the
    latest options they received. An echoed challenge that is not the latest
    one is rejected.
    """

    def __init__(self, repo: ChallengeRepo, ttl_seconds: Optional[int] = None):
        self.repo = repo
        self.ttl = timedelta(seconds=ttl_seconds or settings.CHALLENGE_TTL_SECONDS)

    async def issue(
        self, user_id: UUID, challenge_type: str, now: Optional[datetime] = None
    ) -> AuthChallenge:
        """Create and persist a new challenge that expires after the TTL."""
        now = now or utc_now()
        record = await self.repo.add(
            user_id=user_id,
            challenge=generate_challenge(),
            challenge_type=challenge_type,
            created_at=now,
            expires_at=now + self.ttl,
        )
        logger.info("Issued %s challenge for user %s", challenge_type, user_id)
        return record

    async def redeem(
        self,
        user_id: UUID,
        challenge_type: str,
        presented: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AuthChallenge:
        """
        Consume the pending challenge before the caller verifies the credential.

        The challenge is spent even if the credential check that follows
        fails; the client then has to request new options.

        Args:
            user_id: Owner of the challenge
            challenge_type: Ceremony tag the challenge was minted for
            presented: Challenge echoed by the client, if it sent one
            now: Reference time (defaults to now)

        Raises:
            ChallengeNotFound: Nothing pending, the echoed value is not the latest
                challenge, or another request redeemed it first
            ChallengeExpired: The pending challenge is past its expiry
        """
        now = now or utc_now()
        record = await self.repo.latest_unused(user_id, challenge_type)
        if record is None:
            logger.info("No pending %s challenge for user %s", challenge_type, user_id)
            raise ChallengeNotFound()

        if presented is not None and not hmac.compare_digest(
            record.challenge.encode(), presented.encode()
        ):
            logger.info("Stale or unknown %s challenge for user %s", challenge_type, user_id)
            raise ChallengeNotFound()

        if now >= record.expires_at:
            logger.info("Expired %s challenge for user %s", challenge_type, user_id)
            raise ChallengeExpired()

        if not await self.repo.mark_used(record.id):
            logger.warning(
                "Concurrent redemption of %s challenge for user %s", challenge_type, user_id
            )
            raise ChallengeNotFound()

        return record
