"""SQLAlchemy models package."""

from authcore.models.user import User, MagicLinkToken
from authcore.models.second_factor import AuthChallenge, PossessionCredential, SecondFactorProfile

__all__ = [
    "User",
    "MagicLinkToken",
    "SecondFactorProfile",
    "PossessionCredential",
    "AuthChallenge",
]
