"""Repositories for directory users and second-factor state."""

from authcore.crud.base import ChallengeRepo, CredentialRepo, SecondFactorRepo
from authcore.crud.second_factor import SqlChallengeRepo, SqlCredentialRepo, SqlSecondFactorRepo

__all__ = [
    "SecondFactorRepo",
    "CredentialRepo",
    "ChallengeRepo",
    "SqlSecondFactorRepo",
    "SqlCredentialRepo",
    "SqlChallengeRepo",
]
