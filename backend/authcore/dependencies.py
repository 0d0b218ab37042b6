"""Wiring for the sign-in orchestrator and its collaborators."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.crud.second_factor import SqlChallengeRepo, SqlCredentialRepo, SqlSecondFactorRepo
from authcore.services.credential_service import CredentialService
from authcore.services.identity.base import UserDirectory
from authcore.services.identity.builtin import SqlUserDirectory
from authcore.services.secret_cipher import SecretCipher, get_secret_cipher
from authcore.services.signin_orchestrator import SignInOrchestrator


def build_orchestrator(
    db: AsyncSession,
    directory: Optional[UserDirectory] = None,
    cipher: Optional[SecretCipher] = None,
) -> SignInOrchestrator:
    """
    Build an orchestrator bound to one database session.

    Args:
        db: Session used by every repository for this request
        directory: External user directory; defaults to the built-in one
        cipher: TOTP seed cipher; defaults to the process-wide instance

    Returns:
        SignInOrchestrator ready to serve one request
    """
    return SignInOrchestrator(
        directory=directory or SqlUserDirectory(db),
        profiles=SqlSecondFactorRepo(db),
        credentials=SqlCredentialRepo(db),
        challenges=SqlChallengeRepo(db),
        cipher=cipher or get_secret_cipher(),
    )


def build_credential_service(db: AsyncSession) -> CredentialService:
    """Credential registry used after a verified registration ceremony."""
    return CredentialService(SqlCredentialRepo(db), SqlSecondFactorRepo(db))
