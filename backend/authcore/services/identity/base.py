"""Base classes for the user directory."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class DirectoryUser:
    """Identity resolved by the user directory."""

    id: UUID
    email: str


@dataclass(frozen=True)
class PasswordlessSession:
    """One-time session artifact handed back after a successful second factor.

    ``session_token`` is the raw single-use token; ``action_url`` is the
    magic link that redeems it and lands on the post-auth destination.
    """

    session_token: str
    action_url: str
    expires_at: Optional[datetime] = None


class UserDirectory(ABC):
    """Resolves users and mints passwordless sessions for them."""

    @abstractmethod
    async def resolve_user_by_email(self, email: str) -> Optional[DirectoryUser]:
        """Return the active user for ``email`` (case-insensitive), or ``None``."""

    @abstractmethod
    async def issue_passwordless_session(
        self, user: DirectoryUser, redirect_to: str
    ) -> PasswordlessSession:
        """Mint a one-time sign-in artifact that lands on ``redirect_to``."""
