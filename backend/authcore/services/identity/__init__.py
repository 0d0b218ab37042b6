"""User directory package: identity lookup and passwordless session hand-off."""

from authcore.services.identity.base import DirectoryUser, PasswordlessSession, UserDirectory
from authcore.services.identity.builtin import SqlUserDirectory

__all__ = [
    "DirectoryUser",
    "PasswordlessSession",
    "UserDirectory",
    "SqlUserDirectory",
]
