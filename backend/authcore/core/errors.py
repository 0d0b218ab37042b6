"""Error taxonomy for the second-factor core.

Components raise these exceptions. The sign-in orchestrator converts them into
``ErrorResult`` objects so callers never have to catch or parse strings.
"""

import enum


class ErrorCode(str, enum.Enum):
    """Stable machine-readable error identifiers."""

    NOT_FOUND = "not_found"
    NO_FACTOR_CONFIGURED = "no_factor_configured"
    CHALLENGE_EXPIRED_OR_MISSING = "challenge_expired_or_missing"
    INVALID_CODE = "invalid_code"
    ALREADY_ENABLED = "already_enabled"
    INTEGRITY_FAILURE = "integrity_failure"


class AuthCoreError(Exception):
    """Base class for every recoverable failure raised by this package."""

    code: ErrorCode
    default_message: str = "Authentication failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(AuthCoreError):
    """Email, user or credential is absent."""

    code = ErrorCode.NOT_FOUND
    default_message = "User not found"


class NoFactorConfigured(AuthCoreError):
    """The user has no usable second factor for the requested method."""

    code = ErrorCode.NO_FACTOR_CONFIGURED
    default_message = "No second factor configured"


class ChallengeExpiredOrMissing(AuthCoreError):
    """No redeemable challenge; the client must request a new one."""

    code = ErrorCode.CHALLENGE_EXPIRED_OR_MISSING
    default_message = "Invalid or expired challenge"


class ChallengeNotFound(ChallengeExpiredOrMissing):
    default_message = "No pending challenge"


class ChallengeExpired(ChallengeExpiredOrMissing):
    default_message = "Challenge expired"


class InvalidCode(AuthCoreError):
    """Wrong TOTP code, unknown backup code, or a rejected assertion."""

    code = ErrorCode.INVALID_CODE
    default_message = "Invalid verification code"


class AlreadyEnabled(AuthCoreError):
    """TOTP is already active; it must be disabled before re-enrolling."""

    code = ErrorCode.ALREADY_ENABLED
    default_message = (
        "Authenticator already enabled for this account. "
        "Disable it to register a new one."
    )


class IntegrityFailure(AuthCoreError):
    """Stored secret could not be authenticated; the profile needs re-enrollment."""

    code = ErrorCode.INTEGRITY_FAILURE
    default_message = "Stored secret failed integrity check"
