"""Sign-in orchestrator: second-factor sign-in and TOTP enrollment.

Sign-in state machine::

    EmailEntered --check_email--> MethodSelected{TOTP | WebAuthn}
    WebAuthn: webauthn_options --> ChallengeIssued --webauthn_verify--> Verified
    TOTP:     totp_verify (no challenge; the shared secret anchors it) --> Verified
    Verified --> SessionIssued (passwordless session from the user directory)

Any step can end in a typed ``ErrorResult`` instead (the ``Failed`` state).
Every public method re-reads state from the repositories; nothing is cached
between calls.
"""

import functools
import logging
from datetime import datetime
from typing import Callable, Optional, Tuple, Union
from urllib.parse import urlparse

from authcore.config import settings
from authcore.core.errors import (
    AlreadyEnabled,
    AuthCoreError,
    IntegrityFailure,
    InvalidCode,
    NoFactorConfigured,
    NotFound,
)
from authcore.crud.base import ChallengeRepo, CredentialRepo, SecondFactorRepo
from authcore.models.second_factor import SecondFactorProfile
from authcore.schemas.second_factor import (
    AllowedCredential,
    BackupCodesResult,
    CheckEmailResult,
    CredentialSummary,
    EnabledMethods,
    ErrorResult,
    PossessionAssertion,
    SessionResult,
    TotpDisableResult,
    TotpSetupResult,
    TwoFactorStatus,
    WebAuthnOptionsResult,
    WebAuthnRequestOptions,
)
from authcore.services.challenge_service import SMART_SIGNIN, ChallengeService
from authcore.services.credential_service import CredentialService
from authcore.services.identity.base import DirectoryUser, UserDirectory
from authcore.services.recovery_code_service import recovery_code_service
from authcore.services.secret_cipher import SecretCipher, get_secret_cipher
from authcore.services.totp_service import totp_service
from authcore.utils.datetime_utils import utc_now
from authcore.utils.logging_utils import redact_email

logger = logging.getLogger(__name__)


def typed_result(func):
    """Convert ``AuthCoreError`` raised by a step into an ``ErrorResult``."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except IntegrityFailure as exc:
            logger.error("Stored TOTP secret failed integrity check in %s", func.__name__)
            return ErrorResult(error=exc.code, message=exc.message)
        except AuthCoreError as exc:
            logger.info("%s failed: %s", func.__name__, exc.code.value)
            return ErrorResult(error=exc.code, message=exc.message)

    return wrapper


class SignInOrchestrator:
    """Composes the directory, TOTP engine, backup codes, challenges and credentials."""

    def __init__(
        self,
        directory: UserDirectory,
        profiles: SecondFactorRepo,
        credentials: CredentialRepo,
        challenges: ChallengeRepo,
        cipher: Optional[SecretCipher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.directory = directory
        self.profiles = profiles
        self.credential_service = CredentialService(credentials, profiles)
        self.challenge_service = ChallengeService(challenges)
        self.cipher = cipher or get_secret_cipher()
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _origin(origin: Optional[str]) -> str:
        candidate = (origin or "").strip()
        if candidate and urlparse(candidate).hostname:
            return candidate.rstrip("/")
        return settings.SITE_URL.rstrip("/")

    @classmethod
    def relying_party_id(cls, origin: Optional[str]) -> str:
        """Hostname the WebAuthn ceremony is bound to."""
        return urlparse(cls._origin(origin)).hostname

    @classmethod
    def post_auth_redirect(cls, origin: Optional[str]) -> str:
        return f"{cls._origin(origin)}{settings.POST_AUTH_PATH}"

    async def _require_user(self, email: str) -> DirectoryUser:
        if not email or not email.strip():
            raise NotFound("Email is required")
        user = await self.directory.resolve_user_by_email(email)
        if user is None:
            raise NotFound()
        return user

    async def _require_totp_profile(self, user: DirectoryUser) -> SecondFactorProfile:
        profile = await self.profiles.get(user.id)
        if profile is None or not profile.totp_enabled or not profile.has_pending_secret:
            raise NoFactorConfigured("TOTP not enabled for this account")
        return profile

    def _decrypt_secret(self, profile: SecondFactorProfile) -> str:
        return self.cipher.decrypt_text(profile.totp_secret_ciphertext)

    async def _verify_code_or_backup(
        self, profile: SecondFactorProfile, code: str, now: datetime
    ) -> Tuple[bool, int]:
        """
        Accept a current TOTP code, else spend a matching backup code.

        Backup codes do not depend on the stored secret, so they are still
        accepted when the secret fails its integrity check. That keeps
        ``disable`` (and re-enrollment after it) reachable.

        Returns:
            ``(used_backup_code, backup_codes_remaining)``

        Raises:
            InvalidCode: Neither a valid TOTP code nor an unspent backup code
            IntegrityFailure: The stored secret cannot be decrypted and the
                code is not an unspent backup code
        """
        hashes = list(profile.backup_codes_hash or [])
        integrity_error = None
        try:
            secret = self._decrypt_secret(profile)
        except IntegrityFailure as e:
            integrity_error = e
        else:
            if totp_service.verify(secret, code, window=settings.TOTP_VALID_WINDOW, at=now):
                return False, len(hashes)

        matched, remaining = recovery_code_service.consume(code, hashes)
        if not matched:
            if integrity_error is not None:
                raise integrity_error
            raise InvalidCode()

        # Conditional on the version read above; a concurrent spend of the same code loses
        if not await self.profiles.consume_backup_code(profile.user_id, profile.version, remaining):
            logger.warning("Concurrent backup code use for user %s", profile.user_id)
            raise InvalidCode()

        logger.info("Backup code used for user %s (%d remaining)", profile.user_id, len(remaining))
        return True, len(remaining)

    async def _issue_session(self, user: DirectoryUser, origin: Optional[str]) -> Tuple[str, str]:
        session = await self.directory.issue_passwordless_session(
            user, self.post_auth_redirect(origin)
        )
        return session.session_token, session.action_url

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    @typed_result
    async def check_email(self, email: str) -> Union[CheckEmailResult, ErrorResult]:
        """Report whether the account exists and which second factors it has."""
        if not email or not email.strip():
            raise NotFound("Email is required")

        user = await self.directory.resolve_user_by_email(email)
        if user is None:
            logger.info("Sign-in attempt for unknown email %s", redact_email(email))
            return CheckEmailResult(exists=False, has_2fa=False, methods=EnabledMethods())

        profile = await self.profiles.get(user.id)
        methods = EnabledMethods(
            totp=bool(profile and profile.totp_enabled),
            webauthn=bool(profile and profile.webauthn_enabled),
        )
        return CheckEmailResult(
            exists=True,
            has_2fa=methods.totp or methods.webauthn,
            methods=methods,
            user_id=user.id,
        )

    @typed_result
    async def webauthn_options(
        self, email: str, origin: Optional[str] = None
    ) -> Union[WebAuthnOptionsResult, ErrorResult]:
        """Issue a ``smart_signin`` challenge and the credential request options."""
        now = self.clock()
        user = await self._require_user(email)

        credentials = await self.credential_service.list_credentials(user.id)
        if not credentials:
            raise NoFactorConfigured("No passkeys registered for this account")

        challenge = await self.challenge_service.issue(user.id, SMART_SIGNIN, now=now)
        options = WebAuthnRequestOptions(
            challenge=challenge.challenge,
            rp_id=self.relying_party_id(origin),
            allow_credentials=[
                AllowedCredential(id=cred.credential_id, transports=list(cred.transports or []))
                for cred in credentials
            ],
            user_verification="preferred",
            timeout=settings.WEBAUTHN_TIMEOUT_MS,
        )
        return WebAuthnOptionsResult(options=options, user_id=user.id)

    @typed_result
    async def webauthn_verify(
        self, email: str, assertion: PossessionAssertion, origin: Optional[str] = None
    ) -> Union[SessionResult, ErrorResult]:
        """Redeem the challenge, check the credential and issue a session."""
        now = self.clock()
        user = await self._require_user(email)

        # Spent before the credential check so an observed challenge cannot be retried
        await self.challenge_service.redeem(
            user.id, SMART_SIGNIN, presented=assertion.challenge, now=now
        )

        credential = await self.credential_service.get_credential(user.id, assertion.id)
        if credential is None:
            raise NotFound("Invalid credential")

        await self.credential_service.record_use(credential, assertion.sign_count, now=now)
        await self.profiles.stamp_last_factor(user.id, now)

        session_token, action_url = await self._issue_session(user, origin)
        logger.info("WebAuthn sign-in verified for user %s", user.id)
        return SessionResult(session_token=session_token, action_url=action_url)

    @typed_result
    async def totp_verify(
        self, email: str, code: str, origin: Optional[str] = None
    ) -> Union[SessionResult, ErrorResult]:
        """Verify a TOTP code (or a backup code) and issue a session."""
        now = self.clock()
        user = await self._require_user(email)
        profile = await self._require_totp_profile(user)

        used_backup_code, remaining = await self._verify_code_or_backup(profile, code, now)
        await self.profiles.stamp_last_factor(user.id, now)

        session_token, action_url = await self._issue_session(user, origin)
        logger.info(
            "TOTP sign-in verified for user %s (backup code: %s)", user.id, used_backup_code
        )
        return SessionResult(
            used_backup_code=used_backup_code,
            backup_codes_remaining=remaining,
            session_token=session_token,
            action_url=action_url,
        )

    # ------------------------------------------------------------------
    # Enrollment (caller is already authenticated as ``user``)
    # ------------------------------------------------------------------

    @typed_result
    async def setup(self, user: DirectoryUser) -> Union[TotpSetupResult, ErrorResult]:
        """Start TOTP enrollment with a fresh, not yet active secret."""
        profile = await self.profiles.get_or_create(user.id)
        if profile.totp_enabled:
            raise AlreadyEnabled()

        secret = totp_service.generate_secret()
        if not await self.profiles.store_pending_secret(user.id, self.cipher.encrypt_text(secret)):
            # Enabled by a concurrent confirm between the read and the write
            raise AlreadyEnabled()

        uri = totp_service.provisioning_uri(secret, user.email or str(user.id), settings.TOTP_ISSUER)
        logger.info("TOTP setup started for user %s", user.id)
        return TotpSetupResult(
            secret=secret,
            otpauth_url=uri,
            qr_code=totp_service.generate_qr_code_base64(uri),
        )

    @typed_result
    async def confirm(self, user: DirectoryUser, code: str) -> Union[BackupCodesResult, ErrorResult]:
        """Prove possession of the pending secret; activates TOTP and issues backup codes."""
        now = self.clock()
        profile = await self.profiles.get(user.id)
        if profile is None or not profile.has_pending_secret:
            raise NoFactorConfigured("No pending TOTP setup found")
        if profile.totp_enabled:
            raise AlreadyEnabled()

        secret = self._decrypt_secret(profile)
        if not totp_service.verify(secret, code, window=settings.TOTP_VALID_WINDOW, at=now):
            raise InvalidCode()

        codes, hashes = recovery_code_service.issue(settings.BACKUP_CODE_COUNT)
        if not await self.profiles.enable_totp(user.id, profile.version, hashes, verified_at=now):
            # The pending secret was replaced (or confirmed) after it was verified above
            logger.warning("Stale TOTP confirmation for user %s", user.id)
            raise InvalidCode()
        logger.info("TOTP enabled for user %s", user.id)
        return BackupCodesResult(backup_codes=codes)

    @typed_result
    async def disable(self, user: DirectoryUser, code: str) -> Union[TotpDisableResult, ErrorResult]:
        """Turn TOTP off after a valid current code or backup code."""
        now = self.clock()
        profile = await self._require_totp_profile(user)
        await self._verify_code_or_backup(profile, code, now)
        await self.profiles.clear_totp(user.id)
        logger.info("TOTP disabled for user %s", user.id)
        return TotpDisableResult()

    @typed_result
    async def regenerate_backup_codes(
        self, user: DirectoryUser, code: str
    ) -> Union[BackupCodesResult, ErrorResult]:
        """Replace the backup batch. Requires a current TOTP code, not a backup code."""
        now = self.clock()
        profile = await self._require_totp_profile(user)
        secret = self._decrypt_secret(profile)
        if not totp_service.verify(secret, code, window=settings.TOTP_VALID_WINDOW, at=now):
            raise InvalidCode()

        codes, hashes = recovery_code_service.issue(settings.BACKUP_CODE_COUNT)
        await self.profiles.replace_backup_codes(user.id, hashes)
        logger.info("Backup codes regenerated for user %s", user.id)
        return BackupCodesResult(backup_codes=codes, message="Backup codes regenerated")

    @typed_result
    async def status(self, user: DirectoryUser) -> Union[TwoFactorStatus, ErrorResult]:
        """Summarise enabled factors, remaining backup codes and registered credentials."""
        profile = await self.profiles.get(user.id)
        credentials = await self.credential_service.list_credentials(user.id)
        summaries = [CredentialSummary.model_validate(cred) for cred in credentials]
        if profile is None:
            return TwoFactorStatus(webauthn_credentials=summaries)

        return TwoFactorStatus(
            totp_enabled=profile.totp_enabled,
            webauthn_enabled=profile.webauthn_enabled,
            totp_verified_at=profile.totp_verified_at,
            last_factor_at=profile.last_factor_at,
            backup_codes_remaining=len(profile.backup_codes_hash or []),
            webauthn_credentials=summaries,
        )
