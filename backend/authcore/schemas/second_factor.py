"""Second-factor Pydantic schemas (orchestrator inputs and results)."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from authcore.core.errors import ErrorCode


class ErrorResult(BaseModel):
    """Typed failure returned instead of raising across the orchestrator boundary."""

    success: Literal[False] = False
    error: ErrorCode
    message: str


class EnabledMethods(BaseModel):
    """Which second factors a user can sign in with."""

    totp: bool = False
    webauthn: bool = False


class CheckEmailResult(BaseModel):
    """Result of the first sign-in step."""

    success: Literal[True] = True
    exists: bool
    has_2fa: bool
    methods: EnabledMethods
    user_id: Optional[UUID] = None


class AllowedCredential(BaseModel):
    """Credential descriptor offered to the client."""

    id: str
    type: str = "public-key"
    transports: List[str] = Field(default_factory=list)


class WebAuthnRequestOptions(BaseModel):
    """PublicKeyCredentialRequestOptions for the client."""

    challenge: str
    rp_id: str
    allow_credentials: List[AllowedCredential]
    user_verification: str = "preferred"
    timeout: int = 60000


class WebAuthnOptionsResult(BaseModel):
    success: Literal[True] = True
    options: WebAuthnRequestOptions
    user_id: UUID


class PossessionAssertion(BaseModel):
    """Assertion presented by the client after signing the challenge.

    Signature verification against the stored public key is done by the
    caller before this reaches the orchestrator.
    """

    id: str = Field(..., min_length=1)
    challenge: Optional[str] = None
    sign_count: Optional[int] = Field(None, ge=0)


class SessionResult(BaseModel):
    """Successful second factor plus the passwordless session artifact."""

    success: Literal[True] = True
    verified: bool = True
    used_backup_code: bool = False
    backup_codes_remaining: Optional[int] = None
    session_token: str
    action_url: str


class TotpSetupResult(BaseModel):
    """Pending enrollment. ``secret`` is returned here and never again."""

    success: Literal[True] = True
    secret: str
    otpauth_url: str
    qr_code: str


class BackupCodesResult(BaseModel):
    """Fresh batch of plaintext backup codes, shown exactly once."""

    success: Literal[True] = True
    backup_codes: List[str]
    message: str = "TOTP enabled successfully"


class TotpDisableResult(BaseModel):
    success: Literal[True] = True
    message: str = "TOTP disabled successfully"


class CredentialSummary(BaseModel):
    """Registered credential as listed in the status view."""

    credential_id: str
    device_name: str
    device_type: str
    last_used_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TwoFactorStatus(BaseModel):
    """Second-factor overview for an authenticated user."""

    success: Literal[True] = True
    totp_enabled: bool = False
    webauthn_enabled: bool = False
    totp_verified_at: Optional[datetime] = None
    last_factor_at: Optional[datetime] = None
    backup_codes_remaining: int = 0
    webauthn_credentials: List[CredentialSummary] = Field(default_factory=list)
