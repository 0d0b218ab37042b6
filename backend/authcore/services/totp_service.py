"""TOTP engine (RFC 6238, HMAC-SHA1, 6 digits, 30-second step).

Compatible with Google Authenticator, Authy, 1Password and other TOTP apps.
"""

import base64
import io
from datetime import datetime
from typing import Optional

import pyotp
import qrcode

from authcore.utils.datetime_utils import to_unix_seconds, utc_now

DIGITS = 6
STEP_SECONDS = 30


class TOTPService:
    """Generation and windowed verification of time-based one-time passwords."""

    @staticmethod
    def generate_secret() -> str:
        """Generate a new 160-bit TOTP secret (32 base32 characters)."""
        return pyotp.random_base32()

    @staticmethod
    def _for_time(at: Optional[datetime]) -> int:
        return int(to_unix_seconds(at if at is not None else utc_now()))

    @staticmethod
    def _totp(secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(secret, digits=DIGITS, interval=STEP_SECONDS)

    @classmethod
    def generate(cls, secret: str, at: Optional[datetime] = None) -> str:
        """
        Code for the 30-second step containing ``at``.

        Args:
            secret: Base32-encoded TOTP secret
            at: Instant to generate for (naive = UTC); defaults to now

        Returns:
            Zero-padded 6-digit code
        """
        return cls._totp(secret).at(cls._for_time(at))

    @classmethod
    def verify(
        cls,
        secret: str,
        candidate: str,
        window: int = 1,
        at: Optional[datetime] = None,
    ) -> bool:
        """
        Verify a code against the steps ``at - window*30s`` .. ``at + window*30s``.

        Comparison is constant-time per candidate step.

        Args:
            secret: Base32-encoded TOTP secret
            candidate: Code entered by the user (spaces are ignored)
            window: Number of steps tolerated either side (default 1 = +-30s)
            at: Reference instant (naive = UTC); defaults to now

        Returns:
            True if the code matches any step in the window
        """
        if not secret or not candidate:
            return False

        code = candidate.replace(" ", "")
        if len(code) != DIGITS or not code.isdigit():
            return False

        return cls._totp(secret).verify(code, for_time=cls._for_time(at), valid_window=window)

    @classmethod
    def provisioning_uri(cls, secret: str, account_name: str, issuer: str) -> str:
        """
        Build the ``otpauth://totp/...`` URI for authenticator-app enrollment.

        Args:
            secret: Base32-encoded TOTP secret
            account_name: Shown in the authenticator app (usually the email)
            issuer: Application name shown in the authenticator app
        """
        return cls._totp(secret).provisioning_uri(name=account_name, issuer_name=issuer)

    @staticmethod
    def generate_qr_code_base64(uri: str) -> str:
        """
        Render a provisioning URI as a PNG QR code.

        Returns:
            ``data:image/png;base64,...`` URI ready for an ``<img>`` tag
        """
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(uri)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return f"data:image/png;base64,{base64.b64encode(buffer.getvalue()).decode()}"


totp_service = TOTPService()
