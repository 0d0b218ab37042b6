"""Authenticated encryption of TOTP seeds at rest.

Format: ``IV (12 bytes) || AES-256-GCM ciphertext || tag (16 bytes)``. The text
helpers base64-encode that blob for the ``user_2fa.totp_secret_ciphertext``
column.

Key material:
  - ``pad`` (default): the operator secret is right-padded with ``"0"`` and
    truncated to exactly 32 bytes. Not a KDF; kept so existing ciphertexts
    stay readable.
  - ``hkdf``: HKDF-SHA256 over the operator secret. Switching methods makes
    ciphertexts written with the other method undecryptable (users must
    re-enroll).
"""

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from authcore.config import settings
from authcore.core.errors import IntegrityFailure

IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
_HKDF_INFO = b"authcore-totp-secret"


def derive_key(operator_secret: str | bytes, method: str = "pad") -> bytes:
    """Turn an operator-supplied secret into a 32-byte AES key."""
    if isinstance(operator_secret, str):
        operator_secret = operator_secret.encode()
    if not operator_secret:
        raise ValueError("Encryption secret cannot be empty")

    if method == "pad":
        return operator_secret.ljust(KEY_LENGTH, b"0")[:KEY_LENGTH]
    if method == "hkdf":
        return HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=None,
            info=_HKDF_INFO,
        ).derive(operator_secret)
    raise ValueError(f"Unknown key derivation method: {method}")


def encrypt(secret: bytes, key: bytes) -> bytes:
    """Encrypt ``secret`` under a fresh random IV; returns IV || ciphertext+tag."""
    iv = os.urandom(IV_LENGTH)
    return iv + AESGCM(key).encrypt(iv, secret, None)


def decrypt(ciphertext: bytes, key: bytes) -> bytes:
    """
    Decrypt a blob produced by ``encrypt``.

    Raises:
        IntegrityFailure: Tampered data, wrong key, or a truncated blob
    """
    if len(ciphertext) < IV_LENGTH + TAG_LENGTH:
        raise IntegrityFailure("Ciphertext is too short")

    iv, body = ciphertext[:IV_LENGTH], ciphertext[IV_LENGTH:]
    try:
        return AESGCM(key).decrypt(iv, body, None)
    except InvalidTag as e:
        raise IntegrityFailure() from e


class SecretCipher:
    """AES-256-GCM cipher bound to one derived key."""

    def __init__(self, operator_secret: str | bytes, method: str = "pad"):
        self._key = derive_key(operator_secret, method)

    def encrypt(self, secret: bytes) -> bytes:
        return encrypt(secret, self._key)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return decrypt(ciphertext, self._key)

    def encrypt_text(self, secret: str) -> str:
        """Encrypt a text secret and return base64 suitable for TEXT columns."""
        if not secret:
            raise ValueError("Secret cannot be empty")
        return base64.b64encode(self.encrypt(secret.encode())).decode("ascii")

    def decrypt_text(self, stored: str) -> str:
        """
        Reverse ``encrypt_text``.

        Raises:
            IntegrityFailure: If the stored value is not valid base64 or fails authentication
        """
        try:
            blob = base64.b64decode(stored.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, ValueError) as e:
            raise IntegrityFailure("Stored secret is not valid base64") from e
        try:
            return self.decrypt(blob).decode()
        except UnicodeDecodeError as e:
            raise IntegrityFailure() from e


# Singleton instance
_secret_cipher = None


def get_secret_cipher() -> SecretCipher:
    """Get or create the TOTP seed cipher from settings."""
    global _secret_cipher
    if _secret_cipher is None:
        _secret_cipher = SecretCipher(settings.totp_encryption_secret, settings.TOTP_KEY_DERIVATION)
    return _secret_cipher
