"""Single-use recovery (backup) codes.

Codes are shown to the user once, at issuance. Only SHA-256 digests are kept.
"""

import base64
import hashlib
import hmac
import secrets
from typing import List, Tuple


class RecoveryCodeService:
    """Issue, hash and consume backup codes."""

    @staticmethod
    def generate_code() -> str:
        """One code from 4 random bytes, formatted ``XXXX-XXXX`` (upper-case hex)."""
        raw = secrets.token_hex(4).upper()
        return f"{raw[:4]}-{raw[4:]}"

    @staticmethod
    def hash_code(code: str) -> str:
        """
        Hash a backup code for storage.

        The separator is removed and the code lower-cased first, so
        ``ABCD-EF12``, ``abcdef12`` and ``abcd-ef12`` share one digest.

        Returns:
            Base64-encoded SHA-256 digest
        """
        normalized = code.strip().replace("-", "").lower()
        digest = hashlib.sha256(normalized.encode()).digest()
        return base64.b64encode(digest).decode("ascii")

    @classmethod
    def issue(cls, count: int = 8) -> Tuple[List[str], List[str]]:
        """
        Generate a batch of backup codes.

        Returns:
            ``(plaintext_codes, hashes)`` in matching order
        """
        codes = [cls.generate_code() for _ in range(count)]
        return codes, [cls.hash_code(code) for code in codes]

    @classmethod
    def consume(cls, candidate: str, hashes: List[str]) -> Tuple[bool, List[str]]:
        """
        Check a candidate against the stored hashes.

        On a match exactly one entry is removed. The caller persists the
        remaining list and bumps the used counter.

        Returns:
            ``(matched, remaining_hashes)``
        """
        if not candidate or not hashes:
            return False, list(hashes or [])

        candidate_hash = cls.hash_code(candidate)
        for index, stored in enumerate(hashes):
            if hmac.compare_digest(stored, candidate_hash):
                return True, hashes[:index] + hashes[index + 1:]
        return False, list(hashes)


recovery_code_service = RecoveryCodeService()
