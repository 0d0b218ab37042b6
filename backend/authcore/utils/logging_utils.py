"""Logging utilities for PII redaction."""

import hashlib
from typing import Optional


def redact_email(email: Optional[str]) -> str:
    """
    Redact an email address for logging while keeping it correlatable.

    Examples:
        >>> redact_email("user@example.com")
        'u***@example.com'
        >>> redact_email(None)
        'N/A'
    """
    if not email:
        return "N/A"

    try:
        local, domain = email.split("@", 1)
    except ValueError:
        email_hash = hashlib.sha256(str(email).encode()).hexdigest()[:6]
        return f"hash:{email_hash}"

    # Local parts shorter than 3 chars would leak most of the address
    if len(local) < 3:
        email_hash = hashlib.sha256(email.encode()).hexdigest()[:6]
        return f"hash:{email_hash}@{domain}"

    return f"{local[0]}***@{domain}"
