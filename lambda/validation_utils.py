"""
Input validation utilities for security.
"""
import re
from typing import Optional, Tuple


def validate_domain(domain: str) -> bool:
    """
    Validate an allow-list domain.

    The domain must contain a dot, must not start or end with one, and every
    label must be alphanumeric with inner hyphens.

    Args:
        domain: Domain name to validate (already normalized)

    Returns:
        True if valid format, False otherwise
    """
    if not domain or not isinstance(domain, str):
        return False

    # Max length 253 chars per RFC 1035
    if len(domain) > MAX_DOMAIN_LENGTH:
        return False

    if '.' not in domain or domain.startswith('.') or domain.endswith('.'):
        return False

    pattern = r'^[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]*[a-zA-Z0-9])?)+$'
    return bool(re.match(pattern, domain))


# Input length limits
MAX_EMAIL_LENGTH = 254  # RFC 5321
MAX_DOMAIN_LENGTH = 253  # RFC 1035
MAX_CODE_LENGTH = 32


def validate_input_lengths(
    email: Optional[str] = None,
    domain: Optional[str] = None,
    code: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate input lengths to prevent resource exhaustion.

    Args:
        email: Email address (optional)
        domain: Domain name (optional)
        code: Submitted verification code (optional)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if email and len(email) > MAX_EMAIL_LENGTH:
        return (False, f"Email address too long (max {MAX_EMAIL_LENGTH} characters)")

    if domain and len(domain) > MAX_DOMAIN_LENGTH:
        return (False, f"Domain too long (max {MAX_DOMAIN_LENGTH} characters)")

    if code and len(code) > MAX_CODE_LENGTH:
        return (False, f"Code too long (max {MAX_CODE_LENGTH} characters)")

    return (True, None)
