"""
Verification logic helpers.
Pure functions with no storage dependencies.
"""
import secrets
import string
from typing import Optional


CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(length: int = CODE_LENGTH) -> str:
    """
    Generate a random uppercase alphanumeric verification code.

    Args:
        length: The length of the code (default: 8)

    Returns:
        A string of random characters from A-Z and 0-9
    """
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_email(email: Optional[str]) -> str:
    """Lowercase and trim an email address. None becomes ""."""
    if not email:
        return ""
    return email.strip().lower()


def normalize_code(code: Optional[str]) -> str:
    """Trim and uppercase a submitted code. None becomes ""."""
    if not code:
        return ""
    return code.strip().upper()


def normalize_domain(domain: Optional[str]) -> str:
    if not domain:
        return ""
    return domain.strip().lower()


def extract_domain(email: str) -> Optional[str]:
    """
    Get the lowercased domain part of an email address.

    Args:
        email: Email address

    Returns:
        Domain after the last '@', or None if there is no '@' or nothing after it
    """
    if not email or '@' not in email:
        return None
    domain = email.rsplit('@', 1)[1].strip().lower()
    return domain or None


def format_time_left(seconds: int) -> str:
    """
    Format a number of seconds as e.g. "4 minutes and 10 seconds".

    Args:
        seconds: Whole seconds remaining

    Returns:
        Human-readable duration
    """
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)

    if minutes > 0:
        text = f"{minutes} minute{'s' if minutes != 1 else ''}"
        if secs > 0:
            text += f" and {secs} second{'s' if secs != 1 else ''}"
        return text
    return f"{secs} second{'s' if secs != 1 else ''}"
