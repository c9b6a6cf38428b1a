"""
Sanitized stdout logging.

Lambda ships stdout to CloudWatch Logs. Verification codes, full email
addresses, bot tokens and AWS keys are redacted before anything is printed.
"""
import re
import json
from typing import Any, Optional


# Dictionary keys whose values are always replaced
SENSITIVE_KEYS = {
    'email', 'code', 'submitted_code', 'token', 'bot_token',
    'password', 'secret', 'api_key', 'private_key', 'authorization',
    'x-signature-ed25519', 'x-signature-timestamp'
}

REDACTED = '***REDACTED***'

# Applied in order; emails first so their local parts never look like codes
REDACTION_PATTERNS = [
    (re.compile(r'\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b'), '***EMAIL***'),
    (re.compile(r'(Bot\s+)?[A-Za-z0-9_-]{24,}\.[A-Za-z0-9_-]{6,}\.[A-Za-z0-9_-]{27,}'), 'Bot ***TOKEN***'),
    (re.compile(r'(AKIA|ASIA)[0-9A-Z]{16}'), '***AWS_KEY***'),
    # Anything labelled as a code, in any case: "code: abcd1234", "code is ABCDEFGH"
    (re.compile(r'''(\bcode(?:\s+is|["']?\s*[:=])\s*["']?)[A-Za-z0-9]{4,16}\b''', re.IGNORECASE), r'\1***CODE***'),
    # Unlabelled codes: 6-8 uppercase alphanumerics with at least one digit
    (re.compile(r'\b(?=[A-Z0-9]*\d)[A-Z0-9]{6,8}\b'), '***CODE***'),
]


def sanitize_string(text: str) -> str:
    """Redact emails, tokens, AWS keys and verification codes in text."""
    if not isinstance(text, str):
        return text

    for pattern, replacement in REDACTION_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _is_sensitive_key(key: Any) -> bool:
    return isinstance(key, str) and key.lower() in SENSITIVE_KEYS


def sanitize_for_logging(data: Any) -> Any:
    """
    Return a copy of data that is safe to log.

    Dict values under SENSITIVE_KEYS are replaced outright, as is the 'value'
    of a slash command option whose 'name' is sensitive. Every other string,
    however deeply nested in dicts and lists, goes through sanitize_string().
    Other values are returned unchanged.
    """
    if isinstance(data, str):
        return sanitize_string(data)

    if isinstance(data, list):
        return [sanitize_for_logging(item) for item in data]

    if isinstance(data, dict):
        sensitive_option = _is_sensitive_key(data.get('name')) and 'value' in data
        return {
            key: REDACTED if _is_sensitive_key(key) or (sensitive_option and key == 'value')
            else sanitize_for_logging(value)
            for key, value in data.items()
        }

    return data


def log_safe(message: str, data: Any = None) -> None:
    """
    Print a message, followed by sanitized data if given.

    Dicts and lists are printed as JSON so CloudWatch Insights can parse them.
    """
    if data is None:
        print(message)
        return

    clean = sanitize_for_logging(data)
    if isinstance(clean, (dict, list)):
        clean = json.dumps(clean, default=str)
    print(f"{message}: {clean}")


def email_domain(email: str) -> str:
    """Domain part of an email for logging, 'unknown' if absent."""
    return email.rsplit('@', 1)[1] if email and '@' in email else 'unknown'


def log_email_event(operation: str, email: str, success: bool, details: Optional[str] = None) -> None:
    """
    Log an email event (code issued, sent, verified) by domain only.

    Args:
        operation: What happened, e.g. "sent" or "verified"
        email: Address involved; only its domain is printed
        success: Outcome of the operation
        details: Extra text, sanitized before printing
    """
    line = f"Email {operation} {'SUCCESS' if success else 'FAILED'} to domain @{email_domain(email)}"
    if details:
        line += f": {sanitize_string(details)}"
    print(line)


def log_storage_error(operation: str, backend: str, error: Exception) -> None:
    """
    Log a storage backend failure without leaking keys or email addresses.

    Args:
        operation: Operation that failed (e.g., "save_pending")
        backend: Backend description (e.g., "S3", "Local")
        error: The exception raised by the backend
    """
    print("ERROR: Storage failure: " + json.dumps({
        'operation': operation,
        'backend': backend,
        'error_type': type(error).__name__,
        'error': sanitize_string(str(error))
    }))


def log_discord_error(operation: str, status_code: int, error_code: Optional[int] = None) -> None:
    """Log a failed Discord REST call by status and Discord error code only."""
    print("Discord API error: " + json.dumps({
        'operation': operation,
        'status_code': status_code,
        'error_code': error_code
    }))
