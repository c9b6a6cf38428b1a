"""
Error taxonomy for the verification core.

Every error carries a short machine code and a human-readable message that is
safe to show to the Discord user. Backend details (paths, bucket names,
boto errors) go into `details` and are only ever logged.
"""
from typing import Optional


class VerificationError(Exception):
    """Base exception for all verification errors."""

    code = "verification_error"

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidInput(VerificationError):
    """Malformed domain, email or code."""

    code = "invalid_input"


class InvalidEmail(InvalidInput):
    code = "invalid_email"


class DomainNotAllowed(VerificationError):
    code = "domain_not_allowed"

    def __init__(self, message: str, allowed_domains: list, details: Optional[dict] = None) -> None:
        self.allowed_domains = allowed_domains
        super().__init__(message, details)


class VerificationCapReached(VerificationError):
    code = "verification_cap_reached"

    def __init__(self, message: str, count: int, max_allowed: int) -> None:
        self.count = count
        self.max_allowed = max_allowed
        super().__init__(message, {"count": count, "max_allowed": max_allowed})


class ThrottledError(VerificationError):
    """Raised when a new code is requested inside the throttle window."""

    code = "throttled"

    def __init__(self, message: str, seconds_remaining: int, time_left: str) -> None:
        self.seconds_remaining = seconds_remaining
        self.time_left = time_left
        super().__init__(message, {"seconds_remaining": seconds_remaining})


class NoPendingRequest(VerificationError):
    code = "no_pending_request"


class CodeExpired(VerificationError):
    code = "code_expired"


class TooManyAttempts(VerificationError):
    code = "too_many_attempts"


class CodeMismatch(VerificationError):
    code = "code_mismatch"

    def __init__(self, message: str, attempts_remaining: int) -> None:
        self.attempts_remaining = attempts_remaining
        super().__init__(message, {"attempts_remaining": attempts_remaining})


class StorageUnavailable(VerificationError):
    """Raised when a backend cannot be read."""

    code = "storage_unavailable"


class PersistenceError(VerificationError):
    """Raised when a backend write fails."""

    code = "persistence_error"


class LastDomainError(VerificationError):
    code = "last_domain"


class NotFoundError(VerificationError):
    code = "not_found"


class DeliveryFailed(VerificationError):
    """Raised when the email sink reports failure."""

    code = "delivery_failed"
