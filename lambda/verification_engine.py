"""
Email verification state machine.

Per user: NONE -> PENDING -> VERIFIED | EXPIRED | EXHAUSTED.

Pending verifications live in an injectable PendingStore owned by the engine.
The durable stores (DomainRegistry, CodeStore) are the source of truth for the
allow-list and for redemptions; pending entries do not survive a restart.

The per-email cap is best-effort: count_for_email() and move_to_used() are not
one transaction, so two users redeeming two different codes for the same email
at the same moment can both succeed and exceed the cap by one.
"""
import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from code_store import CodeStore, ResetOutcome
from config import VerificationConfig
from domain_registry import DomainRegistry
from errors import (
    CodeExpired,
    CodeMismatch,
    DeliveryFailed,
    DomainNotAllowed,
    InvalidEmail,
    InvalidInput,
    NoPendingRequest,
    NotFoundError,
    PersistenceError,
    ThrottledError,
    TooManyAttempts,
    VerificationCapReached,
)
from logging_utils import log_email_event, log_safe
from verification_logic import format_time_left, generate_code, normalize_code, normalize_email


@dataclass
class PendingVerification:
    email: str
    code: str
    created_at: datetime
    attempts: int = 0


class InMemoryPendingStore:
    """Pending verifications keyed by user id. One entry per user."""

    def __init__(self):
        self._entries: Dict[str, PendingVerification] = {}

    def get(self, user_id: str) -> Optional[PendingVerification]:
        return self._entries.get(user_id)

    def set(self, user_id: str, entry: PendingVerification) -> None:
        self._entries[user_id] = entry

    def delete(self, user_id: str) -> bool:
        return self._entries.pop(user_id, None) is not None

    def items(self) -> Iterator[Tuple[str, PendingVerification]]:
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries


class StartStatus(Enum):
    CODE_SENT = 'code_sent'
    ALREADY_VERIFIED = 'already_verified'


@dataclass(frozen=True)
class StartResult:
    status: StartStatus
    email: Optional[str] = None
    expires_in_minutes: Optional[int] = None


@dataclass(frozen=True)
class VerifiedSuccess:
    user_id: str
    email: str


EmailSender = Callable[[str, str], bool]
VerifiedHook = Callable[[VerifiedSuccess], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationEngine:
    """Issues codes, enforces limits and redeems codes."""

    def __init__(
        self,
        domain_registry: DomainRegistry,
        code_store: CodeStore,
        send_email: EmailSender,
        config: Optional[VerificationConfig] = None,
        pending_store: Optional[InMemoryPendingStore] = None,
        clock: Callable[[], datetime] = _utcnow,
        on_verified: Optional[List[VerifiedHook]] = None
    ):
        self.domains = domain_registry
        self.codes = code_store
        self.send_email = send_email
        self.config = config or VerificationConfig()
        self.pending = pending_store if pending_store is not None else InMemoryPendingStore()
        self.clock = clock
        self.on_verified = list(on_verified or [])

    @property
    def throttle_window(self) -> timedelta:
        return timedelta(minutes=self.config.throttle_minutes)

    @property
    def expiration_window(self) -> timedelta:
        return timedelta(minutes=self.config.code_expiration_minutes)

    def get_pending(self, user_id: str) -> Optional[PendingVerification]:
        return self.pending.get(user_id)

    def start_verification(self, user_id: str, email: str,
                           already_verified: bool = False) -> StartResult:
        """
        Validate a request and email a fresh code.

        Args:
            user_id: Discord user ID
            email: Email address as typed by the user
            already_verified: True if the member already has access

        Returns:
            StartResult

        Raises:
            InvalidEmail, DomainNotAllowed, VerificationCapReached,
            ThrottledError, DeliveryFailed, StorageUnavailable
        """
        if already_verified:
            return StartResult(status=StartStatus.ALREADY_VERIFIED)

        email = normalize_email(email)
        if not email:
            raise InvalidEmail("Please provide a valid email address.")

        if not self.domains.is_allowed(email):
            allowed = sorted(self.domains.list())
            raise DomainNotAllowed(
                f"Sorry, we only accept email addresses from these domains: {', '.join(allowed)}. "
                "Please use your educational email address.",
                allowed_domains=allowed
            )

        max_allowed = self.config.max_verifications_per_email
        count = self.codes.count_for_email(email)
        if count >= max_allowed:
            raise VerificationCapReached(
                f"This email has reached the maximum of {max_allowed} verifications.",
                count=count,
                max_allowed=max_allowed
            )

        now = self.clock()
        existing = self.pending.get(user_id)
        if existing:
            elapsed = now - existing.created_at
            if elapsed < self.throttle_window:
                seconds_remaining = math.ceil((self.throttle_window - elapsed).total_seconds())
                time_left = format_time_left(seconds_remaining)
                raise ThrottledError(
                    f"You recently requested a verification code. "
                    f"Please wait {time_left} before requesting a new one.",
                    seconds_remaining=seconds_remaining,
                    time_left=time_left
                )

        code = generate_code(self.config.code_length)
        self.pending.set(user_id, PendingVerification(email=email, code=code, created_at=now))

        if not self.send_email(email, code):
            self.pending.delete(user_id)
            raise DeliveryFailed(
                "There was an error sending the verification email. "
                "Please try again later or contact a server admin for assistance."
            )

        # Audit only codes that were actually delivered
        if not self.codes.save_pending(user_id, email, code, created_at=now):
            log_safe("WARNING: Pending code audit record not saved", {'user_id': user_id})

        log_email_event("code issued", email, True)
        return StartResult(
            status=StartStatus.CODE_SENT,
            email=email,
            expires_in_minutes=self.config.code_expiration_minutes
        )

    def submit_code(self, user_id: str, submitted_code: str) -> VerifiedSuccess:
        """
        Redeem a code.

        Returns:
            VerifiedSuccess with the verified email

        Raises:
            InvalidInput, NoPendingRequest, CodeExpired, TooManyAttempts,
            CodeMismatch, PersistenceError
        """
        submitted = normalize_code(submitted_code)
        if not submitted:
            raise InvalidInput("Please provide the verification code from your email.")

        entry = self.pending.get(user_id)
        if not entry:
            raise NoPendingRequest(
                "I don't see any pending verification for you. "
                "Please use /verify first to request a verification code."
            )

        if self.clock() - entry.created_at > self.expiration_window:
            self.pending.delete(user_id)
            raise CodeExpired(
                "Your verification code has expired. Please use /verify again to request a new code."
            )

        entry = replace(entry, attempts=entry.attempts + 1)
        self.pending.set(user_id, entry)
        max_attempts = self.config.max_attempts

        if entry.attempts > max_attempts:
            self.pending.delete(user_id)
            raise TooManyAttempts(
                "You've made too many incorrect attempts. Please use /verify again to request a new code."
            )

        if submitted != entry.code:
            raise CodeMismatch(
                "That code doesn't match what we sent you.",
                attempts_remaining=max_attempts - entry.attempts
            )

        try:
            self.codes.move_to_used(user_id, entry.email, entry.code, consumed_at=self.clock())
        except PersistenceError:
            # Keep the entry so the user can resubmit the same correct code
            self.pending.set(user_id, replace(entry, attempts=entry.attempts - 1))
            raise

        self.pending.delete(user_id)
        log_email_event("verified", entry.email, True)

        result = VerifiedSuccess(user_id=user_id, email=entry.email)
        self._run_verified_hooks(result)
        return result

    def _run_verified_hooks(self, result: VerifiedSuccess) -> None:
        for hook in self.on_verified:
            try:
                hook(result)
            except Exception as e:
                print(f"ERROR: Post-verification hook {getattr(hook, '__name__', hook)!r} failed: {e}")

    def add_domain(self, domain: str) -> bool:
        return self.domains.add(domain)

    def remove_domain(self, domain: str) -> bool:
        return self.domains.remove(domain)

    def list_domains(self) -> List[str]:
        return sorted(self.domains.list())

    def check_email(self, email: str) -> dict:
        """
        Read-only verification status for an email.

        Returns:
            Dict with email, count, max_allowed, backend and domain_allowed
        """
        email = normalize_email(email)
        if not email:
            raise InvalidEmail("Please provide an email address to check.")

        return {
            'email': email,
            'count': self.codes.count_for_email(email),
            'max_allowed': self.config.max_verifications_per_email,
            'backend': self.codes.info()['used_codes']['backend'],
            'domain_allowed': self.domains.is_allowed(email)
        }

    def reset_email(self, email: str) -> ResetOutcome:
        """
        Remove all records for an email and any in-memory pending entries.

        Raises:
            InvalidEmail: If the email is blank
            NotFoundError: If nothing existed for the email
        """
        email = normalize_email(email)
        if not email:
            raise InvalidEmail("Please provide an email address to reset.")

        cleared = 0
        for user_id, entry in self.pending.items():
            if entry.email == email:
                self.pending.delete(user_id)
                cleared += 1

        try:
            outcome = self.codes.reset(email)
        except NotFoundError:
            if not cleared:
                raise
            return ResetOutcome(success=True, deleted_count=0, cleared_pending=cleared)

        return replace(outcome, cleared_pending=cleared)

    def storage_info(self) -> dict:
        info = {'domains': self.domains.backend.describe()}
        info.update(self.codes.info())
        return info
