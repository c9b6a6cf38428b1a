"""
Pending and used verification code records.

Pending codes are an audit copy keyed by user; the authoritative pending state
is held by the verification engine. Used codes are append-only, grouped by
email, and are the only input to the per-email verification cap.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from errors import NotFoundError, VerificationError
from logging_utils import log_storage_error
from storage_backends import StorageBackend, key_part


PENDING_PREFIX = 'pending_codes/'
USED_PREFIX = 'used_codes/'


@dataclass(frozen=True)
class ResetOutcome:
    success: bool
    deleted_count: int
    cleared_pending: int = 0


class CodeStore:
    """Persists pending/used code records over one backend per record class."""

    def __init__(self, pending_backend: StorageBackend, used_backend: StorageBackend):
        self.pending_backend = pending_backend
        self.used_backend = used_backend

    @staticmethod
    def pending_key(user_id: str) -> str:
        return f"{PENDING_PREFIX}{key_part(user_id)}.json"

    @staticmethod
    def used_prefix(email: str) -> str:
        return f"{USED_PREFIX}{key_part(email)}/"

    def save_pending(self, user_id: str, email: str, code: str,
                     created_at: Optional[datetime] = None) -> bool:
        """
        Write the audit copy of a pending code.

        Failures are logged and reported through the return value only, so
        that a storage outage never blocks sending the code.

        Returns:
            True if saved, False otherwise
        """
        created_at = created_at or datetime.now(timezone.utc)
        try:
            self.pending_backend.write_json(self.pending_key(user_id), {
                'user_id': user_id,
                'email': email,
                'code': code,
                'created_at': created_at.isoformat()
            })
            return True
        except VerificationError as e:
            log_storage_error('save_pending', self.pending_backend.name, e)
            return False

    def get_pending(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Read the audit copy of a user's pending code, if any."""
        return self.pending_backend.read_json(self.pending_key(user_id))

    def move_to_used(self, user_id: str, email: str, code: str,
                     consumed_at: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Record a redeemed code.

        Each redemption gets its own object, so concurrent writes never
        overwrite each other. The pending audit copy is removed afterwards on
        a best-effort basis.

        Returns:
            The UsedCodeRecord that was written

        Raises:
            PersistenceError: If the used-code record cannot be written
        """
        consumed_at = consumed_at or datetime.now(timezone.utc)
        record = {
            'email': email,
            'code': code,
            'user_id': user_id,
            'consumed_at': consumed_at.isoformat()
        }
        stamp = consumed_at.strftime('%Y%m%dT%H%M%S%fZ')
        key = f"{self.used_prefix(email)}{stamp}_{key_part(user_id)}_{uuid.uuid4().hex[:8]}.json"

        self.used_backend.write_json(key, record)

        try:
            self.pending_backend.delete(self.pending_key(user_id))
        except VerificationError as e:
            log_storage_error('delete_pending', self.pending_backend.name, e)

        return record

    def count_for_email(self, email: str) -> int:
        """
        Count UsedCodeRecords for an email.

        Raises:
            StorageUnavailable: If the used-codes backend cannot be read
        """
        return len(self.used_backend.list_keys(self.used_prefix(email)))

    def reset(self, email: str) -> ResetOutcome:
        """
        Delete every used-code record and pending audit record for an email.

        Returns:
            ResetOutcome with the number of records deleted

        Raises:
            NotFoundError: If no records exist for the email
            StorageUnavailable: If a backend cannot be read
            PersistenceError: If a delete fails
        """
        used_keys = self.used_backend.list_keys(self.used_prefix(email))

        pending_keys = []
        for key in self.pending_backend.list_keys(PENDING_PREFIX):
            record = self.pending_backend.read_json(key)
            if record and record.get('email') == email:
                pending_keys.append(key)

        if not used_keys and not pending_keys:
            raise NotFoundError("No verification records found for this email.")

        for key in used_keys:
            self.used_backend.delete(key)
        for key in pending_keys:
            self.pending_backend.delete(key)

        deleted = len(used_keys) + len(pending_keys)
        print(f"Reset email records: deleted {deleted} record(s)")
        return ResetOutcome(success=True, deleted_count=deleted)

    def info(self) -> Dict[str, Any]:
        """Backend and location per record class, for diagnostics."""
        return {
            'pending_codes': self.pending_backend.describe(),
            'used_codes': self.used_backend.describe()
        }
