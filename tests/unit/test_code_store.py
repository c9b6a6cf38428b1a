"""
Unit tests for code_store module.

Tests pending and used code records:
- Pending audit writes (best-effort)
- Used-code appends and per-email counts
- Admin reset
- Backend diagnostics
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timezone
from unittest.mock import patch
from freezegun import freeze_time

# Add lambda directory to path
lambda_dir = Path(__file__).parent.parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))

from code_store import CodeStore, PENDING_PREFIX
from errors import NotFoundError, PersistenceError


@pytest.fixture(params=['local', 's3'])
def store(request, local_backend):
    """Each test runs against local and S3 backends."""
    if request.param == 'local':
        return CodeStore(local_backend, local_backend)
    pending_backend, used_backend = request.getfixturevalue('s3_backends')
    return CodeStore(pending_backend, used_backend)


@pytest.mark.unit
class TestSavePending:

    @freeze_time("2025-01-15 10:00:00")
    def test_save_pending_writes_audit_record(self, store):
        assert store.save_pending('u1', 'a@school.edu', 'ABCD1234') is True

        assert store.get_pending('u1') == {
            'user_id': 'u1',
            'email': 'a@school.edu',
            'code': 'ABCD1234',
            'created_at': '2025-01-15T10:00:00+00:00'
        }

    def test_save_pending_overwrites_per_user(self, store):
        store.save_pending('u1', 'a@school.edu', 'AAAA1111')
        store.save_pending('u1', 'a@school.edu', 'BBBB2222')

        assert store.get_pending('u1')['code'] == 'BBBB2222'
        assert len(store.pending_backend.list_keys(PENDING_PREFIX)) == 1

    def test_save_pending_failure_returns_false(self, store):
        with patch.object(store.pending_backend, 'write_json',
                          side_effect=PersistenceError("Failed to save data.")):
            assert store.save_pending('u1', 'a@school.edu', 'ABCD1234') is False


@pytest.mark.unit
class TestMoveToUsed:

    @freeze_time("2025-01-15 10:05:00")
    def test_move_to_used_returns_record(self, store):
        record = store.move_to_used('u1', 'a@school.edu', 'ABCD1234')

        assert record == {
            'email': 'a@school.edu',
            'code': 'ABCD1234',
            'user_id': 'u1',
            'consumed_at': '2025-01-15T10:05:00+00:00'
        }

    def test_count_reflects_each_redemption(self, store):
        assert store.count_for_email('a@school.edu') == 0

        store.move_to_used('u1', 'a@school.edu', 'AAAA1111')
        assert store.count_for_email('a@school.edu') == 1

        store.move_to_used('u2', 'a@school.edu', 'BBBB2222')
        assert store.count_for_email('a@school.edu') == 2
        assert store.count_for_email('b@school.edu') == 0

    def test_same_instant_redemptions_do_not_collide(self, store):
        consumed_at = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)
        store.move_to_used('u1', 'a@school.edu', 'AAAA1111', consumed_at=consumed_at)
        store.move_to_used('u1', 'a@school.edu', 'AAAA1111', consumed_at=consumed_at)

        assert store.count_for_email('a@school.edu') == 2

    def test_move_to_used_removes_pending_audit(self, store):
        store.save_pending('u1', 'a@school.edu', 'ABCD1234')
        store.move_to_used('u1', 'a@school.edu', 'ABCD1234')

        assert store.get_pending('u1') is None

    def test_used_write_failure_raises(self, store):
        store.save_pending('u1', 'a@school.edu', 'ABCD1234')

        with patch.object(store.used_backend, 'write_json',
                          side_effect=PersistenceError("Failed to save data.")):
            with pytest.raises(PersistenceError):
                store.move_to_used('u1', 'a@school.edu', 'ABCD1234')

        assert store.count_for_email('a@school.edu') == 0
        assert store.get_pending('u1') is not None

    def test_pending_cleanup_failure_is_not_fatal(self, store):
        with patch.object(store.pending_backend, 'delete',
                          side_effect=PersistenceError("Failed to delete data.")):
            store.move_to_used('u1', 'a@school.edu', 'ABCD1234')

        assert store.count_for_email('a@school.edu') == 1


@pytest.mark.unit
class TestReset:

    def test_reset_deletes_used_and_pending(self, store):
        store.move_to_used('u1', 'a@school.edu', 'AAAA1111')
        store.move_to_used('u2', 'a@school.edu', 'BBBB2222')
        store.save_pending('u3', 'a@school.edu', 'CCCC3333')
        store.save_pending('u4', 'b@school.edu', 'DDDD4444')

        outcome = store.reset('a@school.edu')

        assert outcome.success is True
        assert outcome.deleted_count == 3
        assert store.count_for_email('a@school.edu') == 0
        assert store.get_pending('u3') is None
        assert store.get_pending('u4') is not None

    def test_reset_unknown_email_raises(self, store):
        store.move_to_used('u1', 'b@school.edu', 'AAAA1111')

        with pytest.raises(NotFoundError):
            store.reset('a@school.edu')

        assert store.count_for_email('b@school.edu') == 1


@pytest.mark.unit
class TestInfo:

    def test_local_info(self, local_backend):
        info = CodeStore(local_backend, local_backend).info()

        assert info['pending_codes']['backend'] == 'Local'
        assert info['used_codes']['backend'] == 'Local'

    def test_mixed_backends(self, local_backend, s3_backends):
        info = CodeStore(local_backend, s3_backends[1]).info()

        assert info['pending_codes']['backend'] == 'Local'
        assert info['used_codes'] == {
            'backend': 'S3',
            'location': 's3://verification-bot-used-codes'
        }
