"""
Unit tests for domain_registry module.

Tests allow-list management:
- Seeding defaults
- Adding (normalization, validation, duplicates)
- Removing (missing domains, last-domain protection)
- Email domain checks
- Storage failures
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add lambda directory to path
lambda_dir = Path(__file__).parent.parent.parent / 'lambda'
sys.path.insert(0, str(lambda_dir))

from domain_registry import DOMAINS_KEY, DomainRegistry
from errors import InvalidInput, LastDomainError, NotFoundError, PersistenceError, StorageUnavailable


@pytest.mark.unit
class TestInitialize:

    def test_seeds_defaults_once(self, local_backend):
        registry = DomainRegistry(local_backend)

        assert registry.list() == set()
        assert registry.initialize(['School.edu', 'other.edu']) is True
        assert registry.list() == {'school.edu', 'other.edu'}

        assert registry.initialize(['ignored.edu']) is False
        assert registry.list() == {'school.edu', 'other.edu'}

    def test_invalid_defaults_are_skipped(self, local_backend):
        registry = DomainRegistry(local_backend)
        registry.initialize(['school.edu', 'nodot', '.bad.edu'])

        assert registry.list() == {'school.edu'}

    def test_requires_a_valid_default(self, local_backend):
        with pytest.raises(InvalidInput):
            DomainRegistry(local_backend).initialize(['nodot'])

    def test_persisted_as_single_record(self, registry, local_backend):
        record = local_backend.read_json(DOMAINS_KEY)

        assert record['domains'] == ['school.edu']
        assert 'updated_at' in record


@pytest.mark.unit
class TestAddDomain:

    def test_add_normalizes(self, registry):
        assert registry.add('  University.EDU ') is True
        assert registry.list() == {'school.edu', 'university.edu'}

    def test_duplicate_is_noop_success(self, registry):
        assert registry.add('SCHOOL.edu') is False
        assert registry.list() == {'school.edu'}

    @pytest.mark.parametrize('domain', ['', 'nodot', '.school.edu', 'school.edu.', 'bad domain.edu', 'a..b'])
    def test_malformed_rejected(self, registry, domain):
        with pytest.raises(InvalidInput):
            registry.add(domain)

        assert registry.list() == {'school.edu'}

    def test_write_failure_keeps_previous_set(self, registry):
        with patch.object(registry.backend, 'write_json', side_effect=PersistenceError("disk full")):
            with pytest.raises(PersistenceError):
                registry.add('other.edu')

        assert registry.list() == {'school.edu'}


@pytest.mark.unit
class TestRemoveDomain:

    def test_remove(self, registry):
        registry.add('other.edu')

        assert registry.remove(' OTHER.edu') is True
        assert registry.list() == {'school.edu'}

    def test_remove_last_domain_rejected(self, registry):
        with pytest.raises(LastDomainError):
            registry.remove('school.edu')

        assert registry.list() == {'school.edu'}

    def test_remove_missing_domain(self, registry):
        with pytest.raises(NotFoundError):
            registry.remove('missing.edu')


@pytest.mark.unit
class TestIsAllowed:

    @pytest.mark.parametrize('email,expected', [
        ('a@school.edu', True),
        ('A@SCHOOL.EDU', True),
        ('a@other.edu', False),
        ('a@sub.school.edu', False),
        ('school.edu', False),
        ('', False),
        ('a@', False),
    ])
    def test_is_allowed(self, registry, email, expected):
        assert registry.is_allowed(email) is expected

    def test_read_failure_propagates(self):
        backend = MagicMock()
        backend.read_json.side_effect = StorageUnavailable("down")

        with pytest.raises(StorageUnavailable):
            DomainRegistry(backend).is_allowed('a@school.edu')


@pytest.mark.unit
def test_registry_on_s3(s3_backends):
    """The registry works unchanged over S3."""
    registry = DomainRegistry(s3_backends[0])
    registry.initialize(['school.edu'])
    registry.add('other.edu')

    assert DomainRegistry(s3_backends[0]).list() == {'school.edu', 'other.edu'}
