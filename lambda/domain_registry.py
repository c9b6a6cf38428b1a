"""
Allowed email domain registry.
The whole allow-list lives in one record and is overwritten on every change.
"""
from datetime import datetime, timezone
from typing import Iterable, Set

from errors import InvalidInput, LastDomainError, NotFoundError
from storage_backends import StorageBackend
from validation_utils import validate_domain
from verification_logic import extract_domain, normalize_domain


DOMAINS_KEY = 'allowed_domains.json'


class DomainRegistry:
    """Loads and persists the set of allow-listed email domains."""

    def __init__(self, backend: StorageBackend, key: str = DOMAINS_KEY):
        self.backend = backend
        self.key = key

    def list(self) -> Set[str]:
        """
        Get the current allow-list.

        Returns:
            Set of lowercase domains (empty before initialize())

        Raises:
            StorageUnavailable: If the backend cannot be read
        """
        record = self.backend.read_json(self.key)
        if not record:
            return set()
        return {normalize_domain(d) for d in record.get('domains', []) if normalize_domain(d)}

    def _save(self, domains: Iterable[str]) -> None:
        self.backend.write_json(self.key, {
            'domains': sorted(domains),
            'updated_at': datetime.now(timezone.utc).isoformat()
        })

    def initialize(self, default_domains: Iterable[str]) -> bool:
        """
        Seed the allow-list if no record exists yet.

        Args:
            default_domains: Domains to store on first start

        Returns:
            True if the record was created, False if one already existed
        """
        if self.backend.read_json(self.key) is not None:
            return False

        domains = {normalize_domain(d) for d in default_domains if validate_domain(normalize_domain(d))}
        if not domains:
            raise InvalidInput("At least one valid default domain is required.")

        self._save(domains)
        print(f"Initialized allowed domains with {len(domains)} domain(s)")
        return True

    def add(self, domain: str) -> bool:
        """
        Add a domain to the allow-list.

        Args:
            domain: Domain such as "university.edu"

        Returns:
            True if added, False if it was already present

        Raises:
            InvalidInput: If the domain is malformed
            PersistenceError: If the updated set cannot be saved
        """
        domain = normalize_domain(domain)
        if not validate_domain(domain):
            raise InvalidInput(
                'Invalid domain format. Please provide a valid domain like "university.edu".'
            )

        domains = self.list()
        if domain in domains:
            return False

        self._save(domains | {domain})
        print(f"Added allowed domain {domain}")
        return True

    def remove(self, domain: str) -> bool:
        """
        Remove a domain from the allow-list.

        Raises:
            NotFoundError: If the domain is not in the list
            LastDomainError: If it is the only remaining domain
            PersistenceError: If the reduced set cannot be saved
        """
        domain = normalize_domain(domain)
        domains = self.list()

        if domain not in domains:
            raise NotFoundError(f'The domain "{domain}" is not in the allowed list.')

        if len(domains) == 1:
            raise LastDomainError("Cannot remove the last domain. Add another domain first.")

        self._save(domains - {domain})
        print(f"Removed allowed domain {domain}")
        return True

    def is_allowed(self, email: str) -> bool:
        """
        Check whether an email's domain is allow-listed.

        Raises:
            StorageUnavailable: If the backend cannot be read
        """
        domain = extract_domain(email)
        if not domain:
            return False
        return domain in self.list()
