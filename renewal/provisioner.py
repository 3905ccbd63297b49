"""
Single-record TXT provisioning for DNS-01 challenges.

Invariant: at any instant at most one TXT record exists at a challenge name.
The provider cannot filter finer than (name, TXT), so provisioning lists and
deletes every record at the name before creating the new one.  A list failure
is fatal because the invariant can no longer be guaranteed.

Teardown repeats list → delete-all and is best-effort: failures are logged and
swallowed so a cleanup hiccup never masks the run's real outcome.

There is no locking across processes; two concurrent runs for the same domain
race here.  RenewalOrchestrator serializes runs inside one process.
"""
from __future__ import annotations

import logging

from dns_providers.base import DnsProvider, TxtRecord

logger = logging.getLogger(__name__)

CHALLENGE_COMMENT = "ACME DNS-01 challenge"


class DnsRecordProvisioner:
    """Create and remove challenge TXT records, tracking what this run created."""

    def __init__(self, provider: DnsProvider, ttl: int = 120) -> None:
        self.provider = provider
        self.ttl = ttl
        self._provisioned: list[str] = []

    @property
    def provisioned_names(self) -> list[str]:
        """Names provisioned in this run and not yet torn down."""
        return list(self._provisioned)

    def _delete_all(self, name: str) -> int:
        existing = self.provider.list_txt_records(name)
        for record in existing:
            self.provider.delete_record(record.id)
        if existing:
            logger.info("Removed %d existing TXT record(s) at %s", len(existing), name)
        return len(existing)

    def provision(self, name: str, value: str) -> TxtRecord:
        """Replace every TXT record at *name* with exactly one holding *value*."""
        self._delete_all(name)
        # Track before create: a create that fails server-side may still leave a record.
        if name not in self._provisioned:
            self._provisioned.append(name)
        record = self.provider.create_txt_record(
            name,
            value,
            ttl=self.ttl,
            proxied=False,
            comment=CHALLENGE_COMMENT,
        )
        logger.info("Provisioned TXT %s (ttl=%ds)", name, self.ttl)
        return record

    def teardown(self, name: str) -> bool:
        """Remove every TXT record at *name*.  Returns False if cleanup failed."""
        try:
            self._delete_all(name)
        except Exception as exc:
            logger.warning("Failed to clean up TXT records at %s: %s", name, exc)
            return False
        if name in self._provisioned:
            self._provisioned.remove(name)
        return True

    def teardown_all(self) -> list[str]:
        """Best-effort teardown of every name provisioned in this run.

        Returns the names that could not be cleaned up.
        """
        return [name for name in self.provisioned_names if not self.teardown(name)]
