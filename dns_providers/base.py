"""
DNS-01 record helpers and the DNS provider interface.

DNS-01 protocol (RFC 8555 §8.4):
  1. key_authorization = token + "." + jwk_thumbprint
  2. TXT record value  = base64url(SHA-256(key_authorization))
  3. DNS name          = _acme-challenge.{domain}

A provider only exposes raw record CRUD.  The single-record discipline
(list → delete all → create one) lives in renewal/provisioner.py, because the
provider APIs cannot filter finer than (name, type).
"""
from __future__ import annotations

import base64
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass


def compute_dns_txt_value(key_authorization: str) -> str:
    """Return base64url(SHA-256(key_authorization)) with no padding."""
    digest = hashlib.sha256(key_authorization.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def challenge_record_name(domain: str) -> str:
    """Return the _acme-challenge DNS name for *domain* (wildcards use the base name)."""
    if domain.startswith("*."):
        domain = domain[2:]
    return f"_acme-challenge.{domain}"


@dataclass(frozen=True)
class TxtRecord:
    id: str
    name: str
    content: str


class DnsProvider(ABC):
    """Abstract base for TXT record CRUD in a single zone.

    Every method raises ProviderAPIError when the provider reports a failure.
    """

    name = "dns"

    @abstractmethod
    def list_txt_records(self, name: str) -> list[TxtRecord]:
        """Return every TXT record whose name equals *name*."""

    @abstractmethod
    def delete_record(self, record_id: str) -> None:
        """Delete one record by provider id."""

    @abstractmethod
    def create_txt_record(
        self,
        name: str,
        content: str,
        ttl: int = 120,
        proxied: bool = False,
        comment: str = "",
    ) -> TxtRecord:
        """Create one TXT record and return it."""
