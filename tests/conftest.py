"""
Shared pytest fixtures and in-memory fakes.

FakeDnsProvider  — a TXT record store with optional injected failures.
FakeAcme         — an AcmeCapability that records every call.
ScriptedResolver — returns a scripted answer list per poll.
RecordingSleep   — stands in for time.sleep and remembers the delays.

No network access and no real sleeping anywhere in the suite.
"""
from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Optional

import pytest

from acme_v2.capability import AcmeCapability
from config import Settings
from dns_providers.base import DnsProvider, TxtRecord
from renewal.errors import ProviderAPIError


# ─── DNS provider ─────────────────────────────────────────────────────────────


class FakeDnsProvider(DnsProvider):
    name = "fake-dns"

    def __init__(self) -> None:
        self.records: dict[str, TxtRecord] = {}
        self.calls: list[tuple] = []
        self.fail_list: Optional[str] = None
        self.fail_delete: Optional[str] = None
        self.fail_create: Optional[str] = None
        self._ids = itertools.count(1)

    def seed(self, name: str, content: str) -> TxtRecord:
        record = TxtRecord(id=f"rec-{next(self._ids)}", name=name, content=content)
        self.records[record.id] = record
        return record

    def records_at(self, name: str) -> list[TxtRecord]:
        return [r for r in self.records.values() if r.name == name]

    def list_txt_records(self, name: str) -> list[TxtRecord]:
        self.calls.append(("list", name))
        if self.fail_list:
            raise ProviderAPIError(self.name, "list records", self.fail_list)
        return self.records_at(name)

    def delete_record(self, record_id: str) -> None:
        self.calls.append(("delete", record_id))
        if self.fail_delete:
            raise ProviderAPIError(self.name, "delete record", self.fail_delete)
        self.records.pop(record_id, None)

    def create_txt_record(self, name, content, ttl=120, proxied=False, comment=""):
        self.calls.append(("create", name, content, ttl, proxied, comment))
        if self.fail_create:
            raise ProviderAPIError(self.name, "create record", self.fail_create)
        return self.seed(name, content)


# ─── ACME capability ──────────────────────────────────────────────────────────


FAKE_CHAIN = "-----BEGIN CERTIFICATE-----\nMIIFAKE\n-----END CERTIFICATE-----\n"


class FakeAcme(AcmeCapability):
    """Single-identifier CA that hands out one dns-01 challenge per domain."""

    def __init__(self, challenge_types=("http-01", "dns-01"), authz_status: str = "pending") -> None:
        self.challenge_types = challenge_types
        self.authz_status = authz_status
        self.calls: list[str] = []
        self.verify_failures = 0
        self.verify_calls = 0
        self.csr_der: Optional[bytes] = None

    def create_order(self, domains):
        self.calls.append("create_order")
        return {
            "url": "https://ca.test/order/1",
            "status": "pending",
            "identifiers": [{"type": "dns", "value": d} for d in domains],
            "authorizations": [f"https://ca.test/authz/{d}" for d in domains],
            "finalize": "https://ca.test/order/1/finalize",
        }

    def get_authorizations(self, order):
        self.calls.append("get_authorizations")
        return [
            {
                "url": url,
                "status": self.authz_status,
                "identifier": ident,
                "challenges": [
                    {"type": t, "url": f"{url}/{t}", "token": f"tok-{t}-{ident['value']}"}
                    for t in self.challenge_types
                ],
            }
            for url, ident in zip(order["authorizations"], order["identifiers"])
        ]

    def get_challenge_key_authorization(self, challenge):
        return f"{challenge['token']}.thumbprint"

    def verify_challenge(self, authorization, challenge):
        self.calls.append("verify_challenge")
        self.verify_calls += 1
        if self.verify_calls <= self.verify_failures:
            raise RuntimeError(f"TXT not found (verify call {self.verify_calls})")

    def complete_challenge(self, challenge):
        self.calls.append("complete_challenge")
        return {"status": "processing"}

    def wait_for_valid_status(self, order):
        self.calls.append("wait_for_valid_status")
        return {**order, "status": "ready"}

    def finalize_order(self, order, csr_der):
        self.calls.append("finalize_order")
        self.csr_der = csr_der
        return {**order, "status": "valid", "certificate": "https://ca.test/cert/1"}

    def get_certificate(self, order):
        self.calls.append("get_certificate")
        return FAKE_CHAIN


# ─── Resolver / sleep ─────────────────────────────────────────────────────────


class ScriptedResolver:
    """query_txt returns script[i] on the i-th poll (last entry repeats).

    An Exception instance in the script is raised instead of returned.
    """

    def __init__(self, script: list) -> None:
        self.script = script
        self.queries: list[str] = []

    def query_txt(self, name: str) -> list[str]:
        self.queries.append(name)
        item = self.script[min(len(self.queries), len(self.script)) - 1]
        if isinstance(item, Exception):
            raise item
        return list(item)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def fake_dns() -> FakeDnsProvider:
    return FakeDnsProvider()


@pytest.fixture()
def fake_acme() -> FakeAcme:
    return FakeAcme()


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


FIXED_MOMENT = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
FIXED_EPOCH_MS = 1704164645678


@pytest.fixture()
def settings() -> Settings:
    """Settings built only from explicit values (environment and .env ignored)."""
    return Settings(
        _env_file=None,
        DOMAIN_NAME="example.com",
        CLOUDFLARE_ZONE_ID="zone123",
        CLOUDFLARE_API_TOKEN="cf-token",
        CDN_ACCESS_KEY_ID="testid",
        CDN_ACCESS_KEY_SECRET="testsecret",
        CDN_CERT_NAME_PREFIX="example-cert",
        TRIGGER_BEARER_TOKEN="s3cret-token",
        ACME_CONTACT_EMAIL="ops@example.com",
    )
