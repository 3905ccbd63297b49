"""
ACME capability: the only ACME surface the renewal orchestrator depends on.

``AcmeCapability`` lists the eight operations a renewal needs.  The concrete
``AcmeV2Capability`` implements them on top of ``AcmeClient`` and owns the
per-run protocol state the stateless client does not: the in-memory account
key, the account URL (kid), the current nonce and order polling.

Order / authorization / challenge values are the server's JSON objects with
their own URL added under ``"url"``.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from josepy.jwk import JWKRSA

from acme_v2 import jws as jwslib
from acme_v2.client import PEM_CHAIN, AcmeClient, AcmeError, AcmeResponse
from dns_providers.base import challenge_record_name, compute_dns_txt_value

logger = logging.getLogger(__name__)

TxtLookup = Callable[[str], list]


class ChallengeVerificationError(Exception):
    """The local pre-check could not observe the challenge response."""


class AcmeCapability(ABC):
    """What the orchestrator needs from an ACME CA."""

    @abstractmethod
    def create_order(self, domains: list[str]) -> dict:
        """Create an order for *domains* and return it."""

    @abstractmethod
    def get_authorizations(self, order: dict) -> list[dict]:
        """Return the authorization objects of *order*."""

    @abstractmethod
    def get_challenge_key_authorization(self, challenge: dict) -> str:
        """Return ``token.thumbprint`` for *challenge*."""

    @abstractmethod
    def verify_challenge(self, authorization: dict, challenge: dict) -> None:
        """Check locally that the challenge response is published; raise if not."""

    @abstractmethod
    def complete_challenge(self, challenge: dict) -> dict:
        """Tell the CA the challenge is ready to be validated."""

    @abstractmethod
    def wait_for_valid_status(self, order: dict) -> dict:
        """Block until the CA has validated every authorization of *order*."""

    @abstractmethod
    def finalize_order(self, order: dict, csr_der: bytes) -> dict:
        """Submit the CSR and return the order once a certificate is available."""

    @abstractmethod
    def get_certificate(self, order: dict) -> str:
        """Download the issued PEM chain."""


class AcmeV2Capability(AcmeCapability):
    """AcmeCapability backed by AcmeClient with a fresh in-memory account."""

    def __init__(
        self,
        client: AcmeClient,
        contact_email: str = "",
        eab_key_id: str = "",
        eab_hmac_key: str = "",
        txt_lookup: Optional[TxtLookup] = None,
        account_key: Optional[JWKRSA] = None,
        poll_interval: float = 3.0,
        max_polls: int = 20,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.contact_email = contact_email
        self.eab_key_id = eab_key_id
        self.eab_hmac_key = eab_hmac_key
        self.txt_lookup = txt_lookup
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.sleep = sleep
        self._account_key = account_key
        self._kid = ""
        self._nonce = ""

    # ── Session state ─────────────────────────────────────────────────────

    def _signed(self, call: Callable[[str], AcmeResponse]) -> AcmeResponse:
        """Run *call* with the next nonce and remember the one it hands back."""
        nonce, self._nonce = self._nonce, ""
        try:
            resp = call(nonce or self.client.get_nonce())
        except AcmeError as exc:
            self._nonce = exc.new_nonce
            raise
        self._nonce = resp.nonce
        return resp

    def _ensure_account(self) -> None:
        if self._kid:
            return
        if self._account_key is None:
            self._account_key = jwslib.generate_account_key()
        resp = self._signed(
            lambda nonce: self.client.new_account(
                self._account_key,
                nonce,
                contact_email=self.contact_email,
                eab_key_id=self.eab_key_id,
                eab_hmac_key=self.eab_hmac_key,
            )
        )
        if not resp.location:
            raise AcmeError(resp.status_code, {"detail": "newAccount returned no account URL"})
        self._kid = resp.location
        logger.info("Registered ACME account %s", self._kid)

    def _get(self, url: str) -> dict:
        return self._signed(
            lambda nonce: self.client.post_as_get(url, self._account_key, self._kid, nonce)
        ).body

    def _poll_order(self, order_url: str, until: tuple[str, ...]) -> dict:
        for poll in range(1, self.max_polls + 1):
            order = self._get(order_url)
            status = order.get("status")
            if status in until:
                return {**order, "url": order_url}
            if status == "invalid":
                raise AcmeError(0, {"type": "invalid", "detail": f"Order {order_url} became invalid: {order.get('error', order)}"})
            logger.debug("Order %s is %s (poll %d/%d)", order_url, status, poll, self.max_polls)
            self.sleep(self.poll_interval)
        raise AcmeError(
            0,
            {"type": "timeout", "detail": f"Order did not reach {'/'.join(until)} after {self.max_polls} polls"},
        )

    # ── Operations ────────────────────────────────────────────────────────

    def create_order(self, domains: list[str]) -> dict:
        self._ensure_account()
        resp = self._signed(
            lambda nonce: self.client.new_order(domains, self._account_key, self._kid, nonce)
        )
        logger.info("Created ACME order %s for %s", resp.location, ", ".join(domains))
        return {**resp.body, "url": resp.location}

    def get_authorizations(self, order: dict) -> list[dict]:
        return [{**self._get(url), "url": url} for url in order.get("authorizations", [])]

    def get_challenge_key_authorization(self, challenge: dict) -> str:
        if self._account_key is None:
            raise RuntimeError("No ACME account key: create an order first")
        return jwslib.compute_key_authorization(challenge["token"], self._account_key)

    def verify_challenge(self, authorization: dict, challenge: dict) -> None:
        if self.txt_lookup is None:
            return
        domain = authorization.get("identifier", {}).get("value", "")
        name = challenge_record_name(domain)
        expected = compute_dns_txt_value(self.get_challenge_key_authorization(challenge))
        answers = [str(a).strip('"') for a in self.txt_lookup(name)]
        if expected not in answers:
            raise ChallengeVerificationError(
                f"Expected TXT value not found at {name} (got {len(answers)} record(s))"
            )
        logger.debug("Local dns-01 check passed for %s", name)

    def complete_challenge(self, challenge: dict) -> dict:
        return self._signed(
            lambda nonce: self.client.answer_challenge(challenge["url"], self._account_key, self._kid, nonce)
        ).body

    def wait_for_valid_status(self, order: dict) -> dict:
        return self._poll_order(order["url"], ("ready", "valid"))

    def finalize_order(self, order: dict, csr_der: bytes) -> dict:
        self._signed(
            lambda nonce: self.client.finalize(order["finalize"], csr_der, self._account_key, self._kid, nonce)
        )
        return self._poll_order(order["url"], ("valid",))

    def get_certificate(self, order: dict) -> str:
        cert_url = order.get("certificate")
        if not cert_url:
            raise ValueError(f"Order {order.get('url', '')} has no certificate URL")
        return self._signed(
            lambda nonce: self.client.post_as_get(cert_url, self._account_key, self._kid, nonce, accept=PEM_CHAIN)
        ).text
