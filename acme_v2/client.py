"""
RFC 8555 transport: signed POSTs against an ACME directory.

The client holds no account state (only the cached directory).  Every signed call takes the account key,
the account URL (``kid``, empty for newAccount) and a nonce, and returns an
``AcmeResponse`` carrying the next nonce from the ``Replay-Nonce`` header.
Nonce bookkeeping and polling live in ``acme_v2.capability.AcmeV2Capability``.

A ``badNonce`` problem is retried transparently with the nonce the server
sent alongside the error (or a freshly fetched one).
"""
from __future__ import annotations

import base64
import logging
from typing import NamedTuple, Optional

import requests
from josepy.jwk import JWKRSA

from acme_v2 import jws as jwslib

logger = logging.getLogger(__name__)

_NONCE_RETRIES = 3
PEM_CHAIN = "application/pem-certificate-chain"


class AcmeError(Exception):
    """The ACME server answered with a problem document (or no usable answer)."""

    def __init__(self, status_code: int, body: dict, new_nonce: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.new_nonce = new_nonce
        problem = body.get("type", "unknown")
        detail = body.get("detail", str(body))
        super().__init__(f"ACME {status_code}: {problem}: {detail}")


class AcmeResponse(NamedTuple):
    status_code: int
    body: dict
    text: str
    location: str
    nonce: str


def _to_response(resp: requests.Response) -> AcmeResponse:
    is_json = "json" in resp.headers.get("Content-Type", "")
    return AcmeResponse(
        status_code=resp.status_code,
        body=resp.json() if is_json and resp.content else {},
        text=resp.text,
        location=resp.headers.get("Location", ""),
        nonce=resp.headers.get("Replay-Nonce", ""),
    )


class AcmeClient:
    """Talks to one ACME directory (Let's Encrypt, ZeroSSL, Pebble, ...)."""

    def __init__(
        self,
        directory_url: str,
        timeout: float = 30,
        ca_bundle: str = "",
        insecure: bool = False,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.directory_url = directory_url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "cdn-cert-renewer/1.0"})
        self._directory: Optional[dict] = None

        if insecure:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self._session.verify = False
        elif ca_bundle:
            self._session.verify = ca_bundle

    def get_directory(self) -> dict:
        """GET the directory once and cache it for the client's lifetime."""
        if self._directory is None:
            resp = self._session.get(self.directory_url, timeout=self.timeout)
            resp.raise_for_status()
            self._directory = resp.json()
        return self._directory

    def get_nonce(self) -> str:
        """HEAD newNonce."""
        resp = self._session.head(self.get_directory()["newNonce"], timeout=self.timeout)
        nonce = resp.headers.get("Replay-Nonce")
        if not nonce:
            raise AcmeError(resp.status_code, {"detail": "No Replay-Nonce header"})
        return nonce

    # ── Resources ─────────────────────────────────────────────────────────

    def new_account(
        self,
        account_key: JWKRSA,
        nonce: str,
        contact_email: str = "",
        eab_key_id: str = "",
        eab_hmac_key: str = "",
    ) -> AcmeResponse:
        """Register *account_key*; the account URL comes back in ``location``."""
        url = self.get_directory()["newAccount"]
        payload: dict = {"termsOfServiceAgreed": True}
        if contact_email:
            payload["contact"] = [f"mailto:{contact_email}"]
        if eab_key_id and eab_hmac_key:
            payload["externalAccountBinding"] = jwslib.create_eab_jws(
                account_key, eab_key_id, eab_hmac_key, url
            )
        return self.post(url, payload, account_key, "", nonce)

    def new_order(self, domains: list[str], account_key: JWKRSA, kid: str, nonce: str) -> AcmeResponse:
        """Create an order; the order URL comes back in ``location``."""
        payload = {"identifiers": [{"type": "dns", "value": d} for d in domains]}
        return self.post(self.get_directory()["newOrder"], payload, account_key, kid, nonce)

    def answer_challenge(self, challenge_url: str, account_key: JWKRSA, kid: str, nonce: str) -> AcmeResponse:
        """POST ``{}`` to a challenge URL: the CA starts validating."""
        return self.post(challenge_url, {}, account_key, kid, nonce)

    def finalize(self, finalize_url: str, csr_der: bytes, account_key: JWKRSA, kid: str, nonce: str) -> AcmeResponse:
        csr = base64.urlsafe_b64encode(csr_der).rstrip(b"=").decode()
        return self.post(finalize_url, {"csr": csr}, account_key, kid, nonce)

    def post_as_get(
        self,
        url: str,
        account_key: JWKRSA,
        kid: str,
        nonce: str,
        accept: str = "application/json",
    ) -> AcmeResponse:
        """Fetch an order, authorization or certificate (RFC 8555 §6.3)."""
        return self.post(url, None, account_key, kid, nonce, accept=accept)

    # ── Signed POST ───────────────────────────────────────────────────────

    def post(
        self,
        url: str,
        payload: Optional[dict],
        account_key: JWKRSA,
        kid: str,
        nonce: str,
        accept: str = "application/json",
    ) -> AcmeResponse:
        """Sign and POST *payload*; ``None`` is POST-as-GET."""
        for attempt in range(1, _NONCE_RETRIES + 1):
            body = jwslib.sign_request(payload, account_key, nonce, url, kid or None)
            resp = self._session.post(
                url,
                json=body,
                headers={"Content-Type": "application/jose+json", "Accept": accept},
                timeout=self.timeout,
            )
            if resp.ok:
                return _to_response(resp)

            try:
                problem = resp.json()
            except ValueError:
                problem = {"detail": resp.text}
            fresh = resp.headers.get("Replay-Nonce", "")

            if problem.get("type", "").endswith(":badNonce") and attempt < _NONCE_RETRIES:
                logger.debug("badNonce from %s, retrying (%d/%d)", url, attempt, _NONCE_RETRIES)
                nonce = fresh or self.get_nonce()
                continue
            raise AcmeError(resp.status_code, problem, fresh)
