"""
Aliyun CDN certificate upload (SetCdnDomainSSLCertificate).

Signing scheme (RPC-style signature v1.0, reproduced exactly):
  1. Sort parameter keys; join ``enc(key)=enc(value)`` with ``&``.
  2. string_to_sign = ``POST&`` + enc("/") + ``&`` + enc(sorted_params)
  3. Signature = base64(HMAC-SHA1(key=secret + "&", string_to_sign))

``enc`` is ECMAScript encodeURIComponent semantics: UTF-8 percent-encoding with
``A-Z a-z 0-9 - _ . ! ~ * ' ( )`` left as-is.  The provider verifies the exact
bytes, so this is a fixed scheme, not a general-purpose signer.

A JSON response carrying a ``Code`` field is a failure; its absence is success.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

import requests

from renewal.errors import ProviderAPIError
from renewal.state import CDNUploadTransaction, CertificateBundle

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://cdn.aliyuncs.com"
_UNRESERVED = "-_.!~*'()"


def percent_encode(value: str) -> str:
    """encodeURIComponent-compatible percent-encoding."""
    return quote(str(value), safe=_UNRESERVED)


def canonical_query(params: dict[str, str]) -> str:
    """Sorted, encoded ``key=value`` pairs joined by ``&``."""
    return "&".join(
        f"{percent_encode(k)}={percent_encode(params[k])}" for k in sorted(params)
    )


def string_to_sign(params: dict[str, str], method: str = "POST") -> str:
    return f"{method}&{percent_encode('/')}&{percent_encode(canonical_query(params))}"


def sign_parameters(params: dict[str, str], secret: str) -> str:
    """Return the base64 HMAC-SHA1 signature of *params*."""
    mac = hmac.new(
        f"{secret}&".encode("utf-8"),
        string_to_sign(params).encode("utf-8"),
        hashlib.sha1,
    )
    return base64.b64encode(mac.digest()).decode("ascii")


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_nonce() -> str:
    return uuid.uuid4().hex


@dataclass
class AliyunCdnPublisher:
    """Upload a certificate bundle to one CDN domain in a single signed POST."""

    access_key_id: str
    access_key_secret: str
    domain_name: str
    cert_name_prefix: str = "auto-renewed-cert"
    endpoint: str = DEFAULT_ENDPOINT
    region_id: str = ""
    api_version: str = "2018-05-10"
    timeout: float = 30.0
    clock: Callable[[], datetime] = _utcnow
    nonce_factory: Callable[[], str] = _new_nonce
    session: Optional[requests.Session] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()

    def certificate_name(self, moment: datetime) -> str:
        """Base name plus epoch milliseconds, so every upload gets a fresh name."""
        epoch_ms = int(moment.timestamp()) * 1000 + moment.microsecond // 1000
        return f"{self.cert_name_prefix}-{epoch_ms}"

    def build_parameters(self, bundle: CertificateBundle, moment: datetime, nonce: str) -> dict[str, str]:
        params = {
            "Action": "SetCdnDomainSSLCertificate",
            "Format": "JSON",
            "Version": self.api_version,
            "AccessKeyId": self.access_key_id,
            "SignatureMethod": "HMAC-SHA1",
            "Timestamp": format_timestamp(moment),
            "SignatureVersion": "1.0",
            "SignatureNonce": nonce,
            "DomainName": self.domain_name,
            "SSLProtocol": "on",
            "CertType": "upload",
            "CertName": self.certificate_name(moment),
            "SSLPub": bundle.certificate_chain,
            "SSLPri": bundle.private_key_pem,
        }
        if self.region_id:
            params["RegionId"] = self.region_id
        return params

    def prepare(self, bundle: CertificateBundle) -> CDNUploadTransaction:
        """Build and sign the request parameters without sending them."""
        moment = self.clock()
        params = self.build_parameters(bundle, moment, self.nonce_factory())
        signature = sign_parameters(params, self.access_key_secret)
        return CDNUploadTransaction(
            cert_name=params["CertName"],
            parameters=params,
            signature=signature,
        )

    def publish(self, bundle: CertificateBundle) -> CDNUploadTransaction:
        """
        Sign and POST the certificate.  This is the run's terminal step and is
        treated as atomic: either the provider acknowledges it or we raise.
        """
        txn = self.prepare(bundle)
        form = {**txn.parameters, "Signature": txn.signature}

        logger.info("Uploading certificate %s to CDN domain %s", txn.cert_name, self.domain_name)
        resp = self.session.post(
            self.endpoint,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        try:
            body = resp.json()
        except ValueError:
            resp.raise_for_status()
            raise ProviderAPIError("aliyun-cdn", "upload certificate", f"non-JSON response: {resp.text[:200]}")

        txn.http_status = resp.status_code
        txn.response = body
        txn.request_id = str(body.get("RequestId", ""))
        if body.get("Code"):
            txn.response_code = str(body["Code"])
            txn.response_message = str(body.get("Message", ""))
            raise ProviderAPIError(
                "aliyun-cdn", "upload certificate", txn.response_message, code=txn.response_code
            )

        logger.info("CDN accepted certificate %s (request %s)", txn.cert_name, txn.request_id or "-")
        return txn
