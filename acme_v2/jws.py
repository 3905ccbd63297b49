"""
JWK / JWS / EAB utilities for the ACME protocol (RFC 8555 + RFC 8739).

Uses *josepy* for the JWK representation and *cryptography* for signing.

The account key is generated per run and held only in memory: a renewal run
registers a fresh account, so there is nothing to load or save.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from josepy.jwk import JWKRSA


def generate_account_key(key_size: int = 2048) -> JWKRSA:
    """Generate a new RSA account key wrapped in a josepy JWKRSA."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return JWKRSA(key=private_key)


# ─── Key authorization ────────────────────────────────────────────────────────


def public_jwk(jwk: JWKRSA) -> dict:
    pub = jwk.public_key().fields_to_partial_json()
    pub["kty"] = "RSA"
    return pub


def compute_jwk_thumbprint(jwk: JWKRSA) -> str:
    """Base64url SHA-256 thumbprint of the public JWK (RFC 7638)."""
    canonical = json.dumps(public_jwk(jwk), sort_keys=True, separators=(",", ":"))
    return _b64url(hashlib.sha256(canonical.encode()).digest())


def compute_key_authorization(token: str, jwk: JWKRSA) -> str:
    """Return ``token + "." + thumbprint``."""
    return f"{token}.{compute_jwk_thumbprint(jwk)}"


# ─── JWS signing ─────────────────────────────────────────────────────────────


def sign_request(
    payload: dict | None,
    account_key: JWKRSA,
    nonce: str,
    url: str,
    account_url: str | None = None,
) -> dict:
    """
    Sign an ACME request payload and return the flattened JWS to POST.

    Without *account_url* the protected header carries the full JWK (newAccount);
    with it, the shorter ``kid`` form is used.  ``payload=None`` produces a
    POST-as-GET body (empty payload string).
    """
    header: dict[str, Any] = {"alg": "RS256", "nonce": nonce, "url": url}
    if account_url:
        header["kid"] = account_url
    else:
        header["jwk"] = public_jwk(account_key)

    protected = _b64url(json.dumps(header).encode())
    payload_b64 = "" if payload is None else _b64url(json.dumps(payload).encode())

    signing_input = f"{protected}.{payload_b64}".encode()
    signature = account_key.key.sign(signing_input, padding.PKCS1v15(), hashes.SHA256())

    return {"protected": protected, "payload": payload_b64, "signature": _b64url(signature)}


# ─── EAB (External Account Binding) ──────────────────────────────────────────


def create_eab_jws(
    account_jwk: JWKRSA,
    eab_kid: str,
    eab_hmac_key_b64url: str,
    new_account_url: str,
) -> dict:
    """
    Build the EAB outer-JWS required by CAs such as ZeroSSL.

    Protected header {"alg":"HS256","kid":<eab_kid>,"url":<newAccount url>},
    payload = account public JWK, signature = HMAC-SHA256 with the decoded key.

    Raises ValueError on an empty kid, a key that is not base64url, or a key
    shorter than 16 bytes.
    """
    if not eab_kid or not eab_kid.strip():
        raise ValueError("EAB key ID (eab_kid) cannot be empty")
    if not eab_hmac_key_b64url or not eab_hmac_key_b64url.strip():
        raise ValueError("EAB HMAC key (eab_hmac_key_b64url) cannot be empty")

    try:
        hmac_key = _b64url_decode(eab_hmac_key_b64url)
    except ValueError as exc:
        raise ValueError(f"EAB HMAC key is not valid base64url: {exc!s}") from exc

    if len(hmac_key) < 16:
        raise ValueError(
            f"EAB HMAC key is too short: {len(hmac_key)} bytes. Must be at least 16 bytes."
        )

    protected = _b64url(json.dumps({"alg": "HS256", "kid": eab_kid, "url": new_account_url}).encode())
    payload = _b64url(json.dumps(public_jwk(account_jwk)).encode())
    mac = hmac.new(hmac_key, f"{protected}.{payload}".encode(), hashlib.sha256).digest()

    return {"protected": protected, "payload": payload, "signature": _b64url(mac)}


# ─── Internal helpers ─────────────────────────────────────────────────────────


def _b64url(data: bytes) -> str:
    """URL-safe base64 encoding with no padding (as required by JOSE)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    """URL-safe base64 decode, adding padding as needed."""
    pad = 4 - len(s) % 4
    if pad != 4:
        s += "=" * pad
    return base64.b64decode(s, altchars=b"-_", validate=True)
