"""
order_finalizer + cert_downloader nodes.

order_finalizer  — wait for the order to become ready (every challenge is
                   then VALID), generate the certificate key + CSR, submit it.
cert_downloader  — fetch the issued PEM chain into the in-memory bundle.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from acme_v2.crypto import create_csr, private_key_to_pem
from renewal.services import RenewalServices
from renewal.state import CertificateBundle, ChallengeStatus, RenewalStage, RenewalState

logger = logging.getLogger(__name__)


def order_finalizer(state: RenewalState, services: RenewalServices) -> dict:
    domain = state["request"].domain
    acme = services.acme

    order = acme.wait_for_valid_status(state["order"])
    challenges = [
        replace(c, status=ChallengeStatus.VALID) if c.status is ChallengeStatus.VERIFYING else c
        for c in state.get("challenges", [])
    ]

    private_key = services.key_factory()
    san_domains = [c.domain for c in challenges if c.domain != domain]
    csr_der = create_csr(private_key, domain, san_domains)

    logger.info("Finalizing order for %s: submitting CSR", domain)
    order = acme.finalize_order(order, csr_der)

    return {
        "order": order,
        "challenges": challenges,
        "bundle": CertificateBundle(certificate_chain="", private_key_pem=private_key_to_pem(private_key)),
        "stage": RenewalStage.ORDER_FINALIZED,
    }


def cert_downloader(state: RenewalState, services: RenewalServices) -> dict:
    domain = state["request"].domain
    chain = services.acme.get_certificate(state["order"])
    logger.info("Downloaded %d bytes of PEM for %s", len(chain), domain)

    bundle = replace(state["bundle"], certificate_chain=chain, issued_at=datetime.now(timezone.utc))
    return {"bundle": bundle, "stage": RenewalStage.CERTIFICATE_ISSUED}
