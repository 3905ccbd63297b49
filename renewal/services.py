"""
Collaborators of one renewal run, and the factory that wires the real ones
from Settings.

A fresh RenewalServices is built for every run: the ACME capability holds the
run's in-memory account, and the provisioner tracks the run's TXT records.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from acme_v2.capability import AcmeCapability, AcmeV2Capability
from acme_v2.client import AcmeClient
from acme_v2.crypto import generate_rsa_key
from config import Settings
from dns_providers.cloudflare import CloudflareDnsProvider
from renewal.propagation import DohResolver, PropagationVerifier
from renewal.provisioner import DnsRecordProvisioner
from renewal.publisher import AliyunCdnPublisher
from renewal.retry import RetryPolicy, Sleeper


@dataclass
class RenewalServices:
    acme: AcmeCapability
    provisioner: DnsRecordProvisioner
    propagation: PropagationVerifier
    publisher: AliyunCdnPublisher
    verify_policy: RetryPolicy
    sleep: Sleeper = time.sleep
    key_factory: Callable = generate_rsa_key


def build_services(settings: Settings, domain: str = "", sleep: Sleeper = time.sleep) -> RenewalServices:
    """Wire Cloudflare, the DoH resolver, the ACME CA and Aliyun CDN from *settings*.

    *domain* overrides DOMAIN_NAME as the CDN domain the certificate is uploaded to.
    """
    timeout = settings.HTTP_TIMEOUT_SECONDS
    resolver = DohResolver(settings.DNS_RESOLVER_URL, timeout=timeout)

    acme = AcmeV2Capability(
        AcmeClient(
            settings.ACME_DIRECTORY_URL,
            timeout=timeout,
            ca_bundle=settings.ACME_CA_BUNDLE,
            insecure=settings.ACME_INSECURE,
        ),
        contact_email=settings.ACME_CONTACT_EMAIL,
        eab_key_id=settings.ACME_EAB_KEY_ID,
        eab_hmac_key=settings.ACME_EAB_HMAC_KEY,
        txt_lookup=resolver.query_txt,
        sleep=sleep,
    )

    provider = CloudflareDnsProvider(
        zone_id=settings.CLOUDFLARE_ZONE_ID,
        api_token=settings.CLOUDFLARE_API_TOKEN,
        api_email=settings.CLOUDFLARE_API_EMAIL,
        api_key=settings.CLOUDFLARE_API_KEY,
    )

    propagation = PropagationVerifier(
        resolver,
        policy=RetryPolicy(
            max_attempts=settings.DNS_PROPAGATION_ATTEMPTS,
            interval=settings.DNS_PROPAGATION_INTERVAL_SECONDS,
            wait_first=True,
        ),
        sleep=sleep,
        exact_match=settings.DNS_PROPAGATION_EXACT_MATCH,
    )

    publisher = AliyunCdnPublisher(
        access_key_id=settings.CDN_ACCESS_KEY_ID,
        access_key_secret=settings.CDN_ACCESS_KEY_SECRET,
        domain_name=domain or settings.DOMAIN_NAME,
        cert_name_prefix=settings.CDN_CERT_NAME_PREFIX,
        endpoint=settings.CDN_ENDPOINT,
        region_id=settings.CDN_REGION_ID,
        api_version=settings.CDN_API_VERSION,
        timeout=timeout,
    )

    return RenewalServices(
        acme=acme,
        provisioner=DnsRecordProvisioner(provider, ttl=settings.DNS_RECORD_TTL),
        propagation=propagation,
        publisher=publisher,
        verify_policy=RetryPolicy(
            max_attempts=settings.CHALLENGE_VERIFY_ATTEMPTS,
            interval=settings.CHALLENGE_VERIFY_INTERVAL_SECONDS,
        ),
        sleep=sleep,
    )
