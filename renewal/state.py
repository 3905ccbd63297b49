"""
Data model and graph state for one renewal run.

Nothing here is persisted.  A run builds these values, the graph passes them
between nodes, and they are dropped when ``RenewalOrchestrator.run`` returns.
In particular the certificate private key only ever lives in
``CertificateBundle.private_key_pem`` for the duration of the run; no
checkpointer is attached to the graph.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from typing_extensions import TypedDict


class TriggerKind(str, Enum):
    SCHEDULED = "scheduled"
    HTTP = "http"
    CLI = "cli"


class RenewalStage(str, Enum):
    INIT = "init"
    ORDER_CREATED = "order_created"
    DNS_PROVISIONED = "dns_provisioned"
    DNS_PROPAGATED = "dns_propagated"
    CHALLENGE_VERIFIED = "challenge_verified"
    ORDER_FINALIZED = "order_finalized"
    CERTIFICATE_ISSUED = "certificate_issued"
    DEPLOYED = "deployed"
    DONE = "done"
    FAILED = "failed"


class ChallengeStatus(str, Enum):
    PENDING = "pending"
    PROVISIONED = "provisioned"
    PROPAGATED = "propagated"
    VERIFYING = "verifying"
    VALID = "valid"
    FAILED = "failed"


DNS01 = "dns-01"


@dataclass(frozen=True)
class RenewalRequest:
    domain: str
    trigger: TriggerKind = TriggerKind.SCHEDULED


@dataclass
class AuthorizationChallenge:
    """One dns-01 challenge from one authorization of the order."""

    domain: str
    authorization: dict
    challenge: dict
    token: str
    key_authorization: str
    record_name: str
    record_value: str
    type: str = DNS01
    status: ChallengeStatus = ChallengeStatus.PENDING
    verify_attempts: int = 0


@dataclass
class CertificateBundle:
    certificate_chain: str
    private_key_pem: str = field(repr=False)
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CDNUploadTransaction:
    cert_name: str
    parameters: dict = field(repr=False)
    signature: str = field(repr=False)
    http_status: Optional[int] = None
    request_id: str = ""
    response_code: str = ""
    response_message: str = ""
    response: dict = field(default_factory=dict)


class RenewalState(TypedDict, total=False):
    run_id: str
    request: RenewalRequest
    stage: RenewalStage
    order: Optional[dict]
    challenges: List[AuthorizationChallenge]
    current_index: int               # index into challenges of the one in flight
    bundle: Optional[CertificateBundle]
    upload: Optional[CDNUploadTransaction]
    cleanup_failures: List[str]      # TXT names that teardown could not clear


def initial_state(request: RenewalRequest, run_id: str) -> RenewalState:
    return {
        "run_id": run_id,
        "request": request,
        "stage": RenewalStage.INIT,
        "order": None,
        "challenges": [],
        "current_index": -1,
        "bundle": None,
        "upload": None,
        "cleanup_failures": [],
    }
