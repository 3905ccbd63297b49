"""
Challenge nodes for the authorization in flight (``current_index``):

dns_provisioner      — single-record TXT provisioning
propagation_checker  — poll the public resolver until the value is visible
challenge_verifier   — ACME verify under the retry policy, then hand the
                       challenge to the CA (VERIFYING until the order is ready)
"""
from __future__ import annotations

import logging
from dataclasses import replace

from renewal.retry import verify_with_retry
from renewal.services import RenewalServices
from renewal.state import AuthorizationChallenge, ChallengeStatus, RenewalStage, RenewalState

logger = logging.getLogger(__name__)


def _current(state: RenewalState) -> tuple[int, AuthorizationChallenge]:
    index = state["current_index"]
    return index, state["challenges"][index]


def _with(state: RenewalState, index: int, updated: AuthorizationChallenge) -> list[AuthorizationChallenge]:
    challenges = list(state["challenges"])
    challenges[index] = updated
    return challenges


def dns_provisioner(state: RenewalState, services: RenewalServices) -> dict:
    index, challenge = _current(state)
    services.provisioner.provision(challenge.record_name, challenge.record_value)
    return {
        "challenges": _with(state, index, replace(challenge, status=ChallengeStatus.PROVISIONED)),
        "stage": RenewalStage.DNS_PROVISIONED,
    }


def propagation_checker(state: RenewalState, services: RenewalServices) -> dict:
    """Raises DNSPropagationTimeout when the policy runs out."""
    index, challenge = _current(state)
    services.propagation.wait_for(challenge.record_name, challenge.record_value)
    return {
        "challenges": _with(state, index, replace(challenge, status=ChallengeStatus.PROPAGATED)),
        "stage": RenewalStage.DNS_PROPAGATED,
    }


def challenge_verifier(state: RenewalState, services: RenewalServices) -> dict:
    """
    Verify with bounded retries, then tell the CA to validate.

    The challenge stays VERIFYING until order_finalizer sees the order ready.

    Exhaustion raises ChallengeVerificationExhausted, which aborts the whole
    run rather than just this authorization.
    """
    index, challenge = _current(state)
    acme = services.acme

    attempts = verify_with_retry(
        lambda: acme.verify_challenge(challenge.authorization, challenge.challenge),
        challenge.domain,
        policy=services.verify_policy,
        sleep=services.sleep,
    )
    acme.complete_challenge(challenge.challenge)
    logger.info("Challenge for %s verified (%d attempt(s)) and completed", challenge.domain, attempts)

    return {
        "challenges": _with(
            state, index, replace(challenge, status=ChallengeStatus.VERIFYING, verify_attempts=attempts)
        ),
        "stage": RenewalStage.CHALLENGE_VERIFIED,
    }
