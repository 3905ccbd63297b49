"""
order_initializer node — create the ACME order for the target domain and
collect one dns-01 challenge per authorization.
"""
from __future__ import annotations

import logging

from dns_providers.base import challenge_record_name, compute_dns_txt_value
from renewal.errors import ChallengeNotFound
from renewal.services import RenewalServices
from renewal.state import DNS01, AuthorizationChallenge, ChallengeStatus, RenewalStage, RenewalState

logger = logging.getLogger(__name__)


def order_initializer(state: RenewalState, services: RenewalServices) -> dict:
    """
    Creates the order and builds ``challenges``.

    Authorizations the CA already considers valid (reused from an earlier
    order) are recorded as VALID and skipped by the challenge loop.
    Raises ChallengeNotFound when an authorization offers no dns-01 challenge.
    """
    domain = state["request"].domain
    acme = services.acme

    order = acme.create_order([domain])
    authorizations = acme.get_authorizations(order)

    challenges: list[AuthorizationChallenge] = []
    for authz in authorizations:
        auth_domain = authz.get("identifier", {}).get("value", domain)
        offered = [c.get("type", "") for c in authz.get("challenges", [])]
        challenge = next(
            (c for c in authz.get("challenges", []) if c.get("type") == DNS01),
            None,
        )
        if challenge is None:
            raise ChallengeNotFound(auth_domain, offered)

        key_auth = acme.get_challenge_key_authorization(challenge)
        status = ChallengeStatus.VALID if authz.get("status") == "valid" else ChallengeStatus.PENDING
        if status is ChallengeStatus.VALID:
            logger.info("Authorization for %s already valid, no challenge needed", auth_domain)

        challenges.append(
            AuthorizationChallenge(
                domain=auth_domain,
                authorization=authz,
                challenge=challenge,
                token=challenge["token"],
                key_authorization=key_auth,
                record_name=challenge_record_name(auth_domain),
                record_value=compute_dns_txt_value(key_auth),
                status=status,
            )
        )

    logger.info("Order created for %s with %d authorization(s)", domain, len(challenges))
    return {
        "order": order,
        "challenges": challenges,
        "stage": RenewalStage.ORDER_CREATED,
    }
