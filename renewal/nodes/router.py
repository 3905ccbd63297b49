"""
Per-authorization loop: pick_next_challenge node and challenge_router edge.

Authorizations are processed strictly one at a time.  Provisioning lists and
deletes every TXT record at a name, so overlapping them would race.
"""
from __future__ import annotations

import logging

from renewal.state import ChallengeStatus, RenewalState

logger = logging.getLogger(__name__)


def pick_next_challenge(state: RenewalState) -> dict:
    """Point ``current_index`` at the next PENDING challenge, or -1 when none remain."""
    for index, challenge in enumerate(state.get("challenges", [])):
        if challenge.status is ChallengeStatus.PENDING:
            logger.info("Processing dns-01 challenge for %s", challenge.domain)
            return {"current_index": index}
    return {"current_index": -1}


def challenge_router(state: RenewalState) -> str:
    """
    Returns:
      "next_challenge" — a pending challenge was picked
      "all_verified"   — no challenge is left PENDING, go finalize
    """
    if state.get("current_index", -1) >= 0:
        return "next_challenge"
    return "all_verified"
