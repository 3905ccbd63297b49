"""
Fixed-count, fixed-delay retry primitives.

Two waits exist in a renewal run: the DNS propagation poll and the ACME
verify-challenge retry.  Both are expressed as a ``RetryPolicy`` value
consumed by ``poll_until``.  The sleep primitive is injected.

Fixed count, fixed delay: no backoff, no jitter.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from renewal.errors import ChallengeVerificationExhausted

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, and how long to wait between tries.

    ``wait_first`` also waits before the first attempt (used for propagation,
    where polling immediately after creating the record is pointless).
    """

    max_attempts: int
    interval: float
    wait_first: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")


PROPAGATION_POLICY = RetryPolicy(max_attempts=10, interval=5.0, wait_first=True)
VERIFY_POLICY = RetryPolicy(max_attempts=3, interval=5.0)


@dataclass
class PollOutcome:
    succeeded: bool
    attempts: int
    last_error: Optional[BaseException] = None


def poll_until(
    check: Callable[[int], bool],
    policy: RetryPolicy,
    sleep: Sleeper = time.sleep,
    description: str = "condition",
) -> PollOutcome:
    """
    Call ``check(attempt)`` until it returns True or attempts run out.

    An exception raised by *check* consumes the attempt (it is logged and kept
    as ``last_error``) instead of aborting the loop.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1 or policy.wait_first:
            sleep(policy.interval)
        try:
            if check(attempt):
                logger.debug("%s satisfied on attempt %d", description, attempt)
                return PollOutcome(True, attempt, None)
            logger.info(
                "%s not yet satisfied (attempt %d/%d)", description, attempt, policy.max_attempts
            )
        except Exception as exc:
            last_error = exc
            logger.warning(
                "%s attempt %d/%d failed: %s", description, attempt, policy.max_attempts, exc
            )
    return PollOutcome(False, policy.max_attempts, last_error)


def verify_with_retry(
    verify: Callable[[], object],
    domain: str,
    policy: RetryPolicy = VERIFY_POLICY,
    sleep: Sleeper = time.sleep,
) -> int:
    """
    Run the ACME verify call under *policy*; any exception is a failed attempt.

    Returns the number of attempts used.  Raises ChallengeVerificationExhausted
    once every attempt has failed.
    """

    def _attempt(_: int) -> bool:
        verify()
        return True

    outcome = poll_until(_attempt, policy, sleep=sleep, description=f"challenge verification for {domain}")
    if not outcome.succeeded:
        raise ChallengeVerificationExhausted(domain, outcome.attempts, outcome.last_error)
    return outcome.attempts
