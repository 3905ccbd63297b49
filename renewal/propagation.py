"""
DNS propagation check through a public DNS-over-HTTPS JSON resolver.

Resolver protocol (Google / Cloudflare JSON API):
  GET <resolver>?name=<record name>&type=TXT
  → {"Status": 0, "Answer": [{"name": ..., "type": 16, "data": "<txt>"}, ...]}

Matching is substring-based by default: an answer whose ``data`` contains the
expected value counts, which tolerates resolvers that return the TXT string
wrapped in quotes.  Set ``exact_match`` to require equality after the quotes
are stripped.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import requests

from renewal.errors import DNSPropagationTimeout
from renewal.retry import PROPAGATION_POLICY, RetryPolicy, Sleeper, poll_until

logger = logging.getLogger(__name__)

DEFAULT_RESOLVER_URL = "https://dns.google/resolve"


class DohResolver:
    """Minimal TXT lookup against a DoH JSON endpoint."""

    def __init__(
        self,
        url: str = DEFAULT_RESOLVER_URL,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/dns-json"})

    def query_txt(self, name: str) -> list[str]:
        """Return the ``data`` field of every answer for (name, TXT)."""
        resp = self._session.get(
            self.url, params={"name": name, "type": "TXT"}, timeout=self.timeout
        )
        resp.raise_for_status()
        body = resp.json()
        return [
            str(answer.get("data", ""))
            for answer in body.get("Answer") or []
        ]


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def txt_matches(answers: list[str], expected: str, exact: bool = False) -> bool:
    """True when any resolver answer carries *expected*."""
    if exact:
        return any(_strip_quotes(a) == expected for a in answers)
    return any(expected in a for a in answers)


class PropagationVerifier:
    """Poll the resolver until the challenge value is observable."""

    def __init__(
        self,
        resolver: DohResolver,
        policy: RetryPolicy = PROPAGATION_POLICY,
        sleep: Sleeper = time.sleep,
        exact_match: bool = False,
    ) -> None:
        self.resolver = resolver
        self.policy = policy
        self.sleep = sleep
        self.exact_match = exact_match

    def wait_for(self, record_name: str, expected_value: str) -> int:
        """
        Block until *expected_value* is visible at *record_name*.

        Resolver errors consume an attempt rather than aborting.
        Returns the attempt number that succeeded; raises DNSPropagationTimeout
        when the policy is exhausted.
        """

        def _check(attempt: int) -> bool:
            answers = self.resolver.query_txt(record_name)
            logger.debug("Resolver answers for %s (poll %d): %s", record_name, attempt, answers)
            return txt_matches(answers, expected_value, self.exact_match)

        outcome = poll_until(
            _check,
            self.policy,
            sleep=self.sleep,
            description=f"TXT propagation of {record_name}",
        )
        if not outcome.succeeded:
            raise DNSPropagationTimeout(record_name, outcome.attempts)
        logger.info("TXT record %s visible after %d poll(s)", record_name, outcome.attempts)
        return outcome.attempts
